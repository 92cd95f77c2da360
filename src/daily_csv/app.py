"""
The Lambda Adapter for the Daily CSV Aggregator service.

This module is the main entry point for the AWS Lambda function. It is
responsible for:
1.  Initializing AWS Lambda Powertools (Logger, Tracer and Metrics).
2.  Parsing and validating the incoming object-created event.
3.  Invoking the core business logic (`aggregate_day`) for the event's day.
4.  Mapping the outcome onto the invocation result: non-retryable failures
    are reported and swallowed so the event is not redelivered, retryable
    failures are re-raised so the trigger mechanism retries the invocation.
"""

from functools import cached_property
from typing import Any

import boto3
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging import utils as logging_utils
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext
from botocore.config import Config as BotocoreConfig

from .clients import S3Client
from .config import AppConfig, get_config
from .core import aggregate_day
from .exceptions import DailyCsvError, get_error_context, is_retryable_error
from .schemas import parse_source_event

# --- Global & Reusable Components ---
logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace="DailyCsvAggregator")

# Route the library modules' stdlib loggers through the Powertools formatter.
logging_utils.copy_config_to_registered_loggers(source_logger=logger, include={"daily_csv"})


class Dependencies:
    """
    Lazily-instantiated dependency container.

    Built once per warm container; the S3 client it owns is passed
    explicitly into the aggregator on every invocation.
    """

    @cached_property
    def config(self) -> AppConfig:
        return get_config()

    @cached_property
    def s3_client(self) -> S3Client:
        config = self.config
        # Retries are owned by S3Client, so botocore makes a single attempt.
        boto_config = BotocoreConfig(
            connect_timeout=10,
            read_timeout=config.s3_operation_timeout_seconds,
            retries={"total_max_attempts": 1},
            max_pool_connections=max(10, config.fetch_concurrency),
        )
        return S3Client(
            s3_client=boto3.client("s3", config=boto_config),
            kms_key_id=config.kms_key_id,
            max_attempts=config.s3_max_attempts,
            base_delay_seconds=config.s3_retry_base_delay_seconds,
            max_delay_seconds=config.s3_retry_max_delay_seconds,
            timeout_seconds=config.s3_operation_timeout_seconds,
        )


dependencies = Dependencies()


def _failure_outcome(error: Exception) -> dict[str, Any]:
    return {
        "status": "failed",
        "retryable": is_retryable_error(error),
        "error": get_error_context(error),
    }


def handle_event(event: dict, deps: Dependencies) -> dict[str, Any]:
    """
    Runs one aggregation for the event and returns the invocation outcome.

    Raises for retryable failures so the invocation is reported as failed.
    """
    try:
        config = deps.config
        logger.setLevel(config.log_level)
        logger.append_keys(service=config.service_name)
        metrics.add_dimension(name="service", value=config.service_name)
        metrics.add_dimension(name="environment", value=config.environment)

        source = parse_source_event(event)
        logger.append_keys(bucket=source.bucket, trigger_key=source.key)
        logger.info("Received object-created event")

        result = aggregate_day(deps.s3_client, source.bucket, source.key, config)

    except DailyCsvError as e:
        error_context = {"error": get_error_context(e)}
        if is_retryable_error(e):
            metrics.add_metric(name="FatalErrors", unit=MetricUnit.Count, value=1)
            logger.error(
                f"Retryable failure; the invocation will be redelivered: {e}",
                extra=error_context,
            )
            raise

        metrics.add_metric(name="NonRetryableErrors", unit=MetricUnit.Count, value=1)
        logger.error(
            f"Non-retryable failure; the event will not be retried: {e}",
            extra=error_context,
        )
        return _failure_outcome(e)

    except Exception as e:
        metrics.add_metric(name="FatalErrors", unit=MetricUnit.Count, value=1)
        logger.exception(
            "Unexpected error during aggregation.",
            extra={"error_type": type(e).__name__},
        )
        raise

    finally:
        logger.remove_keys(["bucket", "trigger_key"])

    metrics.add_metric(
        name="SourceObjects", unit=MetricUnit.Count, value=len(result.source_keys)
    )
    metrics.add_metric(name="RowsWritten", unit=MetricUnit.Count, value=result.row_count)
    metrics.add_metric(
        name="FailedLines", unit=MetricUnit.Count, value=len(result.failures)
    )

    return {"status": "succeeded", **result.to_summary(config.max_failure_samples)}


@logger.inject_lambda_context()
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def handler(event: dict, context: LambdaContext) -> dict[str, Any]:
    """Main Lambda handler for object-created events."""
    return handle_event(event, dependencies)
