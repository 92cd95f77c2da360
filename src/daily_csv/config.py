import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes", "on")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    # --- Required Variables ---
    service_name: str
    environment: str

    # --- Optional Variables with Defaults ---
    log_level: str
    output_prefix: str
    fetch_concurrency: int
    sort_rows: bool
    kms_key_id: str | None

    # --- S3 Retry Configuration ---
    s3_max_attempts: int
    s3_retry_base_delay_ms: int
    s3_retry_max_delay_ms: int
    s3_operation_timeout_seconds: int

    # --- Error Reporting Configuration ---
    max_logged_line_chars: int
    max_failure_samples: int

    # --- Derived Properties ---
    @property
    def s3_retry_base_delay_seconds(self) -> float:
        return self.s3_retry_base_delay_ms / 1000

    @property
    def s3_retry_max_delay_seconds(self) -> float:
        return self.s3_retry_max_delay_ms / 1000

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Loads configuration from environment variables, performing validation and type casting.
        Fails fast with a ConfigurationError if anything is invalid.
        """
        try:
            # --- Handle required string variables ---
            service_name = os.environ["SERVICE_NAME"]
            environment = os.environ["ENVIRONMENT"]

            # --- Handle special-case variables like log level ---
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
            allowed_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
            if log_level not in allowed_log_levels:
                raise ValueError(
                    f"LOG_LEVEL must be one of {allowed_log_levels}, not '{log_level}'"
                )

            output_prefix = os.getenv("OUTPUT_PREFIX", "daily").strip()
            if not output_prefix or output_prefix.startswith("/") or output_prefix.endswith("/"):
                raise ValueError(
                    "OUTPUT_PREFIX must be non-empty and must not start or end with '/'."
                )

            # --- Handle optional and numeric variables with validation ---
            fetch_concurrency = int(os.getenv("FETCH_CONCURRENCY", "4"))
            if not 1 <= fetch_concurrency <= 64:
                raise ValueError("FETCH_CONCURRENCY must be between 1 and 64.")

            sort_rows = os.getenv("SORT_ROWS", "false").lower() in _TRUTHY

            kms_key_id = os.getenv("KMS_KEY_ID") or None

            s3_max_attempts = int(os.getenv("S3_MAX_ATTEMPTS", "3"))
            if s3_max_attempts <= 0:
                raise ValueError("S3_MAX_ATTEMPTS must be a positive integer.")

            s3_retry_base_delay_ms = int(os.getenv("S3_RETRY_BASE_DELAY_MS", "200"))
            if s3_retry_base_delay_ms < 0:
                raise ValueError(
                    "S3_RETRY_BASE_DELAY_MS must be a non-negative integer."
                )

            s3_retry_max_delay_ms = int(os.getenv("S3_RETRY_MAX_DELAY_MS", "5000"))
            if s3_retry_max_delay_ms < s3_retry_base_delay_ms:
                raise ValueError(
                    "S3_RETRY_MAX_DELAY_MS must not be lower than S3_RETRY_BASE_DELAY_MS."
                )

            s3_operation_timeout_seconds = int(
                os.getenv("S3_OPERATION_TIMEOUT_SECONDS", "30")
            )
            if s3_operation_timeout_seconds <= 0:
                raise ValueError(
                    "S3_OPERATION_TIMEOUT_SECONDS must be a positive integer."
                )

            # --- Handle error reporting configuration ---
            max_logged_line_chars = int(os.getenv("MAX_LOGGED_LINE_CHARS", "1024"))
            if max_logged_line_chars <= 0:
                raise ValueError("MAX_LOGGED_LINE_CHARS must be a positive integer.")

            max_failure_samples = int(os.getenv("MAX_FAILURE_SAMPLES", "10"))
            if max_failure_samples < 0:
                raise ValueError("MAX_FAILURE_SAMPLES must be a non-negative integer.")

        except KeyError as e:
            raise ConfigurationError(
                f"Missing required environment variable: {e.args[0]}"
            ) from e
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid value for an environment variable: {e}"
            ) from e

        return cls(
            service_name=service_name,
            environment=environment,
            log_level=log_level,
            output_prefix=output_prefix,
            fetch_concurrency=fetch_concurrency,
            sort_rows=sort_rows,
            kms_key_id=kms_key_id,
            s3_max_attempts=s3_max_attempts,
            s3_retry_base_delay_ms=s3_retry_base_delay_ms,
            s3_retry_max_delay_ms=s3_retry_max_delay_ms,
            s3_operation_timeout_seconds=s3_operation_timeout_seconds,
            max_logged_line_chars=max_logged_line_chars,
            max_failure_samples=max_failure_samples,
        )


# --- Singleton Factory Function (Lazy-loaded and Cached) ---
@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Loads the application configuration from environment variables.
    The result is cached using lru_cache, so the environment is only read once
    on the first call. This avoids import-time side effects.
    """
    logger.info("Loading application configuration from environment...")
    return AppConfig.load_from_env()
