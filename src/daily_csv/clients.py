# src/daily_csv/clients.py

"""
Client wrapper for interacting with S3.

The wrapper keeps the aggregation logic free of boto3 details: it exposes
list/get/put, maps botocore failures onto the service's exception taxonomy,
and retries transient failures with exponential backoff.
"""

import logging
import time
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from .exceptions import (
    S3AccessDeniedError,
    S3ObjectNotFoundError,
    S3ThrottlingError,
    S3TimeoutError,
    StorageError,
    TransientStorageError,
)

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client as S3ClientType

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "SlowDown",
    "TooManyRequestsException",
}
_TIMEOUT_CODES = {"RequestTimeout", "RequestTimeoutException"}
_SERVER_ERROR_CODES = {"InternalError", "ServiceUnavailable", "503", "500"}


class S3Client:
    """
    A wrapper for the S3 operations the aggregator needs.
    """

    def __init__(
        self,
        s3_client: "S3ClientType",
        kms_key_id: str | None = None,
        max_attempts: int = 3,
        base_delay_seconds: float = 0.2,
        max_delay_seconds: float = 5.0,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the S3Client.

        Args:
            s3_client: A typed boto3 S3 client.
            kms_key_id: Optional KMS key ID for server-side encryption of writes.
            max_attempts: Total attempts per operation for transient errors.
            base_delay_seconds: Delay before the first retry; doubles each retry.
            max_delay_seconds: Upper bound for a single backoff delay.
            timeout_seconds: Read timeout the boto3 client was built with,
                reported on timeout errors.
            sleep: Injected for tests.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = s3_client
        self._kms_key_id = kms_key_id
        self._max_attempts = max_attempts
        self._base_delay = base_delay_seconds
        self._max_delay = max_delay_seconds
        self._timeout_seconds = timeout_seconds
        self._sleep = sleep
        if self._kms_key_id:
            logger.debug(
                "S3Client initialized with SSE-KMS enabled.",
                extra={"kms_key_id": self._kms_key_id},
            )

    # --- Public API ---

    def list_keys(self, bucket: str, prefix: str) -> list[str]:
        """
        Lists every object key under *prefix*, in the backend's listing order.
        Zero-byte "directory" placeholder keys are skipped.
        """
        return self._with_retries(
            "ListObjectsV2", bucket, prefix, lambda: self._list_keys(bucket, prefix)
        )

    def get_object_bytes(self, bucket: str, key: str) -> bytes:
        """Retrieves an S3 object's full body."""
        return self._with_retries(
            "GetObject", bucket, key, lambda: self._get_object_bytes(bucket, key)
        )

    def put_object_bytes(
        self, bucket: str, key: str, body: bytes, content_type: str
    ) -> dict[str, Any]:
        """Writes *body* to *key*, replacing any existing object. Returns the ack."""
        extra_args: dict[str, Any] = {"ContentType": content_type}
        if self._kms_key_id:
            extra_args.update(
                {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": self._kms_key_id}
            )
        logger.info(
            "Uploading object",
            extra={
                "bucket": bucket,
                "key": key,
                "size_bytes": len(body),
                "kms_enabled": bool(self._kms_key_id),
            },
        )
        response = self._with_retries(
            "PutObject",
            bucket,
            key,
            lambda: self._client.put_object(
                Bucket=bucket, Key=key, Body=body, **extra_args
            ),
        )
        logger.debug(
            "Upload (PUT) completed successfully",
            extra={"bucket": bucket, "key": key},
        )
        return {"bucket": bucket, "key": key, "etag": response.get("ETag")}

    # --- Internals ---

    def _list_keys(self, bucket: str, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                if obj["Key"].endswith("/"):
                    continue
                keys.append(obj["Key"])
        return keys

    def _get_object_bytes(self, bucket: str, key: str) -> bytes:
        response = self._client.get_object(Bucket=bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def _with_retries(
        self, operation: str, bucket: str, key: str, call: Callable[[], T]
    ) -> T:
        """
        Runs *call*, translating botocore errors and retrying transient ones
        with exponential backoff. Everything else propagates on first failure;
        the last transient error is re-raised once attempts run out.
        """
        attempt = 1
        while True:
            try:
                try:
                    return call()
                except (ClientError, ReadTimeoutError, EndpointConnectionError) as e:
                    raise self._translate_error(e, operation, bucket, key) from e
            except TransientStorageError as e:
                if attempt >= self._max_attempts:
                    logger.warning(
                        f"S3 {operation} failed after {attempt} attempts",
                        extra={
                            "bucket": bucket,
                            "key": key,
                            "error_code": e.error_code,
                            "error_context": e.context,
                        },
                    )
                    raise
                delay = min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)
                logger.info(
                    f"Retrying S3 {operation} after retryable error",
                    extra={
                        "bucket": bucket,
                        "key": key,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error_code": e.error_code,
                    },
                )
                self._sleep(delay)
                attempt += 1

    def _translate_error(
        self,
        error: ClientError | ReadTimeoutError | EndpointConnectionError,
        operation: str,
        bucket: str,
        key: str,
    ) -> Exception:
        """Map a botocore exception to our specific exception types."""
        if isinstance(error, ReadTimeoutError):
            return S3TimeoutError(
                operation,
                self._timeout_seconds,
                context={"bucket": bucket, "key": key, "timeout_error": str(error)},
            )
        if isinstance(error, EndpointConnectionError):
            return S3TimeoutError(
                operation,
                self._timeout_seconds,
                context={
                    "bucket": bucket,
                    "key": key,
                    "connection_error": str(error),
                },
            )

        error_code = str(error.response.get("Error", {}).get("Code", ""))
        error_message = error.response.get("Error", {}).get("Message", "")
        aws_context = {
            "aws_error_code": error_code,
            "aws_error_message": error_message,
        }

        if error_code in _NOT_FOUND_CODES:
            return S3ObjectNotFoundError(bucket=bucket, key=key, context=aws_context)
        elif error_code == "AccessDenied":
            return S3AccessDeniedError(bucket=bucket, key=key, context=aws_context)
        elif error_code in _THROTTLING_CODES:
            return S3ThrottlingError(
                operation, context={"bucket": bucket, "key": key, **aws_context}
            )
        elif error_code in _TIMEOUT_CODES:
            return S3TimeoutError(
                operation,
                self._timeout_seconds,
                context={"bucket": bucket, "key": key, **aws_context},
            )
        elif error_code in _SERVER_ERROR_CODES:
            return TransientStorageError(
                f"S3 server error during {operation}: {error_message}",
                context={"bucket": bucket, "key": key, **aws_context},
            )
        else:
            return StorageError(
                f"S3 client error during {operation}: {error_message}",
                context={"bucket": bucket, "key": key, **aws_context},
            )
