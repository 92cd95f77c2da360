# src/daily_csv/exceptions.py

"""
Shared custom exceptions for the Daily CSV Aggregator service.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- DailyCsvError (base)
  - RetryableError (the trigger mechanism should redeliver)
    - S3ObjectNotFoundError
    - TransientStorageError
      - S3ThrottlingError
      - S3TimeoutError
    - WriteError
  - NonRetryableError (redelivery will not help)
    - ValidationError
      - InvalidS3EventError
      - MalformedKeyError
    - S3AccessDeniedError
    - StorageError
    - ConfigurationError
  - RecordParseError (isolated per line, never fatal)
"""

from typing import Any, Dict, Optional


class DailyCsvError(Exception):
    """Base exception for all Daily CSV Aggregator errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(DailyCsvError):
    """Base class for errors that can be retried."""

    pass


class NonRetryableError(DailyCsvError):
    """Base class for errors that should not be retried."""

    pass


# === S3-Related Errors ===


class S3Error(DailyCsvError):
    """Base class for S3-related errors."""

    pass


class S3ObjectNotFoundError(S3Error, RetryableError):
    """
    Raised when a listed S3 object vanished before it could be fetched.

    Redelivery re-lists the day, so the race resolves itself on a later run.
    """

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"S3 object not found: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="S3_OBJECT_NOT_FOUND", context=context, **kwargs
        )


class S3AccessDeniedError(S3Error, NonRetryableError):
    """Raised when access is denied to an S3 object or prefix."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Access denied to S3 object: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="S3_ACCESS_DENIED", context=context, **kwargs
        )


class TransientStorageError(S3Error, RetryableError):
    """Raised for network or server-side S3 failures worth retrying."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "S3_TRANSIENT"
        super().__init__(message, **kwargs)


class S3ThrottlingError(TransientStorageError):
    """Raised when S3 operations are being throttled."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation throttled: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context["operation"] = operation
        super().__init__(
            message, error_code="S3_THROTTLING", context=context, **kwargs
        )


class S3TimeoutError(TransientStorageError):
    """Raised when S3 operations timeout or the endpoint is unreachable."""

    def __init__(self, operation: str, timeout_seconds: float, **kwargs):
        message = f"S3 operation timed out after {timeout_seconds}s: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"operation": operation, "timeout_seconds": timeout_seconds})
        super().__init__(message, error_code="S3_TIMEOUT", context=context, **kwargs)


class StorageError(S3Error, NonRetryableError):
    """Raised for any other S3 client error. Not retried."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "S3_CLIENT_ERROR"
        super().__init__(message, **kwargs)


# === Validation Errors ===


class ValidationError(NonRetryableError):
    """Base class for validation errors."""

    pass


class InvalidS3EventError(ValidationError):
    """Raised when the incoming event envelope is invalid."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "INVALID_S3_EVENT"
        super().__init__(message, **kwargs)


class MalformedKeyError(ValidationError):
    """Raised when a triggering key is not shaped like {category}/{day}/{file}."""

    def __init__(self, key: str, reason: str, **kwargs):
        message = f"Malformed source key '{key}': {reason}"
        context = {"key": key, "reason": reason}
        super().__init__(
            message, error_code="MALFORMED_KEY", context=context, **kwargs
        )


# === Processing Errors ===


class ProcessingError(DailyCsvError):
    """Base class for processing errors."""

    pass


class RecordParseError(ProcessingError):
    """
    One NDJSON line that could not be turned into a CSV row.

    These are collected, never raised out of the aggregator.
    """

    def __init__(self, key: str, line_index: int, raw_line: str, reason: str, **kwargs):
        message = f"Failed to parse line {line_index} of '{key}': {reason}"
        context = {"key": key, "line_index": line_index, "reason": reason}
        super().__init__(
            message, error_code="RECORD_PARSE_FAILED", context=context, **kwargs
        )
        self.key = key
        self.line_index = line_index
        self.raw_line = raw_line
        self.reason = reason


class WriteError(ProcessingError, RetryableError):
    """Raised when the daily aggregate could not be written."""

    def __init__(self, bucket: str, key: str, reason: str, **kwargs):
        message = f"Failed to write aggregate s3://{bucket}/{key}: {reason}"
        context = {"bucket": bucket, "key": key, "reason": reason}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="AGGREGATE_WRITE_FAILED", context=context, **kwargs
        )


# === Configuration Errors ===


class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === Utility Functions ===


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is retryable."""
    return isinstance(error, RetryableError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, DailyCsvError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "retryable": False,  # Unknown errors default to non-retryable
        }
