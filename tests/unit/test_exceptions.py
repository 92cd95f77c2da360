# tests/unit/test_exceptions.py

import json

import pytest

from daily_csv.exceptions import (
    ConfigurationError,
    DailyCsvError,
    InvalidS3EventError,
    MalformedKeyError,
    NonRetryableError,
    ProcessingError,
    RecordParseError,
    RetryableError,
    S3AccessDeniedError,
    S3Error,
    S3ObjectNotFoundError,
    S3ThrottlingError,
    S3TimeoutError,
    StorageError,
    TransientStorageError,
    ValidationError,
    WriteError,
    get_error_context,
    is_retryable_error,
)


class TestDailyCsvError:
    """Test the base DailyCsvError class."""

    def test_basic_initialization(self):
        error = DailyCsvError("Test message")
        assert str(error) == "Test message"
        assert error.message == "Test message"
        assert error.error_code == "DailyCsvError"
        assert error.context == {}
        assert error.correlation_id is None

    def test_context_is_copied(self):
        context = {"key": "value"}
        error = DailyCsvError("Test message", context=context)
        context["key"] = "changed"
        assert error.context == {"key": "value"}

    def test_to_dict(self):
        error = DailyCsvError(
            "Test message",
            error_code="TEST_CODE",
            context={"key": "value"},
            correlation_id="test-123",
        )
        assert error.to_dict() == {
            "error_type": "DailyCsvError",
            "error_code": "TEST_CODE",
            "message": "Test message",
            "context": {"key": "value"},
            "correlation_id": "test-123",
            "retryable": False,
        }


class TestS3Errors:
    """Test S3-related error classes."""

    def test_s3_object_not_found_error(self):
        error = S3ObjectNotFoundError("test-bucket", "test-key")
        assert "s3://test-bucket/test-key" in str(error)
        assert error.error_code == "S3_OBJECT_NOT_FOUND"
        assert error.context == {"bucket": "test-bucket", "key": "test-key"}
        # A vanished object is a listing race: redelivery re-lists the day.
        assert isinstance(error, RetryableError)
        assert isinstance(error, S3Error)

    def test_s3_access_denied_error(self):
        error = S3AccessDeniedError("test-bucket", "test-key", context={"aws_error_code": "AccessDenied"})
        assert "Access denied" in str(error)
        assert error.error_code == "S3_ACCESS_DENIED"
        assert error.context["key"] == "test-key"
        assert error.context["aws_error_code"] == "AccessDenied"
        assert isinstance(error, NonRetryableError)

    def test_s3_throttling_error(self):
        error = S3ThrottlingError("GetObject", context={"bucket": "b"})
        assert "throttled" in str(error)
        assert error.error_code == "S3_THROTTLING"
        assert error.context == {"bucket": "b", "operation": "GetObject"}
        assert isinstance(error, TransientStorageError)
        assert isinstance(error, RetryableError)

    def test_s3_timeout_error(self):
        error = S3TimeoutError("GetObject", 30.0)
        assert "timed out" in str(error)
        assert "30.0s" in str(error)
        assert error.error_code == "S3_TIMEOUT"
        assert error.context["timeout_seconds"] == 30.0
        assert isinstance(error, TransientStorageError)

    def test_transient_storage_error_default_code(self):
        error = TransientStorageError("S3 server error")
        assert error.error_code == "S3_TRANSIENT"
        assert is_retryable_error(error)

    def test_storage_error_is_not_retryable(self):
        error = StorageError("S3 client error")
        assert error.error_code == "S3_CLIENT_ERROR"
        assert not is_retryable_error(error)


class TestValidationErrors:
    """Test validation error classes."""

    def test_invalid_s3_event_error(self):
        error = InvalidS3EventError("Missing required field")
        assert str(error) == "Missing required field"
        assert error.error_code == "INVALID_S3_EVENT"
        assert isinstance(error, ValidationError)
        assert isinstance(error, NonRetryableError)

    def test_invalid_s3_event_error_keeps_custom_code(self):
        error = InvalidS3EventError("test event", error_code="S3_TEST_EVENT")
        assert error.error_code == "S3_TEST_EVENT"

    def test_malformed_key_error(self):
        error = MalformedKeyError("a/b", "expected 3 path segments, found 2")
        assert "a/b" in str(error)
        assert error.error_code == "MALFORMED_KEY"
        assert error.context == {"key": "a/b", "reason": "expected 3 path segments, found 2"}
        assert isinstance(error, ValidationError)
        assert not is_retryable_error(error)


class TestProcessingErrors:
    """Test processing error classes."""

    def test_record_parse_error(self):
        error = RecordParseError("realtime/2020-01-01/a.ndjson", 4, "{bad", "Expecting value")
        assert error.key == "realtime/2020-01-01/a.ndjson"
        assert error.line_index == 4
        assert error.raw_line == "{bad"
        assert error.reason == "Expecting value"
        assert error.error_code == "RECORD_PARSE_FAILED"
        assert "raw_line" not in error.context
        assert isinstance(error, ProcessingError)
        assert not is_retryable_error(error)

    def test_write_error(self):
        error = WriteError("b", "daily/2020-01-01.csv", "throttled", context={"cause": {"error_code": "S3_THROTTLING"}})
        assert "s3://b/daily/2020-01-01.csv" in str(error)
        assert error.error_code == "AGGREGATE_WRITE_FAILED"
        assert error.context["cause"] == {"error_code": "S3_THROTTLING"}
        assert error.context["key"] == "daily/2020-01-01.csv"
        assert is_retryable_error(error)

    def test_configuration_error(self):
        error = ConfigurationError("Missing SERVICE_NAME")
        assert error.error_code == "CONFIGURATION_ERROR"
        assert isinstance(error, NonRetryableError)


class TestUtilityFunctions:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (S3ThrottlingError("PutObject"), True),
            (WriteError("b", "k", "r"), True),
            (S3ObjectNotFoundError("b", "k"), True),
            (MalformedKeyError("k", "r"), False),
            (S3AccessDeniedError("b", "k"), False),
            (ValueError("plain"), False),
        ],
    )
    def test_is_retryable_error(self, error, expected):
        assert is_retryable_error(error) is expected

    def test_get_error_context_for_service_error(self):
        context = get_error_context(MalformedKeyError("k", "r"))
        assert context["error_type"] == "MalformedKeyError"
        assert context["retryable"] is False
        json.dumps(context)

    def test_get_error_context_for_unknown_error(self):
        assert get_error_context(RuntimeError("boom")) == {
            "error_type": "RuntimeError",
            "message": "boom",
            "retryable": False,
        }
