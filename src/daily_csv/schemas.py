# In src/daily_csv/schemas.py

import json
from typing import Any
from urllib.parse import unquote_plus

import pydantic
from pydantic import BaseModel, Field, field_validator

from .exceptions import InvalidS3EventError

# --- Runtime Validation (using Pydantic) ---


class S3BucketModel(BaseModel):
    name: str = Field(..., min_length=1)


class S3ObjectModel(BaseModel):
    key: str = Field(..., min_length=1)

    # S3 notifications URL-encode object keys (spaces arrive as '+').
    @field_validator("key")
    @classmethod
    def decode_key(cls, value: str) -> str:
        return unquote_plus(value)


class S3DataModel(BaseModel):
    bucket: S3BucketModel
    object: S3ObjectModel


class S3EventNotificationRecord(BaseModel):
    """
    Pydantic model for runtime parsing and validation of an S3 event record.
    """

    s3: S3DataModel


class SourceEvent(BaseModel):
    """The one object-created notification an invocation handles."""

    model_config = pydantic.ConfigDict(frozen=True)

    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)


def _single_record(records: Any, where: str) -> Any:
    if not isinstance(records, list) or not records:
        raise InvalidS3EventError(
            f"{where} does not contain any records", context={"where": where}
        )
    if len(records) != 1:
        raise InvalidS3EventError(
            f"{where} must contain exactly one record, got {len(records)}",
            context={"where": where, "record_count": len(records)},
        )
    return records[0]


def parse_source_event(event: Any) -> SourceEvent:
    """
    Extracts the bucket and key from an invocation event.

    Accepts the direct form ``{"bucket": ..., "key": ...}``, an S3 event
    notification, or an SQS message whose body is an S3 event notification.
    """
    if not isinstance(event, dict):
        raise InvalidS3EventError(
            "Event must be a JSON object",
            context={"event_type": type(event).__name__},
        )

    try:
        if "bucket" in event and "key" in event:
            return SourceEvent.model_validate(
                {"bucket": event["bucket"], "key": event["key"]}
            )

        if event.get("Event") == "s3:TestEvent":
            raise InvalidS3EventError(
                "Received an s3:TestEvent; nothing to aggregate",
                error_code="S3_TEST_EVENT",
            )

        record = _single_record(event.get("Records"), "event")

        if isinstance(record, dict) and "body" in record and "s3" not in record:
            try:
                inner = json.loads(record["body"])
            except (TypeError, json.JSONDecodeError) as e:
                raise InvalidS3EventError(
                    "SQS message body is not valid JSON",
                    context={"error": str(e)},
                ) from e
            return parse_source_event(inner)

        parsed = S3EventNotificationRecord.model_validate(record)
        return SourceEvent(bucket=parsed.s3.bucket.name, key=parsed.s3.object.key)

    except pydantic.ValidationError as e:
        raise InvalidS3EventError(
            "Event failed validation",
            context={
                "validation_errors": e.errors(
                    include_url=False, include_context=False, include_input=False
                )
            },
        ) from e
