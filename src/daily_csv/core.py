# src/daily_csv/core.py

"""
Core business logic for building the daily CSV aggregate.

The main entry point, `aggregate_day`, takes the key of a newly created
NDJSON object, finds every sibling object written for the same day, converts
each record into a CSV row and replaces the day's aggregate object with a
single write.

The aggregate is recomputed from scratch on every invocation, so repeated
triggers for the same day converge on the same content. A malformed line
only costs its own row; listing, fetch and write failures abort the run
before anything is written.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from .clients import S3Client
from .codec import build_csv_fields, quote_row
from .config import AppConfig
from .exceptions import (
    MalformedKeyError,
    RecordParseError,
    RetryableError,
    WriteError,
)
from .fetcher import fetch_all

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv; charset=utf-8"
_DATE_UTC_INDEX = 7


# --- Data Structures ---
@dataclass(frozen=True, slots=True)
class DayPartition:
    """Where a day's source objects live and where its aggregate goes."""

    day: str
    prefix: str
    output_key: str


@dataclass(slots=True)
class AggregationResult:
    bucket: str
    day: str
    output_key: str
    source_keys: list[str]
    row_count: int
    failures: list[RecordParseError] = field(default_factory=list)
    bytes_written: int = 0

    def to_summary(self, max_failure_samples: int = 10) -> dict[str, Any]:
        """JSON-serialisable summary for logs and the invocation result."""
        return {
            "bucket": self.bucket,
            "day": self.day,
            "output_key": self.output_key,
            "source_objects": len(self.source_keys),
            "row_count": self.row_count,
            "failed_line_count": len(self.failures),
            "bytes_written": self.bytes_written,
            "failure_samples": [
                {
                    "key": failure.key,
                    "line_index": failure.line_index,
                    "reason": failure.reason,
                }
                for failure in self.failures[:max_failure_samples]
            ],
        }


# --- Helpers ---
def derive_day_partition(key: str, output_prefix: str = "daily") -> DayPartition:
    """
    Splits ``{category}/{day}/{filename}`` into the listing prefix for the day
    and the aggregate's output key.
    """
    parts = key.split("/")
    if len(parts) != 3:
        raise MalformedKeyError(
            key, f"expected 3 path segments, found {len(parts)}"
        )
    if not all(parts):
        raise MalformedKeyError(key, "empty path segment")

    day = parts[1]
    prefix = "/".join(parts[:-1]) + "/"
    return DayPartition(
        day=day, prefix=prefix, output_key=f"{output_prefix}/{day}.csv"
    )


def split_lines(body: bytes) -> Iterator[tuple[int, str]]:
    """
    Yields ``(line_index, line)`` for every non-blank line of an NDJSON body.
    Line indexes count blank lines too, so they point at the physical line.
    """
    text = body.decode("utf-8-sig", errors="replace")
    # Not str.splitlines(): JSON strings may hold a raw U+2028.
    for index, line in enumerate(text.split("\n")):
        line = line.rstrip("\r")
        if line.strip():
            yield index, line


def parse_records(
    key: str, body: bytes
) -> tuple[list[list[str]], list[RecordParseError]]:
    """
    Converts every line of one object into CSV fields. A line that cannot
    become a UTF-8 CSV row is collected as a failure instead of aborting the
    object.
    """
    rows: list[list[str]] = []
    failures: list[RecordParseError] = []

    for line_index, line in split_lines(body):
        try:
            record = json.loads(line)
            if not isinstance(record, dict):
                raise TypeError(
                    f"expected a JSON object, got {type(record).__name__}"
                )
            fields = build_csv_fields(record)
            # Lone surrogates survive json.loads but cannot be written out.
            quote_row(fields).encode("utf-8")
        except (ValueError, TypeError, RecursionError) as e:
            # JSONDecodeError and UnicodeEncodeError are ValueErrors
            failures.append(RecordParseError(key, line_index, line, str(e)))
        else:
            rows.append(fields)

    return rows, failures


def _log_failures(failures: list[RecordParseError], max_chars: int) -> None:
    for failure in failures:
        raw = failure.raw_line
        logger.warning(
            "Skipping unparseable record.",
            extra={
                "key": failure.key,
                "line_index": failure.line_index,
                "reason": failure.reason,
                "raw_line": raw if len(raw) <= max_chars else raw[:max_chars] + "...",
            },
        )


# --- High-Level Orchestrator ---
def aggregate_day(
    s3_client: S3Client, bucket: str, key: str, config: AppConfig
) -> AggregationResult:
    """
    Rebuilds the aggregate CSV for the day that *key* belongs to and writes it
    to ``{output_prefix}/{day}.csv`` in *bucket*, replacing any previous one.
    """
    partition = derive_day_partition(key, config.output_prefix)
    logger.info(
        "Aggregating day",
        extra={
            "bucket": bucket,
            "trigger_key": key,
            "day": partition.day,
            "prefix": partition.prefix,
        },
    )

    source_keys = s3_client.list_keys(bucket, partition.prefix)
    if key not in source_keys:
        logger.warning(
            "Triggering object is missing from the listing.",
            extra={"bucket": bucket, "key": key, "listed": len(source_keys)},
        )

    bodies = fetch_all(s3_client, bucket, source_keys, config.fetch_concurrency)

    all_rows: list[list[str]] = []
    failures: list[RecordParseError] = []
    for source_key, body in zip(source_keys, bodies):
        rows, object_failures = parse_records(source_key, body)
        all_rows.extend(rows)
        failures.extend(object_failures)
        logger.debug(
            "Parsed source object",
            extra={
                "key": source_key,
                "rows": len(rows),
                "failed_lines": len(object_failures),
            },
        )

    if failures:
        _log_failures(failures, config.max_logged_line_chars)

    if config.sort_rows:
        all_rows.sort(key=lambda fields: fields[_DATE_UTC_INDEX])

    payload = "\n".join(quote_row(fields) for fields in all_rows).encode("utf-8")

    try:
        s3_client.put_object_bytes(
            bucket, partition.output_key, payload, CSV_CONTENT_TYPE
        )
    except RetryableError as e:
        raise WriteError(
            bucket,
            partition.output_key,
            e.message,
            context={"cause": e.to_dict()},
        ) from e

    result = AggregationResult(
        bucket=bucket,
        day=partition.day,
        output_key=partition.output_key,
        source_keys=source_keys,
        row_count=len(all_rows),
        failures=failures,
        bytes_written=len(payload),
    )
    logger.info(
        "Successfully wrote daily aggregate",
        extra=result.to_summary(config.max_failure_samples),
    )
    return result
