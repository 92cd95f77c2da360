# src/daily_csv/codec.py

"""
Pure mapping from one decoded measurement record to one CSV row.

Rows follow the published column order below. Every field is wrapped in
double quotes and embedded quotes are NOT escaped, and no header row is ever
emitted; downstream consumers depend on that legacy layout.
"""

import json
import math
from datetime import datetime, timezone
from typing import Any, Mapping

CSV_COLUMNS: tuple[str, ...] = (
    "location",
    "value",
    "unit",
    "parameter",
    "country",
    "city",
    "sourceName",
    "date_utc",
    "date_local",
    "sourceType",
    "mobile",
    "latitude",
    "longitude",
    "averagingPeriodValue",
    "averagingPeriodUnit",
)

_SCALAR_FIELDS_BEFORE_DATE = (
    "location",
    "value",
    "unit",
    "parameter",
    "country",
    "city",
    "sourceName",
)


def format_field(value: Any) -> str:
    """Render a JSON value the way the legacy JavaScript exporter did."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def normalize_utc_timestamp(value: Any) -> str:
    """
    Normalize an ISO-8601 timestamp to ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    Naive and date-only values are taken to be UTC. Raises ValueError for
    anything that is not a parseable ISO-8601 string.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"date.utc must be a non-empty string, got {value!r}")

    text = value.strip()
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        parsed = parsed.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"date.utc is out of range in UTC: {value!r}") from e

    millis = parsed.microsecond // 1000
    return f"{parsed.strftime('%Y-%m-%dT%H:%M:%S')}.{millis:03d}Z"


def _nested(record: Mapping[str, Any], field: str) -> Mapping[str, Any]:
    value = record.get(field)
    return value if isinstance(value, Mapping) else {}


def build_csv_fields(record: Mapping[str, Any]) -> list[str]:
    """
    Map a measurement record to its 15 unquoted CSV fields.

    Missing optional fields become empty strings. Only the ``date.utc``
    normalization can raise (ValueError).
    """
    fields = [format_field(record.get(name)) for name in _SCALAR_FIELDS_BEFORE_DATE]

    measured_at = _nested(record, "date")
    fields.append(normalize_utc_timestamp(measured_at.get("utc")))
    fields.append(format_field(measured_at.get("local")))

    fields.append(format_field(record.get("sourceType")))
    fields.append(format_field(record.get("mobile")))

    coordinates = _nested(record, "coordinates")
    fields.append(format_field(coordinates.get("latitude")))
    fields.append(format_field(coordinates.get("longitude")))

    averaging_period = _nested(record, "averagingPeriod")
    fields.append(format_field(averaging_period.get("value")))
    fields.append(format_field(averaging_period.get("unit")))

    return fields


def quote_row(fields: list[str]) -> str:
    # Legacy layout: quotes inside a field are written as-is.
    return ",".join(f'"{field}"' for field in fields)


def encode_row(record: Mapping[str, Any]) -> str:
    """Encode one record as a single quoted CSV line (no newline)."""
    return quote_row(build_csv_fields(record))
