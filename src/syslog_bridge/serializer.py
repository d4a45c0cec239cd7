"""Serialization of log records into CloudWatch Logs events."""

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict

from .models import EncodingMode, LogRecord, SerializedEvent

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def to_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_millis(value: datetime) -> int:
    """
    Convert a datetime to whole milliseconds since the Unix epoch.

    Naive datetimes are read as UTC. Sub-millisecond precision is truncated
    towards negative infinity.
    """
    return (to_utc(value) - EPOCH) // _ONE_MS


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def encode_record(record: LogRecord) -> str:
    """Encode every field of a record as one JSON object."""
    return json.dumps(record.to_dict(), default=_json_default, ensure_ascii=False)


def decode_record(message: str) -> Dict[str, Any]:
    """Inverse of ``encode_record``; the timestamp is parsed back into a datetime."""
    data = json.loads(message)
    data["timestamp"] = datetime.fromisoformat(data["timestamp"])
    return data


def serialize_record(record: LogRecord, encoding: EncodingMode) -> SerializedEvent:
    """Build the wire event for one record."""
    if encoding == EncodingMode.JSON:
        message = encode_record(record)
    else:
        message = record.content

    return SerializedEvent(
        timestamp_ms=to_epoch_millis(record.timestamp),
        message=message
    )
