"""Data model shared by the listener, the aggregator and the dispatcher."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping

# Keys carried as LogRecord attributes; they may not appear in the extension map.
RESERVED_FIELDS = ("timestamp", "content")


class EncodingMode(str, Enum):
    """Wire encoding of an event message."""
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class LogRecord:
    """
    One parsed syslog entry.

    ``timestamp`` and ``content`` are always present; everything else the
    parser extracted (facility, severity, hostname, ...) lives in ``fields``.
    """
    timestamp: datetime
    content: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        clashes = [key for key in RESERVED_FIELDS if key in self.fields]
        if clashes:
            raise ValueError(f"Extension fields may not redefine {clashes}")
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get(self, key: str, default: Any = None) -> Any:
        if key == "timestamp":
            return self.timestamp
        if key == "content":
            return self.content
        return self.fields.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten well-known and extension fields into one mapping."""
        data = dict(self.fields)
        data["timestamp"] = self.timestamp
        data["content"] = self.content
        return data


@dataclass(frozen=True)
class SerializedEvent:
    """Wire form of one record for a PutLogEvents call."""
    timestamp_ms: int
    message: str

    def to_api(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp_ms, "message": self.message}
