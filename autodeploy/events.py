"""
Append-only deployment log entries.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(timestamp=data["timestamp"], level=data["level"], message=data["message"])


def append_entry(logs: List[LogEntry], level: LogLevel, message: str,
                 now: Optional[datetime] = None) -> LogEntry:
    """
    Append a log entry, keeping the log non-decreasing in time.

    Args:
        logs: Existing entries (mutated in place)
        level: Entry level
        message: Human-readable message
        now: Clock reading; defaults to the current UTC time

    Returns:
        The appended entry
    """
    ts = now or utcnow()
    if logs:
        last = parse_ts(logs[-1].timestamp)
        if ts < last:
            # clock went backwards; pin to the previous entry
            ts = last
    entry = LogEntry(timestamp=format_ts(ts), level=LogLevel(level).value, message=message)
    logs.append(entry)
    return entry


def is_time_ordered(logs: Sequence[LogEntry]) -> bool:
    stamps = [parse_ts(e.timestamp) for e in logs]
    return all(a <= b for a, b in zip(stamps, stamps[1:]))
