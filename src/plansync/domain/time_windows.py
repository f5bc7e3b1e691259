"""Clock and time window helpers used by sync batching."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

WATERMARK_RESOLUTION = timedelta(microseconds=1)
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class Clock(Protocol):
    def __call__(self) -> datetime: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Return ``value`` in UTC, treating naive values as UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as emitted by the remote APIs."""

    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(normalized))


def to_epoch_millis(value: datetime) -> int:
    return (ensure_aware(value) - _EPOCH) // timedelta(milliseconds=1)


@dataclass(frozen=True, slots=True)
class BatchWindow:
    """Closed interval of change timestamps covered by one batch."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Batch window bounds must include timezone information")
        if self.start > self.end:
            raise ValueError("Batch window start must not be after its end")

    def just_before(self) -> datetime:
        """Latest instant that is still strictly earlier than this window."""

        return self.start - WATERMARK_RESOLUTION


__all__ = [
    "WATERMARK_RESOLUTION",
    "BatchWindow",
    "Clock",
    "ensure_aware",
    "parse_timestamp",
    "to_epoch_millis",
    "utcnow",
]
