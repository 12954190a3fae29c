# backend/cloudstash/utils/time_utils.py
"""
Time utilities for queue bookkeeping.

All queue timestamps are timezone-aware UTC datetimes; the operator API
exposes them as epoch milliseconds.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

UTC_TIMEZONE = timezone.utc

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """
    Get current UTC timestamp.

    Returns:
        Current timezone-aware UTC datetime object
    """
    return datetime.now(UTC_TIMEZONE)


def utc_timestamp() -> str:
    """Get current UTC timestamp as ISO string."""
    return utc_now().isoformat()


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    """
    Convert a datetime to integer epoch milliseconds.

    Naive datetimes are treated as UTC.

    Args:
        value: Datetime to convert, may be None

    Returns:
        Milliseconds since the epoch, or None when value is None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC_TIMEZONE)
    return int(value.timestamp() * 1000)


class ManualClock:
    """
    Controllable clock for deterministic scheduling.

    Callable like utc_now, so it can be injected wherever a Clock is accepted.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or utc_now()

    def __call__(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0, milliseconds: int = 0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, milliseconds=milliseconds)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
