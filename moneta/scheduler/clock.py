"""
Time helpers for the scheduler.

All scheduler bookkeeping is done in epoch milliseconds (UTC).
ISO dates ("YYYY-MM-DD") are anchored at UTC midnight.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return to_ms(datetime.now(timezone.utc))


def to_ms(moment: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive values are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_ms(timestamp: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=timestamp)


def date_to_ms(day: date) -> int:
    """UTC midnight of a calendar date, in epoch milliseconds."""
    return to_ms(datetime(day.year, day.month, day.day, tzinfo=timezone.utc))


def parse_iso_timestamp(value: Optional[str]) -> Optional[int]:
    """
    Parse an ISO date or datetime string into epoch milliseconds.

    Returns None when the value is empty or unparseable; callers decide
    how to recover.
    """
    if not value:
        return None
    text = value.strip()
    try:
        return date_to_ms(date.fromisoformat(text))
    except ValueError:
        pass
    try:
        return to_ms(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def fixed_clock(timestamp: int) -> Clock:
    """A clock frozen at the given timestamp."""
    return lambda: timestamp
