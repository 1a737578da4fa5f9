"""UTC time helpers.

Columns are stored as naive UTC `DateTime`, so every timestamp the service
writes or compares goes through `utcnow()`.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def day_window(now: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) of the UTC calendar day containing `now`."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600
