"""Naive-UTC time helpers shared by the database layer and the scheduler."""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_utc_day(now: datetime) -> datetime:
    """Midnight of the UTC calendar day containing ``now``."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days elapsed from ``start`` to ``end`` (floored)."""
    return (end - start) // timedelta(days=1)
