"""Datetime utilities for common operations."""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional


def now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    SQLite hands back naive values for timezone-aware columns; everything we
    store is UTC, so a naive value read back is UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_months(dt: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the end of the target month.

    Args:
        dt: Starting datetime
        months: Number of months to add

    Returns:
        Shifted datetime (Jan 31 + 1 month -> Feb 28/29)
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 rendering in UTC, or None."""
    dt = ensure_utc(dt)
    return dt.isoformat() if dt else None


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return now()


class FrozenClock:
    """Manually advanced clock for tests and replays."""

    def __init__(self, at: Optional[datetime] = None):
        self._now = ensure_utc(at) if at else now()

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, at: datetime) -> None:
        self._now = ensure_utc(at)
