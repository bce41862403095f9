"""Time helpers shared by the commission and balance calculations.

Datetimes are stored in UTC. SQLite drops tzinfo on the way back, so reads go
through ``as_utc`` before they are compared with an aware ``now``.
"""
from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, timezone, tzinfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a stored datetime to an aware UTC value."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_midnight(day: date, tz: tzinfo) -> datetime:
    """Start of ``day`` in ``tz`` as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=tz)


def month_start(day: date) -> date:
    return date(day.year, day.month, 1)


def add_months(anchor: date, months: int) -> date:
    """Shift ``anchor`` by ``months`` (may be negative), clamping to the month's last day."""
    index = anchor.year * 12 + (anchor.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor.day, last_day))


def day_after(day: date) -> date:
    return day + timedelta(days=1)


__all__ = [
    "add_months",
    "as_utc",
    "day_after",
    "local_midnight",
    "month_start",
    "utcnow",
]
