"""Date helpers. All timestamps are naive UTC, matching the database columns."""

import calendar
from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Get current UTC datetime without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_utc_midnight(now: datetime) -> datetime:
    """Start of the next UTC day."""
    return datetime.combine(now.date() + timedelta(days=1), time.min)


def at_utc_time(day: date, hour: int, minute: int) -> datetime:
    return datetime.combine(day, time(hour=hour, minute=minute))
