"""Helpers for working with naive-UTC datetimes."""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Return the current UTC time without ``tzinfo``.

    Every timestamp column in the service stores naive UTC values.
    """

    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_utc_naive(value: datetime, tz_name: str | None = None) -> datetime:
    """Normalize ``value`` to naive UTC.

    Naive values are interpreted in ``tz_name`` (UTC when omitted). Unknown
    timezone names raise ``ValueError``.
    """

    if value.tzinfo is None:
        if tz_name and tz_name.upper() != "UTC":
            try:
                value = value.replace(tzinfo=ZoneInfo(tz_name))
            except ZoneInfoNotFoundError as exc:
                raise ValueError(f"Unknown timezone: {tz_name}") from exc
        else:
            return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_interval(value: datetime, interval: int, unit: str) -> datetime:
    """Add ``interval`` units (minute, hour, day, week, month) to ``value``."""

    if unit == "month":
        return add_months(value, interval)
    deltas = {
        "minute": timedelta(minutes=interval),
        "hour": timedelta(hours=interval),
        "day": timedelta(days=interval),
        "week": timedelta(weeks=interval),
    }
    if unit not in deltas:
        raise ValueError(f"Unsupported interval unit: {unit}")
    return value + deltas[unit]
