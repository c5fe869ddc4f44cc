"""Schedule specification parsing and occurrence calculation."""

from datetime import datetime, timedelta
from typing import Any

from pydantic import TypeAdapter, ValidationError

from app.models.scheduled_notification import (
    CustomSchedule,
    OnceSchedule,
    RecurringSchedule,
    ScheduledNotification,
    ScheduleSpec,
)
from app.services.errors import InvalidScheduleError
from app.utils.datetime import add_interval, add_months, ensure_utc_naive

_schedule_adapter: TypeAdapter[ScheduleSpec] = TypeAdapter(ScheduleSpec)


def parse_schedule(raw: dict[str, Any]) -> OnceSchedule | RecurringSchedule | CustomSchedule:
    """Validate a raw schedule mapping.

    Raises:
        InvalidScheduleError: If the mapping is not a valid schedule
    """
    try:
        return _schedule_adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidScheduleError(f"Invalid schedule: {e.errors()[0]['msg']}") from e


def advance(spec: RecurringSchedule | CustomSchedule, start: datetime) -> datetime:
    """Return ``start`` plus one recurrence period."""
    if isinstance(spec, CustomSchedule):
        return add_interval(start, spec.interval, spec.unit)
    if spec.type == "daily":
        return start + timedelta(days=1)
    if spec.type == "weekly":
        return start + timedelta(weeks=1)
    return add_months(start, 1)


def calculate_scheduled_at(
    spec: OnceSchedule | RecurringSchedule | CustomSchedule,
    now: datetime,
) -> datetime:
    """Compute the first run time of a schedule.

    An explicit ``datetime`` (read in ``timezone`` when naive) pins the first
    run; otherwise recurring schedules first fire one period after ``now``.

    Raises:
        InvalidScheduleError: For a one-time schedule that is not in the
            future, or an unknown timezone
    """
    if spec.datetime is not None:
        try:
            scheduled_at = ensure_utc_naive(spec.datetime, spec.timezone)
        except ValueError as e:
            raise InvalidScheduleError(str(e)) from e
        if isinstance(spec, OnceSchedule) and scheduled_at <= now:
            raise InvalidScheduleError("One-time schedule must be in the future")
        return scheduled_at

    return advance(spec, now)


def next_occurrence(notification: ScheduledNotification, now: datetime) -> datetime | None:
    """Next run of a recurring notification, measured from ``now``.

    Returns None for one-time schedules.
    """
    spec = parse_schedule(notification.schedule)
    if isinstance(spec, OnceSchedule):
        return None
    return advance(spec, now)
