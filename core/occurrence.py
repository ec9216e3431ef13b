"""Occurrence evaluation: which days a schedule covers and when it should remind.

The calendar grid, the list filters and the notification poller all evaluate
schedules here. All arithmetic is on naive local calendar dates.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Iterator

from core.models import RecurringType, ScheduleRecord, ScheduleType, to_local_naive

FIRING_WINDOW = timedelta(seconds=60)

# Monthly and yearly strides are approximated as fixed 30- and 365-day blocks
# combined with a day-of-month (and month) match.
_DAYS_PER_MONTH = 30
_DAYS_PER_YEAR = 365


def _as_day(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def covers_day(record: ScheduleRecord, day: date | datetime) -> bool:
    """Return True if *record* has an occurrence on calendar day *day*."""
    day = _as_day(day)

    if record.schedule_type == ScheduleType.RECURRING:
        return _recurring_covers(record, day)

    if record.schedule_type == ScheduleType.PERIOD:
        start, end = record.period_start_date, record.period_end_date
        if start is None or end is None:
            return False
        return start <= day <= end

    return record.date is not None and record.date.date() == day


def _recurring_covers(record: ScheduleRecord, day: date) -> bool:
    if record.date is None or record.recurring_type is None:
        return False

    anchor = record.date.date()
    if day < anchor:
        return False
    if record.recurring_end_date is not None and day > record.recurring_end_date:
        return False

    days_diff = (day - anchor).days
    interval = record.recurring_interval

    if record.recurring_type == RecurringType.DAILY:
        return days_diff % interval == 0
    if record.recurring_type == RecurringType.WEEKLY:
        return days_diff % (interval * 7) == 0
    if record.recurring_type == RecurringType.MONTHLY:
        return (days_diff // _DAYS_PER_MONTH) % interval == 0 and day.day == anchor.day
    if record.recurring_type == RecurringType.YEARLY:
        return (
            (days_diff // _DAYS_PER_YEAR) % interval == 0
            and day.month == anchor.month
            and day.day == anchor.day
        )
    return False


def should_fire_now(record: ScheduleRecord, now: datetime) -> bool:
    """Return True if a reminder for *record* is due at instant *now*.

    Single schedules fire only inside the minute *after* their instant, never
    early. Recurring and period schedules have no time-of-day gate: every poll
    on a covered day is a candidate, and the day-scoped dedupe key keeps it to
    one reminder.
    """
    now = to_local_naive(now)
    if record.schedule_type == ScheduleType.SINGLE:
        if record.date is None:
            return False
        return record.date <= now and now - record.date <= FIRING_WINDOW
    return covers_day(record, now.date())


def dedupe_key(record: ScheduleRecord, now: datetime) -> str:
    """Key under which a fired reminder is remembered.

    Recurring schedules get one key per calendar day so each day's occurrence
    is reminded independently; single and period schedules use the bare id.
    """
    if record.schedule_type == ScheduleType.RECURRING:
        return f"{record.id}:{to_local_naive(now).date().isoformat()}"
    return record.id


def days_in_range(record: ScheduleRecord, start: date, end: date) -> Iterator[date]:
    """Yield every day in ``[start, end]`` covered by *record*."""
    day = start
    while day <= end:
        if covers_day(record, day):
            yield day
        day += timedelta(days=1)


def schedules_on(records: Iterable[ScheduleRecord], day: date) -> list[ScheduleRecord]:
    return [r for r in records if covers_day(r, day)]
