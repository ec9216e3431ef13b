"""List filters, month grid and reminder text built on the occurrence evaluator."""

from __future__ import annotations

import calendar
from datetime import date, datetime
from enum import Enum
from typing import Iterable

from pydantic import BaseModel

from core.models import ScheduleRecord
from core.occurrence import covers_day, schedules_on

DEFAULT_TITLE = "Schedule"
DEFAULT_BODY = "It's time for your schedule."


class ListFilter(str, Enum):
    ALL = "all"
    TODAY = "today"
    UPCOMING = "upcoming"


class CalendarDay(BaseModel):
    day: date
    is_today: bool = False
    schedules: list[ScheduleRecord] = []


def sort_key(record: ScheduleRecord) -> tuple:
    anchor = record.anchor_day() or date.max
    return (anchor, record.date.time() if record.date else datetime.min.time(), record.id)


def _is_upcoming(record: ScheduleRecord, today: date) -> bool:
    last = record.last_day()
    if last is None:
        # Recurring without an end date never runs out.
        return record.anchor_day() is not None
    return last >= today


def filter_schedules(
    records: Iterable[ScheduleRecord],
    mode: ListFilter | str,
    now: datetime,
) -> list[ScheduleRecord]:
    """Apply a list filter and order the result by effective date."""
    mode = ListFilter(mode)
    today = now.date()
    if mode == ListFilter.TODAY:
        selected = [r for r in records if covers_day(r, today)]
    elif mode == ListFilter.UPCOMING:
        selected = [r for r in records if _is_upcoming(r, today)]
    else:
        selected = list(records)
    return sorted(selected, key=sort_key)


def month_grid(
    records: Iterable[ScheduleRecord],
    year: int,
    month: int,
    today: date | None = None,
) -> list[CalendarDay]:
    records = list(records)
    days_in_month = calendar.monthrange(year, month)[1]
    grid = []
    for n in range(1, days_in_month + 1):
        day = date(year, month, n)
        grid.append(
            CalendarDay(
                day=day,
                is_today=day == today,
                schedules=sorted(schedules_on(records, day), key=sort_key),
            )
        )
    return grid


def reminder_title(record: ScheduleRecord) -> str:
    return record.title or DEFAULT_TITLE


def reminder_body(record: ScheduleRecord) -> str:
    parts = []
    if record.description:
        parts.append(record.description)
    if record.location:
        parts.append(f"Location: {record.location}")
    return "\n".join(parts) or DEFAULT_BODY
