"""Schedule record model and save-time validation."""

import re
import uuid
import datetime as dt
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScheduleType(str, Enum):
    SINGLE = "single"
    RECURRING = "recurring"
    PERIOD = "period"


class RecurringType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def new_schedule_id() -> str:
    return uuid.uuid4().hex


def local_now() -> dt.datetime:
    """Naive local wall-clock time; recurrence arithmetic is timezone-unaware."""
    return dt.datetime.now().replace(microsecond=0)


def to_local_naive(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class ScheduleRecord(BaseModel):
    """A persisted schedule entry.

    ``schedule_type`` selects which temporal fields are authoritative:

    * ``single``    → ``date``
    * ``recurring`` → ``date`` (anchor), ``recurring_type``,
      ``recurring_interval``, ``recurring_end_date``
    * ``period``    → ``period_start_date`` / ``period_end_date``

    Fields of the inactive shapes are kept as-is when the type changes.
    Serialised with camelCase keys (``scheduleType``, ``recurringEndDate`` …).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=new_schedule_id)
    title: str = ""
    description: str = ""
    location: str = ""
    priority: Priority = Priority.MEDIUM
    schedule_type: ScheduleType = ScheduleType.SINGLE
    date: dt.datetime | None = None
    recurring_type: RecurringType | None = None
    recurring_interval: int = Field(default=1, ge=1)
    recurring_end_date: dt.date | None = None
    period_start_date: dt.date | None = None
    period_end_date: dt.date | None = None
    period_start_time: str | None = None
    period_end_time: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @field_validator("schedule_type", mode="before")
    @classmethod
    def _missing_type_is_single(cls, v: Any) -> Any:
        # Records written before schedule types existed carry no type at all.
        return v or ScheduleType.SINGLE

    @field_validator("date", mode="after")
    @classmethod
    def _naive_date(cls, v: dt.datetime | None) -> dt.datetime | None:
        return to_local_naive(v) if v is not None else None

    @field_validator("recurring_end_date", "period_start_date", "period_end_date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        # Accept full datetimes ("2024-03-01T00:00") and keep the calendar day.
        if isinstance(v, str) and len(v) > 10 and v[10] in "T ":
            return v[:10]
        if isinstance(v, dt.datetime):
            return v.date()
        return v

    @field_validator("title", "description", "location", mode="before")
    @classmethod
    def _strip_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    def to_storage(self) -> dict:
        """JSON-compatible dict with camelCase keys and no null fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def anchor_day(self) -> dt.date | None:
        if self.schedule_type == ScheduleType.PERIOD:
            return self.period_start_date
        return self.date.date() if self.date else None

    def last_day(self) -> dt.date | None:
        """Last calendar day the record can cover, ``None`` if unbounded."""
        if self.schedule_type == ScheduleType.PERIOD:
            return self.period_end_date
        if self.schedule_type == ScheduleType.RECURRING:
            return self.recurring_end_date
        return self.date.date() if self.date else None


def validate_record(record: ScheduleRecord) -> dict[str, str]:
    """Check the fields a save requires for the record's schedule type.

    Returns a ``{camelCaseField: message}`` map; empty when the record is valid.
    """
    errors: dict[str, str] = {}

    if not record.title.strip():
        errors["title"] = "Title is required"

    if record.schedule_type == ScheduleType.SINGLE:
        if record.date is None:
            errors["date"] = "Date and time are required"

    elif record.schedule_type == ScheduleType.RECURRING:
        if record.date is None:
            errors["date"] = "Start date and time are required"
        if record.recurring_type is None:
            errors["recurringType"] = "Recurrence type is required"
        if record.recurring_end_date is None:
            errors["recurringEndDate"] = "Recurrence end date is required"
        elif record.date is not None and record.recurring_end_date < record.date.date():
            errors["recurringEndDate"] = "Recurrence end date must not precede the start date"

    elif record.schedule_type == ScheduleType.PERIOD:
        if record.period_start_date is None:
            errors["periodStartDate"] = "Start date is required"
        if record.period_end_date is None:
            errors["periodEndDate"] = "End date is required"
        if (
            record.period_start_date is not None
            and record.period_end_date is not None
            and record.period_start_date >= record.period_end_date
        ):
            errors["periodEndDate"] = "End date must be after the start date"
        for field, value in (
            ("periodStartTime", record.period_start_time),
            ("periodEndTime", record.period_end_time),
        ):
            if value and not _HHMM.match(value):
                errors[field] = "Time must use HH:MM"

    return errors
