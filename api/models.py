"""API request and response models."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SchedulePushRequest(_CamelModel):
    # Presence is checked in the handler, which answers 400 rather than 422.
    subscription_id: str | None = None
    title: str | None = None
    message: str | None = None
    send_after_iso: str | None = Field(default=None, alias="sendAfterISO")


class SaveResponse(_CamelModel):
    schedule: dict
    reminder_scheduled: bool = False
    warnings: list[str] = []


class CalendarDayResponse(_CamelModel):
    day: str
    is_today: bool
    schedules: list[dict]
