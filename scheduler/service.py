"""Schedule save flow: validate, commit, then try to book a push reminder."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from core.models import ScheduleRecord, ScheduleType, local_now, new_schedule_id, validate_record
from core.views import reminder_body, reminder_title
from notify.relay_client import PushRelayClient, PushRelayError
from scheduler.runtime import PushInitState
from store.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class ScheduleValidationError(Exception):
    def __init__(self, errors: dict[str, str]):
        super().__init__(", ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


@dataclass
class SaveResult:
    record: ScheduleRecord
    reminder_scheduled: bool = False
    warnings: list[str] = field(default_factory=list)


class ScheduleService:
    """Create/update/delete schedules.

    The record is committed before any reminder booking is attempted, and a
    failed booking never undoes the save.
    """

    def __init__(
        self,
        store: ScheduleStore,
        relay: PushRelayClient | None = None,
        push_state: PushInitState | None = None,
        clock=local_now,
    ):
        self._store = store
        self._relay = relay
        self._push_state = push_state or PushInitState()
        self._clock = clock

    async def create(self, record: ScheduleRecord) -> SaveResult:
        """Save *record* as a new schedule under a freshly generated id."""
        record = record.model_copy(update={"id": new_schedule_id()})
        self._validate(record)
        saved = await self._store.create(record)
        return await self._after_save(saved)

    async def update(self, schedule_id: str, record: ScheduleRecord) -> SaveResult:
        """Raises KeyError if *schedule_id* is unknown."""
        self._validate(record)
        saved = await self._store.update(schedule_id, record)
        return await self._after_save(saved)

    async def delete(self, schedule_id: str) -> None:
        await self._store.delete(schedule_id)

    # ── Internal ──────────────────────────────────────────────────────────────

    @staticmethod
    def _validate(record: ScheduleRecord) -> None:
        errors = validate_record(record)
        if errors:
            raise ScheduleValidationError(errors)

    async def _after_save(self, record: ScheduleRecord) -> SaveResult:
        result = SaveResult(record=record)
        send_after = self._reminder_instant(record)
        if send_after is None:
            return result
        try:
            await self._relay.schedule_push(
                subscription_id=self._push_state.subscription_id,
                title=reminder_title(record),
                message=reminder_body(record),
                send_after=send_after,
            )
        except (PushRelayError, httpx.HTTPError) as e:
            logger.warning("Push reminder not scheduled: %s", e, extra={"schedule_id": record.id})
            result.warnings.append(f"Reminder could not be scheduled: {e}")
            return result
        result.reminder_scheduled = True
        logger.info("Push reminder scheduled",
                    extra={"schedule_id": record.id, "send_after": send_after.isoformat()})
        return result

    def _reminder_instant(self, record: ScheduleRecord) -> datetime | None:
        """Instant to book a server-side push for, or None when none applies.

        Only future single schedules are booked; recurring and period reminders
        come from the poller.
        """
        if self._relay is None or not self._push_state.ready:
            return None
        if record.schedule_type != ScheduleType.SINGLE or record.date is None:
            return None
        if record.date <= self._clock():
            return None
        return record.date
