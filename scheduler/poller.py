"""Polling notifier: re-evaluates every schedule and reminds once per occurrence."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.logging_config import reset_tick_id, set_tick_id
from core.models import ScheduleRecord, local_now
from core.occurrence import dedupe_key, should_fire_now
from core.settings import Settings
from core.views import reminder_body, reminder_title
from notify.relay_client import PushRelayClient
from notify.sinks import ConsoleSink, FallbackSink, NotificationOptions, NotificationSink, RelaySink
from scheduler.runtime import NotificationRuntime, Permission, PushInitState
from store.schedule_store import NotifiedKeyStore, ScheduleStore

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0
REMINDER_ICON = "/logo192.png"
_JOB_ID = "schedule-notification-poll"

StopHandle = Callable[[], None]


def _noop() -> None:
    pass


class NotificationPoller:
    """Idle → Polling → Idle.

    ``start()`` runs one pass immediately and then one every
    ``interval_seconds`` until the returned stop handle is called.
    """

    def __init__(
        self,
        schedule_store: ScheduleStore,
        notified_store: NotifiedKeyStore,
        sink: NotificationSink,
        runtime: NotificationRuntime,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = local_now,
    ):
        self._schedules = schedule_store
        self._notified_store = notified_store
        self._sink = sink
        self._runtime = runtime
        self._interval = interval_seconds
        self._clock = clock
        self._notified: set[str] = set()
        self._aps: AsyncIOScheduler | None = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._aps is not None and self._aps.running

    async def start(self) -> StopHandle:
        if not self._runtime.supports_notifications:
            logger.info("Notifications unsupported, poller not started")
            return _noop
        if not self._runtime.is_secure_context:
            logger.info("Insecure origin, poller not started", extra={"origin": self._runtime.origin})
            return _noop
        if self.running:
            return self.stop

        self._notified = await self._notified_store.load()
        await self.run_pass()

        self._aps = AsyncIOScheduler()
        self._aps.add_job(
            self.run_pass,
            trigger=IntervalTrigger(seconds=self._interval),
            id=_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._aps.start()
        logger.info("NotificationPoller started", extra={"interval_seconds": self._interval})
        return self.stop

    def stop(self) -> None:
        """Cancel the repeating pass. Safe to call more than once."""
        aps, self._aps = self._aps, None
        if aps is not None and aps.running:
            aps.shutdown(wait=False)
            logger.info("NotificationPoller stopped")

    async def reset_notified(self) -> None:
        """Forget every delivered reminder so due occurrences fire again."""
        await self._notified_store.reset()
        self._notified.clear()

    # ── Evaluation ───────────────────────────────────────────────────────────

    async def run_pass(self) -> None:
        """Evaluate every stored schedule against the current instant."""
        token = set_tick_id(uuid.uuid4().hex[:12])
        try:
            now = self._clock()
            records = await self._schedules.load_all()
            await asyncio.gather(*(self._maybe_notify(r, now) for r in records))
        finally:
            reset_tick_id(token)

    async def _maybe_notify(self, record: ScheduleRecord, now: datetime) -> None:
        if not record.id:
            return
        key = dedupe_key(record, now)
        if key in self._notified:
            return
        if not should_fire_now(record, now):
            return

        permission = await self._runtime.check_permission()
        if permission != Permission.GRANTED.value:
            logger.info("Notification permission not granted",
                        extra={"schedule_id": record.id, "permission": permission})
            return

        options = NotificationOptions(
            body=reminder_body(record),
            icon=REMINDER_ICON,
            badge=REMINDER_ICON,
            tag=f"schedule-{record.id}",
            data={"id": record.id},
        )
        try:
            delivered = await self._sink.send(reminder_title(record), options)
        except Exception:
            logger.exception("Notification sink raised", extra={"schedule_id": record.id})
            delivered = False
        if not delivered:
            logger.warning("Reminder not delivered, will retry", extra={"schedule_id": record.id})
            return

        self._notified.add(key)
        try:
            await self._notified_store.save(self._notified)
        except Exception:
            logger.exception("Failed to persist notified keys", extra={"key": key})
        logger.info("Reminder sent", extra={"schedule_id": record.id, "key": key})


def build_poller(
    settings: Settings,
    schedule_store: ScheduleStore,
    notified_store: NotifiedKeyStore,
    push_state: PushInitState,
) -> NotificationPoller:
    """Poller delivering through the push relay, falling back to the console."""
    sink = FallbackSink(
        RelaySink(PushRelayClient(settings.app_base_url), push_state),
        ConsoleSink(),
    )
    runtime = NotificationRuntime(
        supports_notifications=True,
        origin=settings.app_base_url,
        permission=settings.notification_permission,
    )
    return NotificationPoller(
        schedule_store,
        notified_store,
        sink,
        runtime,
        interval_seconds=settings.poll_interval_seconds,
    )
