"""Tests for the notification poller: start/stop, dedupe, retry and permission."""

import asyncio
import json
from datetime import datetime, timedelta

import pytest

from core.models import ScheduleRecord
from core.views import DEFAULT_BODY
from notify.sinks import NotificationOptions, NotificationSink
from scheduler.poller import NotificationPoller
from scheduler.runtime import NotificationRuntime
from store.kv_store import KeyValueStore
from store.schedule_store import NOTIFIED_KEY, SCHEDULES_KEY, NotifiedKeyStore, ScheduleStore


# ── Fakes ─────────────────────────────────────────────────────────────────────

class RecordingSink(NotificationSink):
    name = "recording"

    def __init__(self, results=None):
        self.calls: list[tuple[str, NotificationOptions]] = []
        self._results = list(results) if results else []

    async def send(self, title: str, options: NotificationOptions) -> bool:
        self.calls.append((title, options))
        if self._results:
            outcome = self._results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return True


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now += timedelta(**kw)


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
async def kv(tmp_path):
    store = KeyValueStore(f"sqlite+aiosqlite:///{tmp_path}/poller.db")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 5, 10, 0, 20))


@pytest.fixture
def sink():
    return RecordingSink()


def make_poller(kv, sink, clock, runtime=None, interval=30.0) -> NotificationPoller:
    return NotificationPoller(
        ScheduleStore(kv),
        NotifiedKeyStore(kv),
        sink,
        runtime or NotificationRuntime(origin="http://localhost:3000"),
        interval_seconds=interval,
        clock=clock,
    )


async def put(kv, *records: ScheduleRecord) -> None:
    await kv.set(SCHEDULES_KEY, json.dumps([r.to_storage() for r in records]))


def dentist(**kw) -> ScheduleRecord:
    fields = {"id": "s1", "title": "Dentist", "date": "2024-05-05T10:00"}
    fields.update(kw)
    return ScheduleRecord.model_validate(fields)


def daily(**kw) -> ScheduleRecord:
    fields = {
        "id": "r1", "title": "Pills", "scheduleType": "recurring", "date": "2024-05-01T08:00",
        "recurringType": "daily", "recurringEndDate": "2024-05-31",
    }
    fields.update(kw)
    return ScheduleRecord.model_validate(fields)


# ── start / stop ──────────────────────────────────────────────────────────────

async def test_start_without_notification_support_is_noop(kv, sink, clock):
    await put(kv, dentist())
    poller = make_poller(kv, sink, clock, NotificationRuntime(supports_notifications=False))
    stop = await poller.start()
    assert not poller.running
    assert sink.calls == []
    stop()


async def test_start_on_insecure_origin_is_noop(kv, sink, clock):
    await put(kv, dentist())
    poller = make_poller(kv, sink, clock, NotificationRuntime(origin="http://example.com"))
    await poller.start()
    assert not poller.running
    assert sink.calls == []


async def test_start_runs_immediate_pass(kv, sink, clock):
    await put(kv, dentist())
    poller = make_poller(kv, sink, clock, NotificationRuntime(origin="https://example.com"))
    stop = await poller.start()
    try:
        assert poller.running
        assert len(sink.calls) == 1
    finally:
        stop()
    assert not poller.running


async def test_stop_is_idempotent(kv, sink, clock):
    poller = make_poller(kv, sink, clock)
    stop = await poller.start()
    stop()
    stop()
    assert not poller.running


async def test_repeating_pass_runs_until_stopped(kv, clock):
    failing = RecordingSink(results=[False] * 1000)
    await put(kv, dentist())
    poller = make_poller(kv, failing, clock, interval=0.05)
    stop = await poller.start()
    await asyncio.sleep(0.4)
    stop()
    assert len(failing.calls) >= 2

    await asyncio.sleep(0.2)
    settled = len(failing.calls)
    await asyncio.sleep(0.3)
    assert len(failing.calls) == settled


# ── Evaluation pass ───────────────────────────────────────────────────────────

async def test_single_fires_once_with_payload(kv, sink, clock):
    await put(kv, dentist(description="Bring card", location="Main St"))
    poller = make_poller(kv, sink, clock)
    await poller.run_pass()

    assert len(sink.calls) == 1
    title, options = sink.calls[0]
    assert title == "Dentist"
    assert options.body == "Bring card\nLocation: Main St"
    assert options.tag == "schedule-s1"
    assert options.data == {"id": "s1"}
    assert options.icon == options.badge == "/logo192.png"


async def test_default_body_when_no_details(kv, sink, clock):
    await put(kv, dentist())
    await make_poller(kv, sink, clock).run_pass()
    assert sink.calls[0][1].body == DEFAULT_BODY


async def test_single_outside_window_does_not_fire(kv, sink, clock):
    await put(kv, dentist(date="2024-05-05T10:05"))
    poller = make_poller(kv, sink, clock)
    await poller.run_pass()
    clock.advance(minutes=10)
    await poller.run_pass()
    assert sink.calls == []


async def test_repeated_ticks_never_refire(kv, sink, clock):
    await put(kv, dentist())
    poller = make_poller(kv, sink, clock)
    for _ in range(3):
        await poller.run_pass()
        clock.advance(seconds=15)
    assert len(sink.calls) == 1


async def test_dedupe_survives_restart(kv, sink, clock):
    await put(kv, dentist())
    first = make_poller(kv, sink, clock)
    await first.start()
    first.stop()

    second = make_poller(kv, sink, clock)
    stop = await second.start()
    stop()
    assert len(sink.calls) == 1
    assert json.loads(await kv.get(NOTIFIED_KEY)) == ["s1"]


async def test_sink_failure_is_retried_next_tick(kv, clock):
    flaky = RecordingSink(results=[False, True])
    await put(kv, dentist())
    poller = make_poller(kv, flaky, clock)

    await poller.run_pass()
    assert await kv.get(NOTIFIED_KEY) is None

    await poller.run_pass()
    assert len(flaky.calls) == 2
    assert json.loads(await kv.get(NOTIFIED_KEY)) == ["s1"]


async def test_sink_exception_is_swallowed_and_retried(kv, clock):
    flaky = RecordingSink(results=[RuntimeError("provider down"), True])
    await put(kv, dentist())
    poller = make_poller(kv, flaky, clock)

    await poller.run_pass()
    await poller.run_pass()
    await poller.run_pass()
    assert len(flaky.calls) == 2


async def test_permission_denied_skips_without_marking(kv, sink, clock):
    await put(kv, dentist())
    runtime = NotificationRuntime(permission="denied")
    await make_poller(kv, sink, clock, runtime).run_pass()
    assert sink.calls == []
    assert await kv.get(NOTIFIED_KEY) is None


async def test_permission_checked_each_time(kv, sink, clock):
    answers = iter(["default", "granted"])

    async def permission():
        return next(answers)

    await put(kv, dentist())
    poller = make_poller(kv, sink, clock, NotificationRuntime(permission=permission))
    await poller.run_pass()
    assert sink.calls == []
    await poller.run_pass()
    assert len(sink.calls) == 1


async def test_recurring_fires_once_per_day(kv, sink):
    clock = FakeClock(datetime(2024, 5, 2, 0, 5))
    await put(kv, daily())
    poller = make_poller(kv, sink, clock)

    await poller.run_pass()
    clock.advance(hours=12)
    await poller.run_pass()
    assert len(sink.calls) == 1

    clock.advance(days=1)
    await poller.run_pass()
    assert len(sink.calls) == 2
    assert json.loads(await kv.get(NOTIFIED_KEY)) == ["r1:2024-05-02", "r1:2024-05-03"]


async def test_recurring_skips_days_off_stride(kv, sink):
    clock = FakeClock(datetime(2024, 5, 2, 9, 0))
    await put(kv, daily(recurringInterval=2))
    await make_poller(kv, sink, clock).run_pass()
    assert sink.calls == []


async def test_period_fires_once_for_whole_range(kv, sink):
    clock = FakeClock(datetime(2024, 7, 1, 8, 0))
    trip = ScheduleRecord.model_validate({
        "id": "p1", "title": "Trip", "scheduleType": "period",
        "periodStartDate": "2024-07-01", "periodEndDate": "2024-07-05",
    })
    await put(kv, trip)
    poller = make_poller(kv, sink, clock)
    for _ in range(4):
        await poller.run_pass()
        clock.advance(days=1)
    assert len(sink.calls) == 1


async def test_records_evaluated_independently(kv, clock):
    flaky = RecordingSink()
    await put(kv, dentist(id="a"), dentist(id="b"), dentist(id="c", date="2024-06-01T10:00"))
    await make_poller(kv, flaky, clock).run_pass()
    assert sorted(opts.data["id"] for _, opts in flaky.calls) == ["a", "b"]


async def test_record_without_id_is_ignored(kv, sink, clock):
    await kv.set(SCHEDULES_KEY, json.dumps([{"id": "", "title": "t", "date": "2024-05-05T10:00"}]))
    await make_poller(kv, sink, clock).run_pass()
    assert sink.calls == []


async def test_corrupt_storage_is_nothing_to_do(kv, sink, clock):
    await kv.set(SCHEDULES_KEY, "not json")
    await kv.set(NOTIFIED_KEY, "also not json")
    poller = make_poller(kv, sink, clock)
    stop = await poller.start()
    stop()
    assert sink.calls == []


async def test_reset_notified_allows_refire(kv, sink, clock):
    await put(kv, dentist())
    poller = make_poller(kv, sink, clock)
    await poller.run_pass()
    await poller.reset_notified()
    await poller.run_pass()
    assert len(sink.calls) == 2
