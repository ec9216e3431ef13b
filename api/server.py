"""FastAPI service: schedule CRUD, calendar view and the push relay."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from api.models import CalendarDayResponse, SaveResponse, SchedulePushRequest
from core.models import ScheduleRecord, local_now
from core.settings import get_settings, push_credentials
from core.views import ListFilter, filter_schedules, month_grid
from notify.push_provider import PushProviderClient, build_payload, default_send_after
from notify.relay_client import PushRelayClient
from scheduler.poller import NotificationPoller, build_poller
from scheduler.runtime import PushInitState
from scheduler.service import SaveResult, ScheduleService, ScheduleValidationError
from store.kv_store import KeyValueStore
from store.schedule_store import NotifiedKeyStore, ScheduleStore

logger = logging.getLogger(__name__)

# ── Singletons ────────────────────────────────────────────────────────────────
# Tests swap these module attributes for per-test instances.

load_dotenv()
_settings = get_settings()
_kv = KeyValueStore(_settings.db_url)
_schedule_store = ScheduleStore(_kv)
_notified_store = NotifiedKeyStore(_kv)
_push_state = PushInitState()
if _settings.push_subscription_id:
    _push_state.mark_subscribed(_settings.push_subscription_id)
_relay = PushRelayClient(_settings.app_base_url)
_service = ScheduleService(_schedule_store, relay=_relay, push_state=_push_state)
_poller: NotificationPoller | None = None
_provider_transport = None   # httpx transport override for the push provider
_clock = local_now


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _poller
    await _kv.init()
    stop = None
    if _settings.poller_enabled:
        _poller = build_poller(_settings, _schedule_store, _notified_store, _push_state)
        stop = await _poller.start()
    yield
    if stop is not None:
        stop()


app = FastAPI(
    title="Schedule Reminder API",
    description="Personal schedules with calendar views and push reminders.",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _save_response(result: SaveResult) -> dict:
    return SaveResponse(
        schedule=result.record.to_storage(),
        reminder_scheduled=result.reminder_scheduled,
        warnings=result.warnings,
    ).model_dump(by_alias=True)


def _parse_record(body: Any) -> ScheduleRecord:
    if not isinstance(body, dict):
        raise HTTPException(422, detail="Schedule body must be a JSON object")
    try:
        return ScheduleRecord.model_validate(body)
    except ValidationError as e:
        errors = {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
        raise HTTPException(422, detail={"errors": errors})


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


# ── Routes ────────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/schedules")
async def list_schedules(filter_: ListFilter = Query(ListFilter.ALL, alias="filter")):
    """List schedules, optionally only today's or upcoming ones."""
    records = await _schedule_store.load_all()
    return [r.to_storage() for r in filter_schedules(records, filter_, _clock())]


@app.post("/schedules", status_code=201)
async def create_schedule(request: Request):
    """Create a schedule; a push reminder is booked afterwards when possible."""
    record = _parse_record(await _json_body(request))
    try:
        result = await _service.create(record)
    except ScheduleValidationError as e:
        raise HTTPException(422, detail={"errors": e.errors})
    return _save_response(result)


@app.get("/schedules/{schedule_id}")
async def get_schedule(schedule_id: str):
    try:
        record = await _schedule_store.get(schedule_id)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")
    return record.to_storage()


@app.put("/schedules/{schedule_id}")
async def update_schedule(schedule_id: str, request: Request):
    """Replace a schedule's fields; id and createdAt are kept."""
    record = _parse_record(await _json_body(request))
    try:
        result = await _service.update(schedule_id, record)
    except ScheduleValidationError as e:
        raise HTTPException(422, detail={"errors": e.errors})
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")
    return _save_response(result)


@app.delete("/schedules/{schedule_id}", status_code=204)
async def delete_schedule(schedule_id: str):
    try:
        await _service.delete(schedule_id)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")
    return Response(status_code=204)


@app.get("/calendar/{year}/{month}")
async def calendar_month(
    year: int = Path(ge=1, le=9999),
    month: int = Path(ge=1, le=12),
):
    """Every day of the month with the schedules that cover it."""
    records = await _schedule_store.load_all()
    grid = month_grid(records, year, month, today=_clock().date())
    return [
        CalendarDayResponse(
            day=d.day.isoformat(),
            is_today=d.is_today,
            schedules=[r.to_storage() for r in d.schedules],
        ).model_dump(by_alias=True)
        for d in grid
    ]


@app.post("/notifications/reset", status_code=204)
async def reset_notified():
    """Forget delivered reminders so they can fire again."""
    if _poller is not None:
        await _poller.reset_notified()
    else:
        await _notified_store.reset()
    return Response(status_code=204)


# ── Push relay ────────────────────────────────────────────────────────────────

@app.api_route("/api/schedule-push", methods=["GET", "PUT", "PATCH", "DELETE"])
async def schedule_push_wrong_method():
    return _error(405, "Method Not Allowed")


@app.post("/api/schedule-push")
async def schedule_push(request: Request):
    """Forward one push notification to the provider, scheduled for later."""
    app_id, api_key = push_credentials()
    if not app_id or not api_key:
        return _error(500, "OneSignal credentials are not configured on the server")

    body = await _json_body(request)
    try:
        req = SchedulePushRequest.model_validate(body if isinstance(body, dict) else {})
    except ValidationError:
        return _error(400, "Invalid request body")

    if not req.subscription_id:
        return _error(400, "subscriptionId is required")
    if not req.title or not req.message:
        return _error(400, "title and message are required")

    payload = build_payload(
        app_id,
        req.subscription_id,
        req.title,
        req.message,
        req.send_after_iso or default_send_after(),
    )
    try:
        status, data = await PushProviderClient(
            api_key, transport=_provider_transport
        ).create_notification(payload)
    except Exception as e:
        logger.error("Push provider request failed: %s", e)
        return _error(500, str(e) or "Unknown error")

    if status >= 400:
        logger.warning("Push provider rejected notification", extra={"status": status})
        return _error(status, "OneSignal API error", details=data)
    return {"ok": True, "data": data}
