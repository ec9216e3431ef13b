"""Schedule collection and notified-key set persisted in the key/value store.

Layout (each value is a JSON string):

    schedules            → array of schedule records (camelCase keys)
    notifiedScheduleIds  → array of dedupe keys already reminded
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError

from core.models import ScheduleRecord
from store.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SCHEDULES_KEY = "schedules"
NOTIFIED_KEY = "notifiedScheduleIds"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _stored_created_at(item: dict) -> datetime | None:
    # Reads createdAt alone; the rest of the entry may no longer validate.
    try:
        return ScheduleRecord.model_validate({"createdAt": item.get("createdAt")}).created_at
    except ValidationError:
        return None


def _read_json_array(raw: str | None, key: str) -> list:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored value is not valid JSON, treating as empty", extra={"key": key})
        return []
    if not isinstance(data, list):
        logger.warning("Stored value is not a JSON array, treating as empty", extra={"key": key})
        return []
    return data


class ScheduleStore:
    """CRUD over the stored schedule array.

    Writes operate on the raw array so entries this version cannot parse are
    carried through untouched.
    """

    def __init__(self, kv: KeyValueStore, clock: Callable[[], datetime] = _utcnow):
        self._kv = kv
        self._clock = clock

    async def _load_raw(self) -> list:
        try:
            raw = await self._kv.get(SCHEDULES_KEY)
        except Exception:
            logger.exception("Failed to read schedules")
            return []
        return _read_json_array(raw, SCHEDULES_KEY)

    async def _save_raw(self, items: list) -> None:
        await self._kv.set(SCHEDULES_KEY, json.dumps(items, ensure_ascii=False))

    async def load_all(self) -> list[ScheduleRecord]:
        """Every parseable record, in stored order. Never raises on bad data."""
        records = []
        for item in await self._load_raw():
            try:
                records.append(ScheduleRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "Skipping unreadable schedule",
                    extra={"schedule_id": item.get("id") if isinstance(item, dict) else None,
                           "errors": e.error_count()},
                )
        return records

    async def get(self, schedule_id: str) -> ScheduleRecord:
        """Raises KeyError if no record has *schedule_id*."""
        for record in await self.load_all():
            if record.id == schedule_id:
                return record
        raise KeyError(schedule_id)

    async def create(self, record: ScheduleRecord) -> ScheduleRecord:
        items = await self._load_raw()
        if any(isinstance(i, dict) and i.get("id") == record.id for i in items):
            raise ValueError(f"Schedule '{record.id}' already exists")
        now = self._clock()
        record = record.model_copy(update={"created_at": now, "updated_at": now})
        items.append(record.to_storage())
        await self._save_raw(items)
        logger.info("Schedule created", extra={"schedule_id": record.id})
        return record

    async def update(self, schedule_id: str, record: ScheduleRecord) -> ScheduleRecord:
        """Replace the stored record, keeping its id and createdAt."""
        items = await self._load_raw()
        for idx, item in enumerate(items):
            if isinstance(item, dict) and item.get("id") == schedule_id:
                record = record.model_copy(update={
                    "id": schedule_id,
                    "created_at": _stored_created_at(item),
                    "updated_at": self._clock(),
                })
                items[idx] = record.to_storage()
                await self._save_raw(items)
                logger.info("Schedule updated", extra={"schedule_id": schedule_id})
                return record
        raise KeyError(schedule_id)

    async def delete(self, schedule_id: str) -> None:
        items = await self._load_raw()
        kept = [i for i in items if not (isinstance(i, dict) and i.get("id") == schedule_id)]
        if len(kept) == len(items):
            raise KeyError(schedule_id)
        await self._save_raw(kept)
        logger.info("Schedule deleted", extra={"schedule_id": schedule_id})


class NotifiedKeyStore:
    """The set of dedupe keys whose reminder has already been delivered.

    Grows monotonically; nothing here prunes old keys.
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    async def load(self) -> set[str]:
        try:
            raw = await self._kv.get(NOTIFIED_KEY)
        except Exception:
            logger.exception("Failed to read notified keys")
            return set()
        return {str(k) for k in _read_json_array(raw, NOTIFIED_KEY)}

    async def save(self, keys: set[str]) -> None:
        await self._kv.set(NOTIFIED_KEY, json.dumps(sorted(keys)))

    async def reset(self) -> None:
        await self._kv.remove(NOTIFIED_KEY)
        logger.info("Notified keys cleared")
