"""SQLite-backed string key/value storage."""

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine

# ── Schema ───────────────────────────────────────────────────────────────────

_metadata = sa.MetaData()

_entries = sa.Table(
    "kv_entries",
    _metadata,
    sa.Column("key",        sa.String, primary_key=True),
    sa.Column("value",      sa.Text,   nullable=False),
    sa.Column("updated_at", sa.String, nullable=False),
)


# ── Store ────────────────────────────────────────────────────────────────────

class KeyValueStore:
    """String-keyed, string-valued storage; values are opaque to the store."""

    def __init__(self, db_url: str = "sqlite+aiosqlite:///schedules.db"):
        self._engine = create_async_engine(db_url, echo=False)

    async def init(self) -> None:
        """Create tables if they don't exist. Call once at startup."""
        async with self._engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    async def get(self, key: str) -> str | None:
        async with self._engine.connect() as conn:
            row = (await conn.execute(
                sa.select(_entries.c.value).where(_entries.c.key == key)
            )).fetchone()
        return row.value if row is not None else None

    async def set(self, key: str, value: str) -> None:
        """Insert or replace *key* (upsert)."""
        from datetime import datetime, timezone
        row = {
            "key":        key,
            "value":      value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        async with self._engine.begin() as conn:
            await conn.execute(
                sqlite_insert(_entries)
                .values(**row)
                .on_conflict_do_update(
                    index_elements=["key"],
                    set_={k: row[k] for k in ("value", "updated_at")},
                )
            )

    async def remove(self, key: str) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(sa.delete(_entries).where(_entries.c.key == key))

    async def close(self) -> None:
        await self._engine.dispose()
