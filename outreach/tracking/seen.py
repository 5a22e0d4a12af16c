"""SeenEntityStore — monotonic membership set of surfaced external entities."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from typing import TYPE_CHECKING, Any

from outreach.db import get_connection, write_connection
from outreach.tracking.models import SeenEntity, to_iso, utc_now

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS seen_entities (
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        first_seen_at TEXT NOT NULL,
        PRIMARY KEY (entity_type, entity_id)
    )
    """,
)


class SeenEntityStore:
    """Persists which external entities have already been surfaced.

    Membership is monotonic: rows are inserted with ``INSERT OR IGNORE`` and
    never deleted, so marking an entity twice is a no-op.

    ``lock()`` hands out one ``asyncio.Lock`` per ``(entity_type, entity_id)``
    so a check-then-mark sequence can run as a critical section.

    Singleton accessed via ``SeenEntityStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: SeenEntityStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    def get(cls) -> SeenEntityStore:
        """Return the shared SeenEntityStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _ensure_schema(self) -> None:
        if self._initialised:
            return
        async with write_connection(self._db_path) as db:
            await db.executemany(_SCHEMA)
        self._initialised = True

    async def _connect(self):  # noqa: ANN202
        await self._ensure_schema()
        return await get_connection(local_path_override=self._db_path)

    @contextlib.asynccontextmanager
    async def _writing(self) -> AsyncIterator[Any]:
        await self._ensure_schema()
        async with write_connection(self._db_path) as db:
            yield db

    # -- Locking ---------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def lock(self, entity_type: str, entity_id: str) -> AsyncIterator[None]:
        """Hold the per-entity lock for the duration of the ``async with`` block."""
        key = (entity_type, entity_id)
        entity_lock = self._locks.get(key)
        if entity_lock is None:
            entity_lock = asyncio.Lock()
            self._locks[key] = entity_lock
        async with entity_lock:
            yield

    # -- Membership ------------------------------------------------------------

    async def has(self, entity_type: str, entity_id: str) -> bool:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT 1 FROM seen_entities WHERE entity_type = ? AND entity_id = ?",
                (entity_type, entity_id),
            )
            return await cursor.fetchone() is not None
        finally:
            await db.close()

    async def mark_seen(self, entity_type: str, entity_id: str) -> bool:
        """Record the entity as seen. Returns True if it was not seen before."""
        if not entity_id:
            logger.warning("Refusing to mark empty %s id as seen", entity_type)
            return False
        async with self._writing() as db:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO seen_entities (entity_type, entity_id, first_seen_at)
                VALUES (?, ?, ?)
                """,
                (entity_type, entity_id, to_iso(utc_now())),
            )
            inserted = cursor.rowcount > 0
        if inserted:
            logger.debug("Marked %s %s as seen", entity_type, entity_id)
        return inserted

    async def get_entity(self, entity_type: str, entity_id: str) -> SeenEntity | None:
        """Fetch the membership row, or None if the entity was never seen."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT entity_type, entity_id, first_seen_at FROM seen_entities
                 WHERE entity_type = ? AND entity_id = ?
                """,
                (entity_type, entity_id),
            )
            row = await cursor.fetchone()
            return SeenEntity(*row) if row else None
        finally:
            await db.close()

    async def count(self, entity_type: str | None = None) -> int:
        """Total seen entities, optionally limited to one entity type."""
        db = await self._connect()
        try:
            if entity_type is None:
                cursor = await db.execute("SELECT COUNT(*) FROM seen_entities")
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM seen_entities WHERE entity_type = ?",
                    (entity_type,),
                )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()
