"""DeferredQueue — carry-over queue for entities a job could not surface yet.

When a cycle stops early (per-run cap, activity limit, interrupted action)
the remaining eligible entities would age out of the lookback window and be
lost.  They are parked here instead, per job, and drained oldest first ahead
of fresh events by that job's next cycles.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from outreach.db import get_connection, write_connection
from outreach.tracking.models import DeferredEntity, to_iso, utc_now

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS deferred_entities (
        job_id TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        event TEXT NOT NULL,
        deferred_at TEXT NOT NULL,
        PRIMARY KEY (job_id, entity_type, entity_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_deferred_job ON deferred_entities(job_id, deferred_at)",
)


class DeferredQueue:
    """Per-job queue of held-back entities, stored beside the action ledger.

    Queuing is idempotent: an entity already queued for a job keeps its
    original position.

    Singleton accessed via ``DeferredQueue.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    _instance: DeferredQueue | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> DeferredQueue:
        """Return the shared DeferredQueue instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def _ensure_schema(self) -> None:
        if self._initialised:
            return
        async with write_connection(self._db_path) as db:
            await db.executemany(_SCHEMA)
        self._initialised = True

    async def _connect(self):  # noqa: ANN202
        await self._ensure_schema()
        return await get_connection(local_path_override=self._db_path)

    # -- Writes ----------------------------------------------------------------

    async def defer(
        self, job_id: str, entity_type: str, entity_id: str, event: dict[str, Any]
    ) -> bool:
        """Queue an entity for *job_id*. Returns False if it was already queued."""
        await self._ensure_schema()
        async with write_connection(self._db_path) as db:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO deferred_entities
                    (job_id, entity_type, entity_id, event, deferred_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    entity_type,
                    entity_id,
                    json.dumps(event, default=str),
                    to_iso(utc_now()),
                ),
            )
            queued = cursor.rowcount > 0
        if queued:
            logger.debug("Deferred %s %s for %s", entity_type, entity_id, job_id)
        return queued

    async def remove(self, job_id: str, entity_type: str, entity_id: str) -> bool:
        await self._ensure_schema()
        async with write_connection(self._db_path) as db:
            cursor = await db.execute(
                """
                DELETE FROM deferred_entities
                 WHERE job_id = ? AND entity_type = ? AND entity_id = ?
                """,
                (job_id, entity_type, entity_id),
            )
            return cursor.rowcount > 0

    async def purge(self, job_id: str, before: datetime) -> int:
        """Drop entries of *job_id* queued before *before*. Returns how many."""
        await self._ensure_schema()
        async with write_connection(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM deferred_entities WHERE job_id = ? AND deferred_at < ?",
                (job_id, to_iso(before)),
            )
            dropped = cursor.rowcount
        if dropped:
            logger.info("Dropped %d stale deferred entries for %s", dropped, job_id)
        return dropped

    # -- Reads -----------------------------------------------------------------

    async def peek(self, job_id: str, limit: int | None = None) -> list[DeferredEntity]:
        """Queued entries of *job_id*, oldest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT job_id, entity_type, entity_id, event, deferred_at
                  FROM deferred_entities
                 WHERE job_id = ?
                 ORDER BY deferred_at, rowid
                 LIMIT ?
                """,
                (job_id, -1 if limit is None else limit),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [
            DeferredEntity(
                job_id=row[0],
                entity_type=row[1],
                entity_id=row[2],
                event=json.loads(row[3]),
                deferred_at=row[4],
            )
            for row in rows
        ]

    async def count(self, job_id: str | None = None) -> int:
        db = await self._connect()
        try:
            if job_id is None:
                cursor = await db.execute("SELECT COUNT(*) FROM deferred_entities")
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM deferred_entities WHERE job_id = ?", (job_id,)
                )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()
