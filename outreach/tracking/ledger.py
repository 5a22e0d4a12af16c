"""ActionLedger — durable, append-oriented log of outbound actions."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from outreach.db import get_connection, write_connection
from outreach.tracking.models import (
    FAILED,
    FINAL_STATUSES,
    PENDING,
    STATUSES,
    SUCCEEDED,
    ActionRecord,
    day_bounds,
    dump_payload,
    make_action_id,
    to_iso,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import date, datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS actions_log (
        id TEXT PRIMARY KEY,
        action_type TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        status TEXT NOT NULL,
        error_message TEXT,
        payload TEXT,
        payload_version INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_actions_log_entity ON actions_log(entity_type, entity_id)",
    """
    CREATE INDEX IF NOT EXISTS idx_actions_log_action
        ON actions_log(action_type, entity_type, entity_id, created_at DESC)
    """,
    "CREATE INDEX IF NOT EXISTS idx_actions_log_created ON actions_log(created_at)",
)

_COLUMNS = (
    "id, action_type, entity_type, entity_id, status, error_message,"
    " payload, payload_version, created_at, updated_at"
)

_GROUPABLE = ("action_type", "entity_type", "status")


class ActionLedger:
    """Persists ActionRecords in SQLite / Turso.

    Records are only ever inserted as new rows; the single mutation allowed is
    the one-way transition of a ``pending`` row to ``succeeded`` or ``failed``.

    Singleton accessed via ``ActionLedger.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: ActionLedger | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ActionLedger:
        """Return the shared ActionLedger instance."""
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

    async def _select(self, where: str, params: tuple, order: str = "created_at, id") -> list:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM actions_log WHERE {where} ORDER BY {order}",  # noqa: S608
                params,
            )
            rows = await cursor.fetchall()
            return [ActionRecord.from_row(row) for row in rows]
        finally:
            await db.close()

    # -- Writes ----------------------------------------------------------------

    async def log(
        self,
        action_type: str,
        entity_type: str,
        entity_id: str,
        status: str = PENDING,
        payload: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> str:
        """Append a new record and return its ID."""
        if status not in STATUSES:
            msg = f"Unknown action status: {status}"
            raise ValueError(msg)
        record = ActionRecord(
            id=make_action_id(),
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            status=status,
            error_message=error_message,
            payload=payload,
        )
        async with self._writing() as db:
            await db.execute(
                f"INSERT INTO actions_log ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                record.to_row(),
            )
        logger.debug(
            "Logged %s %s for %s/%s (%s)",
            status,
            action_type,
            entity_type,
            entity_id,
            record.id,
        )
        return record.id

    async def update_status(
        self,
        record_id: str,
        status: str,
        error_message: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Move a pending record to ``succeeded`` or ``failed``.

        Unknown IDs and records that already reached a final status are left
        untouched; the call is a no-op and returns False.  A *payload* of None
        keeps the stored payload.
        """
        if status not in FINAL_STATUSES:
            msg = f"Records can only move to {FINAL_STATUSES}, not {status!r}"
            raise ValueError(msg)
        now = to_iso(utc_now())
        async with self._writing() as db:
            cursor = await db.execute(
                """
                UPDATE actions_log
                   SET status = ?,
                       error_message = ?,
                       payload = COALESCE(?, payload),
                       updated_at = ?
                 WHERE id = ? AND status = ?
                """,
                (status, error_message, dump_payload(payload), now, record_id, PENDING),
            )
            updated = cursor.rowcount > 0
        if updated:
            logger.info("Action %s -> %s", record_id, status)
        else:
            logger.debug("No pending action %s to move to %s", record_id, status)
        return updated

    # -- Reads -----------------------------------------------------------------

    async def get_record(self, record_id: str) -> ActionRecord | None:
        """Fetch a record by ID, or None if not found."""
        records = await self._select("id = ?", (record_id,))
        return records[0] if records else None

    async def latest(
        self, action_type: str, entity_type: str, entity_id: str
    ) -> ActionRecord | None:
        """Return the most recently created record for the tuple, or None."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM actions_log
                 WHERE action_type = ? AND entity_type = ? AND entity_id = ?
                 ORDER BY created_at DESC, id DESC
                 LIMIT 1
                """,  # noqa: S608
                (action_type, entity_type, entity_id),
            )
            row = await cursor.fetchone()
            return ActionRecord.from_row(row) if row else None
        finally:
            await db.close()

    async def history(
        self, action_type: str, entity_type: str, entity_id: str
    ) -> list[ActionRecord]:
        """All records for the tuple, oldest first."""
        return await self._select(
            "action_type = ? AND entity_type = ? AND entity_id = ?",
            (action_type, entity_type, entity_id),
        )

    async def list_by_status(self, status: str, day: date) -> list[ActionRecord]:
        """Records with *status* created on the UTC calendar day *day*."""
        start, end = day_bounds(day)
        return await self._select(
            "status = ? AND created_at >= ? AND created_at < ?", (status, start, end)
        )

    async def pending(self, day: date) -> list[ActionRecord]:
        """Pending records created on the UTC calendar day *day*."""
        return await self.list_by_status(PENDING, day)

    async def failed(self, day: date) -> list[ActionRecord]:
        """Failed records created on the UTC calendar day *day*."""
        return await self.list_by_status(FAILED, day)

    async def counts_by_date(
        self,
        day: date,
        group_by: tuple[str, ...] = ("action_type", "status"),
    ) -> list[dict[str, Any]]:
        """Count records created on the UTC calendar day *day*.

        Returns one dict per group, e.g.
        ``{"action_type": "comment", "status": "succeeded", "count": 3}``.
        """
        unknown = [col for col in group_by if col not in _GROUPABLE]
        if unknown or not group_by:
            msg = f"Cannot group actions by {group_by!r}; choose from {_GROUPABLE}"
            raise ValueError(msg)
        columns = ", ".join(group_by)
        start, end = day_bounds(day)
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {columns}, COUNT(*) FROM actions_log
                 WHERE created_at >= ? AND created_at < ?
                 GROUP BY {columns}
                 ORDER BY {columns}
                """,  # noqa: S608
                (start, end),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [{**dict(zip(group_by, row[:-1], strict=True)), "count": row[-1]} for row in rows]

    async def count_between(
        self,
        action_type: str,
        start: datetime,
        end: datetime,
        statuses: tuple[str, ...] = (PENDING, SUCCEEDED),
    ) -> int:
        """Count *action_type* records created in ``[start, end)`` with *statuses*."""
        placeholders = ", ".join("?" for _ in statuses)
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT COUNT(*) FROM actions_log
                 WHERE action_type = ? AND created_at >= ? AND created_at < ?
                   AND status IN ({placeholders})
                """,  # noqa: S608
                (action_type, to_iso(start), to_iso(end), *statuses),
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()
