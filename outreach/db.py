"""Async database connection abstraction over libsql.

Provides a thin async wrapper around the synchronous ``libsql`` driver using
``asyncio.to_thread()``.  Connection target is determined by settings:

- **Production**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Dev/test**: no Turso env vars → local SQLite file via ``database_path``

Stores open one connection per operation.  Readers run freely; writers go
through ``write_connection()``, which holds a per-database ``asyncio.Lock``
from open to commit so two jobs writing at once queue up instead of failing
with ``database is locked``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

from outreach.config import settings

logger = logging.getLogger(__name__)

# Locks bind to the loop that first waits on them, so keep one set per loop.
_write_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


class StoreUnavailableError(Exception):
    """The ledger / seen-entity database could not be opened."""


class _AsyncCursor:
    """Async view of a synchronous libsql cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Async view of a synchronous libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def executemany(self, statements: tuple[str, ...]) -> None:
        """Run several parameterless statements (DDL) and commit once."""
        for sql in statements:
            await asyncio.to_thread(self._conn.execute, sql)
        await self.commit()

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: str) -> Any:
    conn = libsql.connect(path)
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def _target(local_path_override: Path | None) -> str:
    if local_path_override:
        return str(local_path_override.resolve())
    if settings.turso_database_url:
        return settings.turso_database_url
    return str(settings.database_path.resolve())


def write_lock(local_path_override: Path | None = None) -> asyncio.Lock:
    """Return the lock serialising writers of the database *local_path_override* selects."""
    locks = _write_locks.setdefault(asyncio.get_running_loop(), {})
    key = _target(local_path_override)
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    *local_path_override* (test isolation, per-store paths) wins over everything.
    Otherwise ``TURSO_DATABASE_URL`` selects the remote database and
    ``database_path`` is the local fallback.

    Raises:
        StoreUnavailableError: if the database cannot be opened.
    """
    try:
        if local_path_override:
            local_path_override.parent.mkdir(parents=True, exist_ok=True)
            conn = await asyncio.to_thread(_open_local, str(local_path_override))
        elif settings.turso_database_url:
            conn = await asyncio.to_thread(
                libsql.connect,
                database=settings.turso_database_url,
                auth_token=settings.turso_auth_token,
            )
        else:
            settings.database_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await asyncio.to_thread(_open_local, str(settings.database_path))
    except Exception as exc:
        logger.error("Could not open database: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc
    return _AsyncConnection(conn)


@contextlib.asynccontextmanager
async def write_connection(
    local_path_override: Path | None = None,
) -> AsyncIterator[_AsyncConnection]:
    """Open a connection under the database's write lock.

    The block's statements are committed when it exits normally and
    discarded when it raises.  The connection is always closed.
    """
    async with write_lock(local_path_override):
        conn = await get_connection(local_path_override)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()
