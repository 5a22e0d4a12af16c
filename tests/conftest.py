"""Shared test fixtures."""

from pathlib import Path

import pytest

from outreach.tracking.deferred import DeferredQueue
from outreach.tracking.ledger import ActionLedger
from outreach.tracking.seen import SeenEntityStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("outreach.config.settings.turso_database_url", "")


@pytest.fixture
def ledger(tmp_path: Path, _no_turso: None) -> ActionLedger:
    """ActionLedger backed by a temp database."""
    return ActionLedger(db_path=tmp_path / "test.db")


@pytest.fixture
def seen(tmp_path: Path, _no_turso: None) -> SeenEntityStore:
    """SeenEntityStore sharing the temp database with ``ledger``."""
    return SeenEntityStore(db_path=tmp_path / "test.db")


@pytest.fixture
def deferred(tmp_path: Path, _no_turso: None) -> DeferredQueue:
    """DeferredQueue sharing the temp database with ``ledger``."""
    return DeferredQueue(db_path=tmp_path / "test.db")
