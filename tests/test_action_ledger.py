"""Tests for ActionLedger — libsql persistence of action records."""

import asyncio
from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from outreach.db import _AsyncConnection
from outreach.tracking.ledger import ActionLedger
from outreach.tracking.seen import SeenEntityStore


def _today() -> date:
    return datetime.now(UTC).date()


# -- log / get_record ----------------------------------------------------------


async def test_log_creates_pending_record(ledger: ActionLedger) -> None:
    record_id = await ledger.log("connection_request", "profile", "abc", payload={"note": "hi"})

    record = await ledger.get_record(record_id)
    assert record is not None
    assert record.status == "pending"
    assert record.entity_id == "abc"
    assert record.payload == {"note": "hi"}
    assert record.created_at == record.updated_at


async def test_log_with_explicit_status(ledger: ActionLedger) -> None:
    record_id = await ledger.log("like", "post", "p1", status="succeeded")
    record = await ledger.get_record(record_id)
    assert record is not None
    assert record.status == "succeeded"


async def test_log_rejects_unknown_status(ledger: ActionLedger) -> None:
    with pytest.raises(ValueError, match="Unknown action status"):
        await ledger.log("like", "post", "p1", status="done")


async def test_get_record_not_found(ledger: ActionLedger) -> None:
    assert await ledger.get_record("nope") is None


# -- update_status -------------------------------------------------------------


async def test_failed_update_visible_through_latest(ledger: ActionLedger) -> None:
    record_id = await ledger.log("connection-request", "profile", "abc")
    await ledger.update_status(record_id, "failed", error_message="rate limited")

    latest = await ledger.latest("connection-request", "profile", "abc")
    assert latest is not None
    assert latest.id == record_id
    assert latest.status == "failed"
    assert latest.error_message == "rate limited"


async def test_update_bumps_updated_at(ledger: ActionLedger) -> None:
    record_id = await ledger.log("like", "post", "p1")
    await asyncio.sleep(0.01)
    assert await ledger.update_status(record_id, "succeeded") is True

    record = await ledger.get_record(record_id)
    assert record is not None
    assert record.updated_at > record.created_at


async def test_update_without_payload_keeps_payload(ledger: ActionLedger) -> None:
    record_id = await ledger.log("comment", "post", "p1", payload={"text": "hello"})
    await ledger.update_status(record_id, "succeeded")

    record = await ledger.get_record(record_id)
    assert record is not None
    assert record.payload == {"text": "hello"}


async def test_update_with_payload_replaces_payload(ledger: ActionLedger) -> None:
    record_id = await ledger.log("comment", "post", "p1", payload={"text": "hello"})
    await ledger.update_status(record_id, "succeeded", payload={"comment_id": "c9"})

    record = await ledger.get_record(record_id)
    assert record is not None
    assert record.payload == {"comment_id": "c9"}


async def test_update_unknown_id_is_noop(ledger: ActionLedger) -> None:
    assert await ledger.update_status("nope", "succeeded") is False


async def test_final_status_never_reverts(ledger: ActionLedger) -> None:
    record_id = await ledger.log("like", "post", "p1")
    assert await ledger.update_status(record_id, "succeeded") is True
    assert await ledger.update_status(record_id, "failed", error_message="late") is False

    record = await ledger.get_record(record_id)
    assert record is not None
    assert record.status == "succeeded"
    assert record.error_message is None


async def test_update_to_pending_rejected(ledger: ActionLedger) -> None:
    record_id = await ledger.log("like", "post", "p1")
    with pytest.raises(ValueError, match="only move"):
        await ledger.update_status(record_id, "pending")


# -- latest / history ----------------------------------------------------------


async def test_latest_none_when_missing(ledger: ActionLedger) -> None:
    assert await ledger.latest("like", "post", "missing") is None


async def test_latest_returns_newest_of_many(ledger: ActionLedger) -> None:
    first = await ledger.log("connection_request", "profile", "abc")
    await ledger.update_status(first, "failed", error_message="timeout")
    second = await ledger.log("connection_request", "profile", "abc")

    latest = await ledger.latest("connection_request", "profile", "abc")
    assert latest is not None
    assert latest.id == second
    assert latest.status == "pending"

    history = await ledger.history("connection_request", "profile", "abc")
    assert [r.id for r in history] == [first, second]


async def test_latest_scoped_by_action_type(ledger: ActionLedger) -> None:
    await ledger.log("like", "post", "p1")
    assert await ledger.latest("comment", "post", "p1") is None


# -- daily queries -------------------------------------------------------------


async def test_counts_by_date(ledger: ActionLedger) -> None:
    a = await ledger.log("like", "post", "p1")
    await ledger.log("like", "post", "p2")
    c = await ledger.log("comment", "post", "p1")
    await ledger.update_status(a, "succeeded")
    await ledger.update_status(c, "failed", error_message="blocked")

    counts = await ledger.counts_by_date(_today())
    assert {(r["action_type"], r["status"]): r["count"] for r in counts} == {
        ("comment", "failed"): 1,
        ("like", "pending"): 1,
        ("like", "succeeded"): 1,
    }


async def test_counts_by_date_custom_grouping(ledger: ActionLedger) -> None:
    await ledger.log("like", "post", "p1")
    await ledger.log("connection_request", "profile", "u1")
    await ledger.log("connection_request", "profile", "u2")

    counts = await ledger.counts_by_date(_today(), group_by=("entity_type",))
    assert counts == [
        {"entity_type": "post", "count": 1},
        {"entity_type": "profile", "count": 2},
    ]


async def test_counts_by_date_other_day_empty(ledger: ActionLedger) -> None:
    await ledger.log("like", "post", "p1")
    assert await ledger.counts_by_date(_today() - timedelta(days=1)) == []


async def test_counts_by_date_rejects_unknown_column(ledger: ActionLedger) -> None:
    with pytest.raises(ValueError, match="Cannot group"):
        await ledger.counts_by_date(_today(), group_by=("payload",))


async def test_pending_and_failed_for_day(ledger: ActionLedger) -> None:
    open_id = await ledger.log("create_draft", "meeting", "m1")
    done_id = await ledger.log("create_draft", "meeting", "m2")
    bad_id = await ledger.log("create_draft", "meeting", "m3")
    await ledger.update_status(done_id, "succeeded")
    await ledger.update_status(bad_id, "failed", error_message="no recipient")

    pending = await ledger.pending(_today())
    assert [r.id for r in pending] == [open_id]

    failed = await ledger.failed(_today())
    assert [(r.id, r.error_message) for r in failed] == [(bad_id, "no recipient")]

    assert await ledger.pending(_today() + timedelta(days=1)) == []


async def test_count_between_ignores_failed(ledger: ActionLedger) -> None:
    ok = await ledger.log("connection_request", "profile", "u1")
    await ledger.log("connection_request", "profile", "u2")
    bad = await ledger.log("connection_request", "profile", "u3")
    await ledger.update_status(ok, "succeeded")
    await ledger.update_status(bad, "failed", error_message="x")

    now = datetime.now(UTC)
    count = await ledger.count_between(
        "connection_request", now - timedelta(hours=1), now + timedelta(hours=1)
    )
    assert count == 2


# -- Persistence / singleton ---------------------------------------------------


async def test_records_survive_new_instance(ledger: ActionLedger, tmp_path) -> None:
    record_id = await ledger.log("like", "post", "p1")
    reopened = ActionLedger(db_path=tmp_path / "test.db")
    assert (await reopened.get_record(record_id)) is not None


def test_singleton_get() -> None:
    ActionLedger._reset()
    try:
        assert ActionLedger.get() is ActionLedger.get()
    finally:
        ActionLedger._reset()


# -- Concurrent writers --------------------------------------------------------


async def test_concurrent_logs_all_land(ledger: ActionLedger) -> None:
    ids = await asyncio.gather(*(ledger.log("like", "post", f"p{i}") for i in range(8)))

    assert len(set(ids)) == 8
    counts = await ledger.counts_by_date(_today())
    assert counts == [{"action_type": "like", "status": "pending", "count": 8}]


async def test_concurrent_log_and_update(ledger: ActionLedger) -> None:
    first = await ledger.log("comment", "post", "p1")

    updated, _ = await asyncio.gather(
        ledger.update_status(first, "succeeded"),
        ledger.log("comment", "post", "p2"),
    )

    assert updated is True
    assert (await ledger.get_record(first)).status == "succeeded"


async def test_ledger_and_seen_share_database(
    ledger: ActionLedger, seen: SeenEntityStore
) -> None:
    await asyncio.gather(
        ledger.log("like", "post", "p1"),
        seen.mark_seen("post", "p1"),
        ledger.log("like", "post", "p2"),
        seen.mark_seen("post", "p2"),
    )
    assert await seen.count("post") == 2
    assert len(await ledger.pending(_today())) == 2


async def test_schema_failure_closes_connection(ledger: ActionLedger) -> None:
    with (
        patch.object(
            _AsyncConnection, "executemany", AsyncMock(side_effect=RuntimeError("bad ddl"))
        ),
        patch.object(_AsyncConnection, "close", AsyncMock()) as close,
        pytest.raises(RuntimeError, match="bad ddl"),
    ):
        await ledger.log("like", "post", "p1")

    close.assert_awaited_once()
    assert await ledger.latest("like", "post", "p1") is None
