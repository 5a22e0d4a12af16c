"""Tests for ActivityLimiter — ledger-backed action budgets."""

from outreach.tracking.ledger import ActionLedger
from outreach.tracking.limits import ActivityLimiter


async def test_unlimited_action_type(ledger: ActionLedger) -> None:
    limiter = ActivityLimiter(ledger, daily_limits={}, weekly_limits={})
    assert await limiter.remaining("like") is None
    assert await limiter.allows("like") is True


async def test_daily_budget_counts_pending_and_succeeded(ledger: ActionLedger) -> None:
    limiter = ActivityLimiter(ledger, daily_limits={"comment": 3}, weekly_limits={})
    first = await ledger.log("comment", "post", "p1")
    await ledger.update_status(first, "succeeded")
    await ledger.log("comment", "post", "p2")

    assert await limiter.remaining("comment") == 1
    assert await limiter.allows("comment") is True


async def test_failed_actions_do_not_consume_budget(ledger: ActionLedger) -> None:
    limiter = ActivityLimiter(ledger, daily_limits={"comment": 1}, weekly_limits={})
    record_id = await ledger.log("comment", "post", "p1")
    await ledger.update_status(record_id, "failed", error_message="x")

    assert await limiter.remaining("comment") == 1


async def test_exhausted_budget(ledger: ActionLedger) -> None:
    limiter = ActivityLimiter(ledger, daily_limits={"like": 1}, weekly_limits={})
    await ledger.log("like", "post", "p1")
    await ledger.log("like", "post", "p2")

    assert await limiter.remaining("like") == 0
    assert await limiter.allows("like") is False


async def test_weekly_budget_is_tighter(ledger: ActionLedger) -> None:
    limiter = ActivityLimiter(
        ledger,
        daily_limits={"connection_request": 10},
        weekly_limits={"connection_request": 2},
    )
    await ledger.log("connection_request", "profile", "u1")

    assert await limiter.remaining("connection_request") == 1


async def test_defaults_from_settings(ledger: ActionLedger) -> None:
    limiter = ActivityLimiter(ledger)
    assert await limiter.remaining("connection_request") == 35
    assert await limiter.remaining("search") is None
