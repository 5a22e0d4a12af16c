"""ActivityLimiter — daily / weekly budgets for outbound actions.

Counts come straight from the action ledger, so the budget survives restarts.
Failed actions do not consume budget; pending and succeeded ones do.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time, timedelta
from typing import TYPE_CHECKING

from outreach.config import settings
from outreach.tracking.models import as_utc, utc_now

if TYPE_CHECKING:
    from outreach.tracking.ledger import ActionLedger

logger = logging.getLogger(__name__)


class ActivityLimiter:
    """Checks remaining budget per action type.

    Args:
        ledger: ActionLedger to count against.
        daily_limits: ``{action_type: max per UTC day}`` (default from settings).
        weekly_limits: ``{action_type: max per last 7 UTC days}`` (default from settings).
    """

    def __init__(
        self,
        ledger: ActionLedger,
        daily_limits: dict[str, int] | None = None,
        weekly_limits: dict[str, int] | None = None,
    ) -> None:
        self._ledger = ledger
        self._daily = (
            daily_limits if daily_limits is not None else settings.get_daily_action_limits()
        )
        self._weekly = (
            weekly_limits if weekly_limits is not None else settings.get_weekly_action_limits()
        )

    async def remaining(self, action_type: str, now: datetime | None = None) -> int | None:
        """Actions of *action_type* still allowed now, or None when unlimited."""
        now = now or utc_now()
        day_start = datetime.combine(as_utc(now).date(), time.min, tzinfo=UTC)
        day_end = day_start + timedelta(days=1)
        budgets: list[int] = []

        daily = self._daily.get(action_type)
        if daily is not None:
            used = await self._ledger.count_between(action_type, day_start, day_end)
            budgets.append(daily - used)

        weekly = self._weekly.get(action_type)
        if weekly is not None:
            used = await self._ledger.count_between(
                action_type, day_end - timedelta(days=7), day_end
            )
            budgets.append(weekly - used)

        if not budgets:
            return None
        return max(0, min(budgets))

    async def allows(self, action_type: str, now: datetime | None = None) -> bool:
        remaining = await self.remaining(action_type, now)
        if remaining == 0:
            logger.info("Activity limit reached for %s", action_type)
            return False
        return True
