"""Active hours — the working-day window in which discovery may run."""

from __future__ import annotations

import zoneinfo
from dataclasses import dataclass, field
from datetime import UTC, datetime

from outreach.config import settings
from outreach.tracking.models import as_utc


@dataclass(frozen=True)
class ActiveHours:
    """Local hours ``[start_hour, end_hour)`` on the given weekdays (Monday=0)."""

    start_hour: int = 9
    end_hour: int = 18
    days: frozenset[int] = field(default_factory=lambda: frozenset({0, 1, 2, 3, 4}))
    timezone: str = "America/Chicago"

    @classmethod
    def from_settings(cls) -> ActiveHours:
        return cls(
            start_hour=settings.active_hours_start,
            end_hour=settings.active_hours_end,
            days=frozenset(settings.get_active_days()),
            timezone=settings.scheduler_timezone,
        )

    def contains(self, moment: datetime | None = None) -> bool:
        local = as_utc(moment or datetime.now(UTC)).astimezone(zoneinfo.ZoneInfo(self.timezone))
        if local.weekday() not in self.days:
            return False
        return self.start_hour <= local.hour < self.end_hour
