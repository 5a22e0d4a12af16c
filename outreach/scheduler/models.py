"""ScheduledTask data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    TaskHandler = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledTask:
    """A recurring job owned by the scheduler.

    Attributes:
        id: Unique key; registering the same id again replaces the task.
        name: Human-readable name.
        interval_minutes: Minutes between timer fires.
        handler: Async callable run on every fire and on manual runs.
        last_run_at: When the handler was last started (timer or manual).
        next_run_at: When the timer is next due.  Manual runs leave it alone.
    """

    id: str
    name: str
    interval_minutes: float
    handler: TaskHandler = field(repr=False)
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    def snapshot(self) -> TaskStatus:
        return TaskStatus(
            id=self.id,
            name=self.name,
            interval_minutes=self.interval_minutes,
            last_run_at=self.last_run_at.isoformat() if self.last_run_at else None,
            next_run_at=self.next_run_at.isoformat() if self.next_run_at else None,
        )


@dataclass(frozen=True)
class TaskStatus:
    """Point-in-time view of a ScheduledTask, safe to hand to callers."""

    id: str
    name: str
    interval_minutes: float
    last_run_at: str | None
    next_run_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "interval_minutes": self.interval_minutes,
            "last_run_at": self.last_run_at,
            "next_run_at": self.next_run_at,
        }
