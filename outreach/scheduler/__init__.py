"""Recurring task scheduling — models and the APScheduler-backed engine."""

from outreach.scheduler.engine import SchedulerEngine
from outreach.scheduler.models import ScheduledTask, TaskStatus

__all__ = [
    "ScheduledTask",
    "SchedulerEngine",
    "TaskStatus",
]
