"""SchedulerEngine — APScheduler lifecycle and recurring job management."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from outreach.config import settings
from outreach.scheduler.models import ScheduledTask

if TYPE_CHECKING:
    from outreach.scheduler.models import TaskHandler, TaskStatus

logger = logging.getLogger(__name__)


class SchedulerEngine:
    """Owns the recurring tasks of one process and their APScheduler jobs.

    Each task id maps to exactly one APScheduler job; ``schedule`` removes the
    previous job before adding the new one.  Handler invocations for the same
    id never overlap: a timer fire that finds the task busy is skipped, while
    ``run_now`` waits for the in-flight invocation to finish.

    Handler exceptions are logged and swallowed here so a failing cycle never
    unschedules its task.

    Args:
        timezone: IANA timezone string for APScheduler (default from settings).
    """

    def __init__(self, timezone: str | None = None) -> None:
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._tasks: dict[str, ScheduledTask] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start firing timers for every registered task."""
        if self._running:
            return
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started with %d task(s) (tz=%s)", len(self._tasks), self._timezone
        )

    async def stop_all(self) -> None:
        """Cancel every task and shut the scheduler down."""
        self._scheduler.remove_all_jobs()
        self._tasks.clear()
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
        logger.info("All scheduled tasks stopped")

    # -- Task management -------------------------------------------------------

    def schedule(
        self,
        task_id: str,
        name: str,
        interval_minutes: float,
        handler: TaskHandler,
    ) -> ScheduledTask:
        """Register *handler* to run every *interval_minutes*, replacing any task with *task_id*."""
        if interval_minutes <= 0:
            msg = f"interval_minutes must be positive, got {interval_minutes}"
            raise ValueError(msg)

        if self._remove_job(task_id):
            logger.info("Replacing scheduled task: %s", task_id)

        task = ScheduledTask(
            id=task_id,
            name=name,
            interval_minutes=interval_minutes,
            handler=handler,
        )
        task.next_run_at = datetime.now(UTC) + task.interval
        self._scheduler.add_job(
            self._fire,
            trigger=IntervalTrigger(seconds=interval_minutes * 60, timezone=self._timezone),
            id=task_id,
            name=name,
            args=[task_id],
            coalesce=True,
            max_instances=1,
            misfire_grace_time=None,
            replace_existing=True,
        )
        self._tasks[task_id] = task
        logger.info("Scheduled: %s (every %s min)", name, interval_minutes)
        return task

    async def run_now(self, task_id: str) -> bool:
        """Run a task's handler immediately, outside its timer.

        Returns False if *task_id* is unknown or the handler raised.
        ``last_run_at`` is updated either way; ``next_run_at`` is not.
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.warning("Manual run requested for unknown task: %s", task_id)
            return False

        async with self._lock_for(task_id):
            logger.info("Manual run: %s", task.name)
            task.last_run_at = datetime.now(UTC)
            return await self._invoke(task)

    def cancel(self, task_id: str) -> bool:
        """Stop future fires of a task. An in-flight invocation runs to completion."""
        task = self._tasks.pop(task_id, None)
        self._remove_job(task_id)
        if task is None:
            return False
        logger.info("Cancelled: %s", task.name)
        return True

    def status(self) -> list[TaskStatus]:
        """Snapshot of every registered task."""
        return [task.snapshot() for task in self._tasks.values()]

    def get_task(self, task_id: str) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    # -- Internal --------------------------------------------------------------

    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[task_id] = lock
        return lock

    def _remove_job(self, task_id: str) -> bool:
        try:
            self._scheduler.remove_job(task_id)
        except JobLookupError:
            return False
        return True

    async def _fire(self, task_id: str) -> None:
        """Timer callback invoked by APScheduler."""
        task = self._tasks.get(task_id)
        if task is None:
            return

        lock = self._lock_for(task_id)
        if lock.locked():
            logger.warning("Skipping %s: previous run still in progress", task.name)
            return

        async with lock:
            now = datetime.now(UTC)
            task.last_run_at = now
            task.next_run_at = now + task.interval
            logger.info("Running: %s", task.name)
            await self._invoke(task)

    async def _invoke(self, task: ScheduledTask) -> bool:
        try:
            await task.handler()
        except Exception:
            logger.exception("Error in scheduled task '%s' (%s)", task.name, task.id)
            return False
        return True
