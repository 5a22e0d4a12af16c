"""DiscoveryEngine — wires discovery jobs to the scheduler and reports on them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from outreach.scheduler.engine import SchedulerEngine
from outreach.tracking.deferred import DeferredQueue
from outreach.tracking.ledger import ActionLedger
from outreach.tracking.models import utc_now
from outreach.tracking.seen import SeenEntityStore

if TYPE_CHECKING:
    from datetime import date

    from outreach.discovery.job import DiscoveryJob

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """Owns one SchedulerEngine and the discovery jobs registered with it.

    Args:
        scheduler: SchedulerEngine to drive the jobs (default: a new one).
        ledger: ActionLedger used for status and reports (default: shared).
        seen: SeenEntityStore used for status (default: shared).
        deferred: DeferredQueue used for status (default: shared).
    """

    def __init__(
        self,
        scheduler: SchedulerEngine | None = None,
        ledger: ActionLedger | None = None,
        seen: SeenEntityStore | None = None,
        deferred: DeferredQueue | None = None,
    ) -> None:
        self._scheduler = scheduler or SchedulerEngine()
        self._ledger = ledger or ActionLedger.get()
        self._seen = seen or SeenEntityStore.get()
        self._deferred = deferred or DeferredQueue.get()
        self._jobs: dict[str, DiscoveryJob] = {}

    @property
    def scheduler(self) -> SchedulerEngine:
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def add_job(self, job: DiscoveryJob) -> None:
        """Register *job*; replaces any job with the same id (also while running)."""
        self._jobs[job.job_id] = job
        if self._scheduler.running:
            self._schedule(job)

    async def start(self) -> None:
        for job in self._jobs.values():
            self._schedule(job)
        await self._scheduler.start()
        logger.info("Discovery engine started with %d job(s)", len(self._jobs))

    async def stop(self) -> None:
        await self._scheduler.stop_all()
        logger.info("Discovery engine stopped")

    async def trigger_now(self, job_id: str) -> bool:
        """Run a registered job immediately. Returns False for unknown ids."""
        return await self._scheduler.run_now(job_id)

    def _schedule(self, job: DiscoveryJob) -> None:
        self._scheduler.schedule(job.job_id, job.name, job.interval_minutes, job.run)

    # -- Status & reporting ----------------------------------------------------

    async def get_status(self) -> dict[str, Any]:
        entity_types = sorted({job.entity_type for job in self._jobs.values()})
        seen = {entity_type: await self._seen.count(entity_type) for entity_type in entity_types}
        deferred = {job_id: await self._deferred.count(job_id) for job_id in sorted(self._jobs)}
        return {
            "running": self.running,
            "tasks": [status.to_dict() for status in self._scheduler.status()],
            "seen": seen,
            "deferred": deferred,
            "today": await self._ledger.counts_by_date(utc_now().date()),
        }

    async def daily_report(self, day: date | None = None) -> dict[str, Any]:
        """Counts plus the pending and failed records of a UTC day."""
        day = day or utc_now().date()
        pending = await self._ledger.pending(day)
        failed = await self._ledger.failed(day)
        return {
            "date": day.isoformat(),
            "counts": await self._ledger.counts_by_date(day),
            "pending": [record.to_dict() for record in pending],
            "failed": [
                {
                    "id": record.id,
                    "action_type": record.action_type,
                    "entity_type": record.entity_type,
                    "entity_id": record.entity_id,
                    "error_message": record.error_message,
                    "created_at": record.created_at,
                }
                for record in failed
            ],
        }
