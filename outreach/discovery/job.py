"""DiscoveryJob — one polling cycle: fetch, filter, surface, act, record."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from outreach.config import settings
from outreach.db import StoreUnavailableError
from outreach.discovery.window import (
    EligibleEvent,
    EventWindowFilter,
    LookbackWindow,
    RawEvent,
    parse_timestamp,
)
from outreach.tracking.deferred import DeferredQueue
from outreach.tracking.ledger import ActionLedger
from outreach.tracking.models import FAILED, SUCCEEDED, utc_now
from outreach.tracking.seen import SeenEntityStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from outreach.discovery.collaborators import ActionPerformer, EventSource
    from outreach.discovery.hours import ActiveHours
    from outreach.discovery.window import EligibilityPredicate
    from outreach.tracking.limits import ActivityLimiter
    from outreach.tracking.models import DeferredEntity

    ContentBuilder = Callable[[RawEvent], Any | Awaitable[Any]]

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """How a single cycle ended.

    Attributes:
        fetched: Raw events returned by the source.
        eligible: Events that passed the window filter.
        surfaced: Events marked seen (and logged pending) this cycle.
        resumed: Entities from earlier cycles taken off the carry-over queue.
        deferred: Eligible entities newly queued for a later cycle.
        succeeded / failed: Final statuses recorded this cycle.
        skipped: Cycle did not run (outside active hours).
        fetch_failed: The source raised; nothing was marked seen.
        rate_limited: The activity budget ran out before the batch did.
        interrupted: An action raised; remaining events stay unseen.
        aborted: An unexpected error (usually the store) ended the cycle.
        error: Message of the error that ended the cycle, if any.
    """

    job_id: str
    fetched: int = 0
    eligible: int = 0
    surfaced: int = 0
    resumed: int = 0
    deferred: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False
    fetch_failed: bool = False
    rate_limited: bool = False
    interrupted: bool = False
    aborted: bool = False
    error: str | None = None


class DiscoveryJob:
    """Surfaces newly eligible entities of one type and performs one action on each.

    For every eligible event, under the seen-store lock for that entity, the
    job re-checks membership, logs a ``pending`` ledger record and marks the
    entity seen.  Only then is the action performed and the record moved to
    ``succeeded`` or ``failed``.  An entity is therefore surfaced at most once,
    whatever happens to its action.

    Eligible entities the cycle cannot get to (per-run cap, activity limit,
    an action that raised) go to the job's DeferredQueue and are drained,
    oldest first, ahead of fresh events on later cycles.

    Args:
        job_id: Scheduler task id.
        name: Human-readable job name.
        entity_type: Entity class handled (``"meeting"``, ``"post"``, ...).
        action_type: Action performed per entity (``"create_draft"``, ...).
        source: EventSource collaborator.
        performer: ActionPerformer collaborator.
        interval_minutes: Minutes between scheduled runs.
        ledger: ActionLedger (default: shared instance).
        seen: SeenEntityStore (default: shared instance).
        deferred: DeferredQueue for held-back entities (default: shared instance).
        lookback_minutes: Window length (default from settings).
        predicate: Optional eligibility predicate, sync or async.
        build_content: Optional ``event -> content`` callable, sync or async.
        max_per_run: Cap on entities surfaced per cycle.
        limiter: Optional ActivityLimiter checked before each entity.
        active_hours: Optional ActiveHours; outside them the cycle is skipped.
    """

    def __init__(
        self,
        job_id: str,
        name: str,
        *,
        entity_type: str,
        action_type: str,
        source: EventSource,
        performer: ActionPerformer,
        interval_minutes: float,
        ledger: ActionLedger | None = None,
        seen: SeenEntityStore | None = None,
        deferred: DeferredQueue | None = None,
        lookback_minutes: float | None = None,
        predicate: EligibilityPredicate | None = None,
        build_content: ContentBuilder | None = None,
        max_per_run: int | None = None,
        limiter: ActivityLimiter | None = None,
        active_hours: ActiveHours | None = None,
    ) -> None:
        self.job_id = job_id
        self.name = name
        self.entity_type = entity_type
        self.action_type = action_type
        self.interval_minutes = interval_minutes
        self.lookback_minutes = (
            lookback_minutes if lookback_minutes is not None else settings.lookback_minutes
        )
        self.max_per_run = max_per_run
        self._source = source
        self._performer = performer
        self._ledger = ledger or ActionLedger.get()
        self._seen = seen or SeenEntityStore.get()
        self._deferred = deferred or DeferredQueue.get()
        self._filter = EventWindowFilter(self._seen, self._ledger)
        self._predicate = predicate
        self._build_content = build_content
        self._limiter = limiter
        self._active_hours = active_hours

    async def run(self, now: datetime | None = None) -> CycleResult:
        """Run one cycle. Never raises; the outcome is described by the result."""
        result = CycleResult(job_id=self.job_id)
        try:
            await self._cycle(now or utc_now(), result)
        except StoreUnavailableError as exc:
            logger.error("[%s] Cycle aborted, store unavailable: %s", self.name, exc)
            result.aborted = True
            result.error = str(exc)
        except Exception as exc:
            logger.exception("[%s] Cycle aborted", self.name)
            result.aborted = True
            result.error = str(exc)

        if not result.skipped:
            logger.info(
                "[%s] fetched=%d eligible=%d resumed=%d surfaced=%d deferred=%d"
                " succeeded=%d failed=%d",
                self.name,
                result.fetched,
                result.eligible,
                result.resumed,
                result.surfaced,
                result.deferred,
                result.succeeded,
                result.failed,
            )
        return result

    # -- Cycle steps -----------------------------------------------------------

    async def _cycle(self, now: datetime, result: CycleResult) -> None:
        if self._active_hours is not None and not self._active_hours.contains(now):
            logger.info("[%s] Outside active hours, skipping", self.name)
            result.skipped = True
            return

        window = LookbackWindow.ending_at(now, self.lookback_minutes)
        try:
            events = await self._source.fetch_candidate_events(window)
        except Exception as exc:
            logger.warning("[%s] Fetching candidate events failed: %s", self.name, exc)
            result.fetch_failed = True
            result.error = str(exc)
            return
        result.fetched = len(events)

        eligible = await self._filter.select(
            events,
            cutoff=window.cutoff,
            now=window.now,
            action_type=self.action_type,
            predicate=self._predicate,
        )
        result.eligible = len(eligible)

        queued = await self._queued(now)
        queued_keys = {(c.entity_type, c.id) for c in queued}
        candidates = queued + [c for c in eligible if (c.entity_type, c.id) not in queued_keys]

        for index, candidate in enumerate(candidates):
            if self.max_per_run is not None and result.surfaced >= self.max_per_run:
                logger.info("[%s] Reached %d item(s) for this run", self.name, self.max_per_run)
                await self._defer(candidates[index:], result)
                break
            if self._limiter is not None and not await self._limiter.allows(self.action_type):
                result.rate_limited = True
                await self._defer(candidates[index:], result)
                break

            record_id = await self._surface(candidate)
            if (candidate.entity_type, candidate.id) in queued_keys:
                await self._deferred.remove(self.job_id, candidate.entity_type, candidate.id)
                result.resumed += 1
            if record_id is None:
                continue
            result.surfaced += 1

            if not await self._act(candidate, record_id, result):
                await self._defer(candidates[index + 1 :], result)
                break

    async def _queued(self, now: datetime) -> list[EligibleEvent]:
        """Drop stale queue entries, then return the rest oldest first."""
        max_age = timedelta(hours=settings.deferred_max_age_hours)
        await self._deferred.purge(self.job_id, now - max_age)
        return [_resume(entry) for entry in await self._deferred.peek(self.job_id)]

    async def _defer(self, candidates: list[EligibleEvent], result: CycleResult) -> None:
        for candidate in candidates:
            if await self._deferred.defer(
                self.job_id, candidate.entity_type, candidate.id, _snapshot(candidate)
            ):
                result.deferred += 1
        if result.deferred:
            logger.info("[%s] Deferred %d item(s) to a later cycle", self.name, result.deferred)

    async def _surface(self, candidate: EligibleEvent) -> str | None:
        """Claim *candidate*: log it pending and mark it seen, atomically per entity."""
        entity_type, entity_id = candidate.entity_type, candidate.id
        async with self._seen.lock(entity_type, entity_id):
            if await self._seen.has(entity_type, entity_id):
                logger.debug("[%s] %s %s surfaced concurrently", self.name, entity_type, entity_id)
                return None
            record_id = await self._ledger.log(
                self.action_type,
                entity_type,
                entity_id,
                payload=_payload(candidate),
            )
            await self._seen.mark_seen(entity_type, entity_id)
        return record_id

    async def _act(self, candidate: EligibleEvent, record_id: str, result: CycleResult) -> bool:
        """Perform the action and record its outcome. Returns False to end the cycle."""
        try:
            content = await self._content_for(candidate.event)
            outcome = await self._performer.perform_action(
                self.action_type, candidate.event, content
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning(
                "[%s] %s on %s %s raised: %s",
                self.name,
                self.action_type,
                candidate.entity_type,
                candidate.id,
                message,
            )
            await self._ledger.update_status(record_id, FAILED, error_message=message)
            result.failed += 1
            result.interrupted = True
            result.error = message
            return False

        if outcome.success:
            payload = {**_payload(candidate), "result": outcome.data} if outcome.data else None
            await self._ledger.update_status(record_id, SUCCEEDED, payload=payload)
            result.succeeded += 1
        else:
            await self._ledger.update_status(
                record_id, FAILED, error_message=outcome.error or "unknown error"
            )
            result.failed += 1
        return True

    async def _content_for(self, event: RawEvent) -> Any:
        if self._build_content is None:
            return None
        content = self._build_content(event)
        if inspect.isawaitable(content):
            content = await content
        return content


def _payload(candidate: EligibleEvent) -> dict[str, Any]:
    return {
        "title": candidate.event.title,
        "start": candidate.start.isoformat(),
        "end": candidate.end.isoformat(),
    }


def _snapshot(candidate: EligibleEvent) -> dict[str, Any]:
    """JSON-friendly copy of *candidate*, enough to rebuild it from the queue."""
    event = candidate.event
    return {
        "start": candidate.start.isoformat(),
        "end": candidate.end.isoformat(),
        "title": event.title,
        "attendees": event.attendees,
        "data": event.data,
        "is_external": candidate.is_external,
        "match": candidate.match,
    }


def _resume(entry: DeferredEntity) -> EligibleEvent:
    snapshot = entry.event
    event = RawEvent(
        id=entry.entity_id,
        entity_type=entry.entity_type,
        start=snapshot.get("start"),
        end=snapshot.get("end"),
        title=snapshot.get("title", ""),
        attendees=snapshot.get("attendees") or [],
        data=snapshot.get("data") or {},
    )
    return EligibleEvent(
        event=event,
        start=parse_timestamp(event.start),
        end=parse_timestamp(event.end),
        is_external=bool(snapshot.get("is_external")),
        match=snapshot.get("match", True),
    )
