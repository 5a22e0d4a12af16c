"""Event window filtering — pick the newly eligible events out of a polled batch.

Checks run cheapest first so mostly-stale batches cost little:

1. drop events without a parseable start and end timestamp;
2. drop events outside the lookback window (``cutoff < end <= now``);
3. drop events already in the seen-entity store, or already carrying a ledger
   record for the job's action type;
4. drop events failing the eligibility predicate.

Survivors keep their original relative order.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from outreach.tracking.models import as_utc

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from outreach.tracking.ledger import ActionLedger
    from outreach.tracking.seen import SeenEntityStore

    EligibilityPredicate = Callable[["RawEvent"], Any | Awaitable[Any]]

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime | None:
    """Normalise a raw timestamp to an aware UTC datetime.

    Accepts ``datetime`` objects, ISO 8601 strings (a trailing ``Z`` is fine)
    and calendar-style mappings ``{"date_time": ...}`` or ``{"date": ...}``.
    Naive values are read as UTC.  Anything else yields None.
    """
    if isinstance(value, dict):
        value = value.get("date_time") or value.get("date")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return as_utc(value)


@dataclass
class RawEvent:
    """An externally observed entity as returned by an event source.

    Posts and profiles have no duration; sources report their creation time
    as both ``start`` and ``end``.
    """

    id: str
    entity_type: str
    start: Any = None
    end: Any = None
    title: str = ""
    attendees: list[dict[str, Any]] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class EligibleEvent:
    """A RawEvent that passed every window check.

    Attributes:
        event: The raw event as fetched.
        start / end: Parsed UTC timestamps.
        is_external: At least one attendee is flagged ``is_external`` by the source.
        match: Truthy value the eligibility predicate returned (True without one),
            e.g. the external attendee that made a meeting eligible.
    """

    event: RawEvent
    start: datetime
    end: datetime
    is_external: bool = False
    match: Any = True

    @property
    def id(self) -> str:
        return self.event.id

    @property
    def entity_type(self) -> str:
        return self.event.entity_type


@dataclass(frozen=True)
class LookbackWindow:
    """The ``(cutoff, now]`` interval of recently concluded events.

    Both bounds are stored as aware UTC; naive values are read as UTC.
    """

    cutoff: datetime
    now: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "cutoff", as_utc(self.cutoff))
        object.__setattr__(self, "now", as_utc(self.now))

    @classmethod
    def ending_at(cls, now: datetime, lookback_minutes: float) -> LookbackWindow:
        return cls(cutoff=now - timedelta(minutes=lookback_minutes), now=now)

    def contains(self, moment: datetime) -> bool:
        return self.cutoff < moment <= self.now


class EventWindowFilter:
    """Selects events that are concluded, recent, unseen and eligible.

    Args:
        seen: SeenEntityStore consulted for prior surfacing.
        ledger: Optional ActionLedger; when given together with an
            *action_type*, an existing record for the entity also excludes it.
    """

    def __init__(self, seen: SeenEntityStore, ledger: ActionLedger | None = None) -> None:
        self._seen = seen
        self._ledger = ledger

    async def select(
        self,
        events: Iterable[RawEvent],
        *,
        cutoff: datetime,
        now: datetime,
        action_type: str | None = None,
        predicate: EligibilityPredicate | None = None,
    ) -> list[EligibleEvent]:
        window = LookbackWindow(cutoff=cutoff, now=now)

        in_window: list[EligibleEvent] = []
        malformed = 0
        for event in events:
            start = parse_timestamp(event.start)
            end = parse_timestamp(event.end)
            if start is None or end is None:
                malformed += 1
                continue
            if not window.contains(end):
                continue
            in_window.append(
                EligibleEvent(
                    event=event,
                    start=start,
                    end=end,
                    is_external=any(a.get("is_external") for a in event.attendees),
                )
            )

        unseen: list[EligibleEvent] = []
        for candidate in in_window:
            if await self._already_handled(candidate.event, action_type):
                continue
            unseen.append(candidate)

        eligible: list[EligibleEvent] = []
        for candidate in unseen:
            if predicate is not None:
                match = await _check(predicate, candidate.event)
                if not match:
                    continue
                candidate.match = match
            eligible.append(candidate)

        if malformed:
            logger.debug("Dropped %d event(s) without start/end timestamps", malformed)
        logger.info(
            "Window filter: %d in window, %d unseen, %d eligible",
            len(in_window),
            len(unseen),
            len(eligible),
        )
        return eligible

    async def _already_handled(self, event: RawEvent, action_type: str | None) -> bool:
        if await self._seen.has(event.entity_type, event.id):
            return True
        if self._ledger is None or action_type is None:
            return False
        return await self._ledger.latest(action_type, event.entity_type, event.id) is not None


async def _check(predicate: EligibilityPredicate, event: RawEvent) -> Any:
    result = predicate(event)
    if inspect.isawaitable(result):
        result = await result
    return result
