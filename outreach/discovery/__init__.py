"""Discovery — polling jobs that surface external entities and act on them."""

from outreach.discovery.collaborators import ActionPerformer, ActionResult, EventSource
from outreach.discovery.engine import DiscoveryEngine
from outreach.discovery.hours import ActiveHours
from outreach.discovery.job import CycleResult, DiscoveryJob
from outreach.discovery.window import (
    EligibleEvent,
    EventWindowFilter,
    LookbackWindow,
    RawEvent,
    parse_timestamp,
)

__all__ = [
    "ActionPerformer",
    "ActionResult",
    "ActiveHours",
    "CycleResult",
    "DiscoveryEngine",
    "DiscoveryJob",
    "EligibleEvent",
    "EventSource",
    "EventWindowFilter",
    "LookbackWindow",
    "RawEvent",
    "parse_timestamp",
]
