"""Action tracking — the action ledger, the seen-entity store and activity limits."""

from outreach.tracking.deferred import DeferredQueue
from outreach.tracking.ledger import ActionLedger
from outreach.tracking.limits import ActivityLimiter
from outreach.tracking.models import ActionRecord, DeferredEntity, SeenEntity
from outreach.tracking.seen import SeenEntityStore

__all__ = [
    "ActionLedger",
    "ActionRecord",
    "ActivityLimiter",
    "DeferredEntity",
    "DeferredQueue",
    "SeenEntity",
    "SeenEntityStore",
]
