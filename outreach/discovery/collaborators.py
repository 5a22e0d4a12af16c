"""Collaborator protocols — the external fetch and action interfaces jobs depend on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from outreach.discovery.window import LookbackWindow, RawEvent


@dataclass
class ActionResult:
    """Outcome of a side-effecting action against an external platform."""

    success: bool
    error: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> ActionResult:
        return cls(success=False, error=error)


@runtime_checkable
class EventSource(Protocol):
    """Fetches candidate events (posts, profiles, meetings) for a time window."""

    async def fetch_candidate_events(self, window: LookbackWindow) -> list[RawEvent]:
        """Return raw events observed within *window*. May raise on network errors."""
        ...


@runtime_checkable
class ActionPerformer(Protocol):
    """Executes the outbound action (message, draft, comment, like)."""

    async def perform_action(
        self, action_type: str, target: RawEvent, content: Any
    ) -> ActionResult:
        """Perform *action_type* against *target*. Returns an ActionResult."""
        ...
