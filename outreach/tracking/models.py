"""ActionRecord and SeenEntity data models."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time as dt_time, timedelta
from typing import Any

# Action statuses. A record starts pending and moves to exactly one final status.
PENDING = "pending"
SUCCEEDED = "succeeded"
FAILED = "failed"

STATUSES = (PENDING, SUCCEEDED, FAILED)
FINAL_STATUSES = (SUCCEEDED, FAILED)

# Well-known action types. The ledger accepts any string.
CONNECTION_REQUEST = "connection_request"
CREATE_DRAFT = "create_draft"
COMMENT = "comment"
LIKE = "like"
MESSAGE = "message"

# Well-known entity types.
POST = "post"
PROFILE = "profile"
MEETING = "meeting"

PAYLOAD_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(moment: datetime) -> datetime:
    """Convert *moment* to aware UTC. Naive values are read as UTC, not local time."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def to_iso(moment: datetime) -> str:
    """Format a datetime as fixed-width UTC ISO 8601.

    Fixed width (always microseconds, always ``+00:00``) keeps string order
    identical to chronological order in SQL comparisons.
    """
    return as_utc(moment).isoformat(timespec="microseconds")


def day_bounds(day: date) -> tuple[str, str]:
    """Return the ``[start, end)`` ISO strings of a UTC calendar day."""
    start = datetime.combine(day, dt_time.min, tzinfo=UTC)
    return to_iso(start), to_iso(start + timedelta(days=1))


def make_action_id() -> str:
    """Generate a unique, time-sortable action ID."""
    return f"{time.time_ns():020d}-{uuid.uuid4().hex[:8]}"


@dataclass
class ActionRecord:
    """One attempted outbound action.

    Attributes:
        id: Time-sortable unique identifier.
        action_type: What was attempted, e.g. ``"connection_request"``.
        entity_type: Class of the target entity, e.g. ``"profile"``.
        entity_id: External id of the target entity.
        status: ``pending``, ``succeeded`` or ``failed``.
        error_message: Failure reason for ``failed`` records.
        payload: Opaque structured data (JSON-serialisable).
        created_at: ISO 8601 UTC timestamp.
        updated_at: ISO 8601 UTC timestamp of the last status change.
    """

    id: str
    action_type: str
    entity_type: str
    entity_id: str
    status: str = PENDING
    error_message: str | None = None
    payload: dict[str, Any] | None = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = to_iso(utc_now())
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``actions_log`` column order."""
        return (
            self.id,
            self.action_type,
            self.entity_type,
            self.entity_id,
            self.status,
            self.error_message,
            dump_payload(self.payload),
            PAYLOAD_VERSION,
            self.created_at,
            self.updated_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> ActionRecord:
        return cls(
            id=row[0],
            action_type=row[1],
            entity_type=row[2],
            entity_id=row[3],
            status=row[4],
            error_message=row[5],
            payload=load_payload(row[6], row[7]),
            created_at=row[8],
            updated_at=row[9],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "status": self.status,
            "error_message": self.error_message,
            "payload": self.payload,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def dump_payload(payload: dict[str, Any] | None) -> str | None:
    if payload is None:
        return None
    return json.dumps(payload, default=str)


def load_payload(raw: str | None, version: int | None) -> dict[str, Any] | None:
    """Decode a stored payload.

    Only version 1 (plain JSON object) exists; rows without a version are
    treated as version 1.
    """
    if raw is None:
        return None
    if version not in (None, PAYLOAD_VERSION):
        msg = f"Unsupported payload version: {version}"
        raise ValueError(msg)
    return json.loads(raw)


@dataclass(frozen=True)
class SeenEntity:
    """Membership row: an external entity that has already been surfaced."""

    entity_type: str
    entity_id: str
    first_seen_at: str


@dataclass(frozen=True)
class DeferredEntity:
    """An eligible entity a job held back because its cap or budget ran out.

    Attributes:
        job_id: Job that will pick the entity up again.
        entity_type / entity_id: The held-back entity.
        event: JSON-serialisable snapshot of the event, enough to act on it later.
        deferred_at: ISO 8601 UTC timestamp of when it was first queued.
    """

    job_id: str
    entity_type: str
    entity_id: str
    event: dict[str, Any]
    deferred_at: str
