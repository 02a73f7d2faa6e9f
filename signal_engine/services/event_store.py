"""
Governance Signal Engine
Artifact event store — queue reads and the worker's processing writes.

All writes to the processing columns of ``artifact_events`` go through this
module so the state machine stays in one place:

    pending ──claim──▶ claimed ──mark_processed──▶ processed
       ▲                  │
       │              mark_failed (attempt_count += 1)
       │                  ▼
       └──────────── failed ──(attempts ≥ max)──▶ quarantined ──requeue──▶ pending

None of these functions commit unless their docstring says so; the caller
owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from signal_engine.core.exceptions import NotFoundError, ValidationError
from signal_engine.models import db
from signal_engine.models.events import EVENT_ACTIONS, EVENT_STATES, ArtifactEvent

logger = logging.getLogger(__name__)

# process_error is Text, but keep stored messages bounded.
MAX_ERROR_LENGTH = 2000


# ═══════════════════════════════════════════════════════════════════════════
#  Append
# ═══════════════════════════════════════════════════════════════════════════

def record_event(
    *,
    project_id: int,
    artifact_type: str,
    action: str,
    payload: dict | None = None,
    artifact_id: int | None = None,
) -> ArtifactEvent:
    """Append an artifact lifecycle event and commit."""
    if project_id is None:
        raise ValidationError("project_id is required", {"project_id": "required"})
    artifact_type = (artifact_type or "").strip().lower()
    action = (action or "").strip().lower()
    if not artifact_type:
        raise ValidationError("artifact_type is required", {"artifact_type": "required"})
    if action not in EVENT_ACTIONS:
        raise ValidationError(
            f"action must be one of {sorted(EVENT_ACTIONS)}",
            {"action": action or "required"},
        )
    if payload is not None and not isinstance(payload, dict):
        raise ValidationError("payload must be an object", {"payload": type(payload).__name__})

    event = ArtifactEvent(
        project_id=project_id,
        artifact_id=artifact_id,
        artifact_type=artifact_type,
        action=action,
        payload=payload or {},
    )
    db.session.add(event)
    db.session.commit()
    logger.info("Recorded event #%d %s.%s", event.id, artifact_type, action,
                extra={"event_id": event.id, "project_id": project_id})
    return event


# ═══════════════════════════════════════════════════════════════════════════
#  Queue reads
# ═══════════════════════════════════════════════════════════════════════════

def _queue_query():
    return ArtifactEvent.query.filter(
        ArtifactEvent.processed_at.is_(None),
        ArtifactEvent.quarantined_at.is_(None),
    )


def fetch_unprocessed_ids(limit: int) -> list[int]:
    """Oldest-first ids of events that still need processing."""
    rows = (
        _queue_query()
        .with_entities(ArtifactEvent.id)
        .order_by(ArtifactEvent.created_at.asc(), ArtifactEvent.id.asc())
        .limit(limit)
        .all()
    )
    return [r[0] for r in rows]


def fetch_unprocessed(limit: int) -> list[ArtifactEvent]:
    return (
        _queue_query()
        .order_by(ArtifactEvent.created_at.asc(), ArtifactEvent.id.asc())
        .limit(limit)
        .all()
    )


def list_events(
    *,
    status: str | None = None,
    project_id: int | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    """List events with a derived-state filter and pagination."""
    q = ArtifactEvent.query
    if project_id is not None:
        q = q.filter(ArtifactEvent.project_id == project_id)

    if status:
        if status not in EVENT_STATES:
            raise ValidationError(f"status must be one of {sorted(EVENT_STATES)}",
                                  {"status": status})
        if status == "processed":
            q = q.filter(ArtifactEvent.processed_at.isnot(None))
        elif status == "quarantined":
            q = q.filter(ArtifactEvent.processed_at.is_(None),
                         ArtifactEvent.quarantined_at.isnot(None))
        elif status == "failed":
            q = q.filter(ArtifactEvent.processed_at.is_(None),
                         ArtifactEvent.quarantined_at.is_(None),
                         ArtifactEvent.process_error.isnot(None))
        else:
            q = q.filter(ArtifactEvent.processed_at.is_(None),
                         ArtifactEvent.quarantined_at.is_(None),
                         ArtifactEvent.process_error.is_(None))

    q = q.order_by(ArtifactEvent.created_at.asc(), ArtifactEvent.id.asc())
    total = q.count()
    items = q.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [e.to_dict() for e in items],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Processing writes
# ═══════════════════════════════════════════════════════════════════════════

def claim(event_id: int, worker_id: str, now: datetime, lease_seconds: int) -> bool:
    """Atomically claim one event for ``worker_id``.

    A single conditional UPDATE: succeeds only when the event is still
    unprocessed, not quarantined, and either unclaimed or held under an
    expired lease. A live claim blocks every worker, its owner included.
    Commits so that the claim is visible to other workers before routing
    starts.
    """
    lease_cutoff = now - timedelta(seconds=lease_seconds)
    affected = (
        ArtifactEvent.query
        .filter(
            ArtifactEvent.id == event_id,
            ArtifactEvent.processed_at.is_(None),
            ArtifactEvent.quarantined_at.is_(None),
            db.or_(
                ArtifactEvent.claimed_at.is_(None),
                ArtifactEvent.claimed_at < lease_cutoff,
            ),
        )
        .update(
            {ArtifactEvent.claimed_at: now, ArtifactEvent.claimed_by: worker_id},
            synchronize_session=False,
        )
    )
    db.session.commit()
    return affected == 1


def mark_processed(event: ArtifactEvent, now: datetime) -> None:
    event.processed_at = now
    event.process_error = None
    event.claimed_at = None
    event.claimed_by = None


def mark_failed(event_id: int, error: str, now: datetime, max_attempts: int) -> ArtifactEvent | None:
    """Record a failed attempt in a fresh transaction and commit.

    Releases the claim and quarantines the event once ``attempt_count``
    reaches ``max_attempts``. Returns the updated event, or None if it no
    longer exists.
    """
    event = db.session.get(ArtifactEvent, event_id)
    if event is None:
        return None
    event.attempt_count = (event.attempt_count or 0) + 1
    event.process_error = (error or "unknown error")[:MAX_ERROR_LENGTH]
    event.processed_at = None
    event.claimed_at = None
    event.claimed_by = None
    if max_attempts and event.attempt_count >= max_attempts:
        event.quarantined_at = now
    db.session.commit()
    return event


def requeue(event_id: int) -> ArtifactEvent:
    """Return a failed or quarantined event to the queue and commit."""
    event = db.session.get(ArtifactEvent, event_id)
    if event is None:
        raise NotFoundError(resource="ArtifactEvent", resource_id=event_id)
    if event.processed_at is not None:
        raise ValidationError("Event is already processed", {"state": "processed"})

    event.quarantined_at = None
    event.attempt_count = 0
    event.process_error = None
    event.claimed_at = None
    event.claimed_by = None
    db.session.commit()
    logger.info("Requeued event #%d", event_id, extra={"event_id": event_id})
    return event


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
