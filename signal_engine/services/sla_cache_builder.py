"""
Governance Signal Engine
SLA Cache Builder — rebuilds the approval SLA cache and bottleneck tables.

Reads every pending approval (artifact_approval_steps + change_approvals),
classifies it with the SLA resolver, and publishes the result as a new cache
generation. The swap is atomic: rows for the new generation are inserted in
chunks, the generation pointer is flipped and older generations are deleted
in the same transaction, so readers see either the old or the new snapshot,
never an empty or mixed one.

Usage:
    from signal_engine.services.sla_cache_builder import rebuild_cache
    summary = rebuild_cache()           # {"cache": N, "bottlenecks": M, "generation_id": G}
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context

from signal_engine.core.exceptions import PersistenceError, ValidationError
from signal_engine.models import db
from signal_engine.models.sla import (
    SLA_STATUSES,
    ApprovalGroup,
    ApprovalStep,
    BottleneckRow,
    ChangeApproval,
    SlaCacheGeneration,
    SlaCacheRow,
    SlaPolicy,
)
from signal_engine.services.sla_resolver import (
    DEFAULT_RISK_WINDOW_DAYS,
    PendingStep,
    PolicyTerms,
    aggregate_bottlenecks,
    approver_identity,
    resolve,
)
from signal_engine.utils.helpers import as_utc

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 500


def _cfg(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


# ═══════════════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════════════

def load_policies() -> list[PolicyTerms]:
    """Active policies in id order (ties in specificity resolve to the first)."""
    rows = SlaPolicy.query.filter(SlaPolicy.is_active.is_(True)).order_by(SlaPolicy.id).all()
    return [PolicyTerms.from_model(p) for p in rows]


def load_group_names() -> dict[int, str]:
    return {g.id: g.name for g in ApprovalGroup.query.all()}


def load_pending_steps() -> list[PendingStep]:
    """Pending artifact approval steps followed by pending change approvals."""
    steps = [
        PendingStep(
            id=s.id,
            project_id=s.project_id,
            artifact_id=s.artifact_id,
            artifact_type=s.artifact_type,
            stage_key=s.stage_key,
            submitted_at=as_utc(s.submitted_at),
            due_at=as_utc(s.due_at),
            approver_user_id=s.approver_user_id or None,
            approver_group_id=s.approver_group_id,
            source="artifact_approval_steps",
        )
        for s in ApprovalStep.query.filter(ApprovalStep.status == "pending")
        .order_by(ApprovalStep.id).all()
    ]
    steps.extend(
        PendingStep(
            id=c.id,
            project_id=c.project_id,
            artifact_id=c.change_request_id,
            artifact_type="change_request",
            stage_key=None,
            submitted_at=as_utc(c.requested_at),
            due_at=as_utc(c.due_at),
            approver_user_id=c.approver_user_id or None,
            approver_group_id=c.approver_group_id,
            source="change_approvals",
        )
        for c in ChangeApproval.query.filter(ChangeApproval.status == "pending")
        .order_by(ChangeApproval.id).all()
    )
    return steps


# ═══════════════════════════════════════════════════════════════════════════
#  Rebuild
# ═══════════════════════════════════════════════════════════════════════════

def _chunks(items: list, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def rebuild_cache(*, now: datetime | None = None, chunk_size: int | None = None) -> dict:
    """Recompute the SLA cache and bottlenecks as a new current generation.

    Returns:
        {"cache": <rows>, "bottlenecks": <rows>, "generation_id": <id>}

    Raises:
        PersistenceError: the rebuild could not be committed. The previous
            generation stays current.
    """
    now = now or datetime.now(timezone.utc)
    chunk_size = max(1, chunk_size or _cfg("SLA_CACHE_CHUNK_SIZE", DEFAULT_CHUNK_SIZE))
    risk_window = _cfg("SLA_RISK_WINDOW_DAYS", DEFAULT_RISK_WINDOW_DAYS)

    policies = load_policies()
    group_names = load_group_names()
    steps = load_pending_steps()

    classified = [(s, resolve(s, policies, now, risk_window_days=risk_window)) for s in steps]
    bottlenecks = aggregate_bottlenecks(classified, group_names)

    try:
        generation = SlaCacheGeneration(computed_at=now, is_current=False)
        db.session.add(generation)
        db.session.flush()

        cache_rows = []
        for step, res in classified:
            _key, label = approver_identity(step, group_names)
            cache_rows.append(SlaCacheRow(
                generation_id=generation.id,
                step_id=step.id,
                source=step.source,
                project_id=step.project_id,
                artifact_id=step.artifact_id,
                artifact_type=step.artifact_type,
                stage_key=step.stage_key,
                approver_user_id=step.approver_user_id,
                approver_group_id=step.approver_group_id,
                approver_label=label,
                submitted_at=step.submitted_at,
                due_at=res.due_at,
                sla_status=res.sla_status.value,
                hours_to_due=res.hours_to_due,
                hours_overdue=res.hours_overdue,
                sla_hours=res.sla_hours,
                computed_at=now,
            ))
        for chunk in _chunks(cache_rows, chunk_size):
            db.session.add_all(chunk)
            db.session.flush()

        bottleneck_rows = [
            BottleneckRow(
                generation_id=generation.id,
                approver_key=b.approver_key,
                approver_user_id=b.approver_user_id,
                approver_group_id=b.approver_group_id,
                approver_label=b.approver_label,
                open_steps=b.open_steps,
                breached_steps=b.breached_steps,
                at_risk_steps=b.at_risk_steps,
                max_hours_overdue=b.max_hours_overdue,
                blocker_score=b.blocker_score,
                computed_at=now,
            )
            for b in bottlenecks
        ]
        for chunk in _chunks(bottleneck_rows, chunk_size):
            db.session.add_all(chunk)
            db.session.flush()

        # Swap: retire every other generation, then publish this one.
        SlaCacheRow.query.filter(SlaCacheRow.generation_id != generation.id) \
            .delete(synchronize_session=False)
        BottleneckRow.query.filter(BottleneckRow.generation_id != generation.id) \
            .delete(synchronize_session=False)
        SlaCacheGeneration.query.filter(SlaCacheGeneration.id != generation.id) \
            .delete(synchronize_session=False)

        generation.is_current = True
        generation.cache_rows = len(cache_rows)
        generation.bottleneck_rows = len(bottleneck_rows)
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.exception("SLA cache rebuild failed")
        raise PersistenceError(f"SLA cache rebuild failed: {exc}") from exc

    logger.info("SLA cache rebuilt: %d rows, %d bottlenecks",
                len(cache_rows), len(bottleneck_rows),
                extra={"generation_id": generation.id})
    return {
        "cache": len(cache_rows),
        "bottlenecks": len(bottleneck_rows),
        "generation_id": generation.id,
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Readers
# ═══════════════════════════════════════════════════════════════════════════

def current_generation() -> SlaCacheGeneration | None:
    return (
        SlaCacheGeneration.query
        .filter(SlaCacheGeneration.is_current.is_(True))
        .order_by(SlaCacheGeneration.id.desc())
        .first()
    )


def get_cache_rows(*, project_id: int | None = None, status: str | None = None) -> dict:
    """Rows of the current generation, most overdue first."""
    generation = current_generation()
    if generation is None:
        return {"generation": None, "items": [], "total": 0}
    if status and status not in SLA_STATUSES:
        raise ValidationError(f"status must be one of {sorted(SLA_STATUSES)}", {"status": status})

    q = SlaCacheRow.query.filter(SlaCacheRow.generation_id == generation.id)
    if project_id is not None:
        q = q.filter(SlaCacheRow.project_id == project_id)
    if status:
        q = q.filter(SlaCacheRow.sla_status == status)
    rows = q.order_by(
        SlaCacheRow.hours_to_due.is_(None), SlaCacheRow.hours_to_due.asc(), SlaCacheRow.id.asc(),
    ).all()
    return {
        "generation": generation.to_dict(),
        "items": [r.to_dict() for r in rows],
        "total": len(rows),
    }


def get_bottlenecks(*, limit: int = 20) -> dict:
    """Top approvers by blocker score from the current generation."""
    generation = current_generation()
    if generation is None:
        return {"generation": None, "items": []}
    rows = (
        BottleneckRow.query
        .filter(BottleneckRow.generation_id == generation.id)
        .order_by(BottleneckRow.blocker_score.desc(), BottleneckRow.approver_label.asc())
        .limit(limit)
        .all()
    )
    return {"generation": generation.to_dict(), "items": [r.to_dict() for r in rows]}
