"""
Governance Signal Engine
Suggestion Queue Service.

Read side of the suggestion table plus the SLA escalation check:

    proposed ──(older than N days)──▶ + one "sla_escalation" suggestion

Accept/reject/apply transitions belong to the consuming UI and are not
handled here.

Usage:
    from signal_engine.services.suggestion_queue import SuggestionQueue
    SuggestionQueue.list_suggestions(project_id=1, status="proposed")
    SuggestionQueue.escalate_stale_suggestions(project_id=1, days=7)
"""

import logging
from datetime import datetime, timedelta, timezone

from signal_engine.core.exceptions import ValidationError
from signal_engine.models import db
from signal_engine.models.suggestions import AISuggestion, SUGGESTION_STATUSES, SUGGESTION_TYPES
from signal_engine.utils.helpers import clamp_int

logger = logging.getLogger(__name__)

DEFAULT_SLA_DAYS = 7
MIN_SLA_DAYS = 1
MAX_SLA_DAYS = 60
MAX_SCAN = 200
ESCALATION_CONFIDENCE = 0.9


def escalation_trigger_key(suggestion_id: int, days: int) -> str:
    return f"sla.escalation.{suggestion_id}.{days}d"


class SuggestionQueue:
    """Queries and SLA housekeeping over AI suggestions."""

    # ── Queries ───────────────────────────────────────────────────────────

    @staticmethod
    def list_suggestions(
        *,
        project_id: int | None = None,
        status: str | None = None,
        suggestion_type: str | None = None,
        target_artifact_type: str | None = None,
        source_event_id: int | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> dict:
        """
        List suggestions with filters and pagination, newest first.

        Returns:
            {items: [...], total: N, page: N, per_page: N}
        """
        if status and status not in SUGGESTION_STATUSES:
            raise ValidationError(f"status must be one of {sorted(SUGGESTION_STATUSES)}",
                                  {"status": status})
        if suggestion_type and suggestion_type not in SUGGESTION_TYPES:
            raise ValidationError(f"suggestion_type must be one of {sorted(SUGGESTION_TYPES)}",
                                  {"suggestion_type": suggestion_type})

        q = AISuggestion.query
        if project_id is not None:
            q = q.filter(AISuggestion.project_id == project_id)
        if status:
            q = q.filter(AISuggestion.status == status)
        if suggestion_type:
            q = q.filter(AISuggestion.suggestion_type == suggestion_type)
        if target_artifact_type:
            q = q.filter(AISuggestion.target_artifact_type == target_artifact_type)
        if source_event_id is not None:
            q = q.filter(AISuggestion.source_event_id == source_event_id)

        q = q.order_by(AISuggestion.created_at.desc(), AISuggestion.id.desc())
        total = q.count()
        items = q.offset((page - 1) * per_page).limit(per_page).all()

        return {
            "items": [s.to_dict() for s in items],
            "total": total,
            "page": page,
            "per_page": per_page,
        }

    @staticmethod
    def get_stats(project_id: int | None = None) -> dict:
        """Counts by status and type, plus mean confidence of open proposals."""
        def scoped(q):
            if project_id is not None:
                q = q.filter(AISuggestion.project_id == project_id)
            return q

        total = scoped(AISuggestion.query).count()

        status_counts = {}
        for status, n in scoped(db.session.query(
            AISuggestion.status, db.func.count(AISuggestion.id),
        )).group_by(AISuggestion.status).all():
            status_counts[status] = n

        type_counts = {}
        for stype, n in scoped(db.session.query(
            AISuggestion.suggestion_type, db.func.count(AISuggestion.id),
        )).group_by(AISuggestion.suggestion_type).all():
            type_counts[stype] = n

        proposed_conf = scoped(db.session.query(
            db.func.avg(AISuggestion.confidence),
        )).filter(AISuggestion.status == "proposed").scalar() or 0.0

        return {
            "total": total,
            "by_status": status_counts,
            "by_type": type_counts,
            "avg_confidence_proposed": round(float(proposed_conf), 3),
        }

    # ── SLA escalation ────────────────────────────────────────────────────

    @staticmethod
    def escalate_stale_suggestions(
        project_id: int,
        days=DEFAULT_SLA_DAYS,
        now: datetime | None = None,
    ) -> dict:
        """
        Raise one ``sla_escalation`` suggestion per proposal left untouched
        for more than ``days`` (clamped 1–60).

        Idempotent per (suggestion, days): the escalation's trigger_key is
        checked before insert and backed by a unique constraint.

        Returns:
            {scanned: N, created: M, days: D}
        """
        days = clamp_int(days, DEFAULT_SLA_DAYS, MIN_SLA_DAYS, MAX_SLA_DAYS)
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=days)

        stale = (
            AISuggestion.query
            .filter(
                AISuggestion.project_id == project_id,
                AISuggestion.status == "proposed",
                AISuggestion.suggestion_type != "sla_escalation",
                AISuggestion.created_at < cutoff,
            )
            .order_by(AISuggestion.created_at.asc(), AISuggestion.id.asc())
            .limit(MAX_SCAN)
            .all()
        )

        keys = {escalation_trigger_key(s.id, days): s for s in stale}
        existing = set()
        if keys:
            existing = {
                row[0] for row in db.session.query(AISuggestion.trigger_key).filter(
                    AISuggestion.project_id == project_id,
                    AISuggestion.trigger_key.in_(list(keys)),
                ).all()
            }

        created = 0
        for key, s in keys.items():
            if key in existing:
                continue
            db.session.add(AISuggestion(
                project_id=project_id,
                source_event_id=None,
                target_artifact_id=s.target_artifact_id,
                target_artifact_type=s.target_artifact_type,
                suggestion_type="sla_escalation",
                rationale=(
                    f"SLA: Suggestion has been proposed for more than {days} days. "
                    "Consider applying, rejecting, or escalating to an approver."
                ),
                confidence=ESCALATION_CONFIDENCE,
                patch={"suggestion_id": s.id},
                status="proposed",
                trigger_key=key,
                created_at=now,
            ))
            created += 1

        if created:
            db.session.commit()
        logger.info("Suggestion SLA check: scanned=%d created=%d (days=%d)",
                    len(stale), created, days, extra={"project_id": project_id})
        return {"scanned": len(stale), "created": created, "days": days}
