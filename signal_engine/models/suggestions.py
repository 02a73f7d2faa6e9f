"""
Governance Signal Engine
AI suggestion model.

Models:
    - AISuggestion: Advisory, non-binding proposal to seed or modify another
      artifact. Created with status "proposed" by the orchestrator worker or
      the suggestion SLA check; accept/reject is handled elsewhere.
"""

from datetime import datetime, timezone

from signal_engine.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SUGGESTION_STATUSES = {"proposed", "accepted", "rejected", "applied"}
SUGGESTION_TYPES = {"narrative", "patch", "sla_escalation"}
TARGET_ARTIFACT_TYPES = {
    "stakeholder_register", "schedule", "raid", "dashboard",
    "project_charter", "change_request", "decision_log",
}


class AISuggestion(db.Model):
    """
    Derived suggestion record.

    Many suggestions may reference one source event (fan-out); a suggestion
    references at most one source event.
    """

    __tablename__ = "ai_suggestions"
    __table_args__ = (
        db.UniqueConstraint("project_id", "trigger_key", name="uq_ai_suggestions_project_trigger"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=False, index=True)
    source_event_id = db.Column(
        db.Integer,
        db.ForeignKey("artifact_events.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    target_artifact_id = db.Column(db.Integer, nullable=True)
    target_artifact_type = db.Column(db.String(60), nullable=False)
    suggestion_type = db.Column(db.String(30), nullable=False, default="narrative",
                                comment="narrative, patch, sla_escalation")
    patch = db.Column(db.JSON, nullable=True, comment="Opaque structured payload")
    rationale = db.Column(db.Text, default="")
    confidence = db.Column(db.Float, default=0.0, comment="0.0 – 1.0 confidence score")

    status = db.Column(db.String(20), nullable=False, default="proposed", index=True)
    trigger_key = db.Column(db.String(200), nullable=True,
                            comment="Idempotency key for rule-generated escalations")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "source_event_id": self.source_event_id,
            "target_artifact_id": self.target_artifact_id,
            "target_artifact_type": self.target_artifact_type,
            "suggestion_type": self.suggestion_type,
            "patch": self.patch,
            "rationale": self.rationale,
            "confidence": round(self.confidence or 0.0, 3),
            "status": self.status,
            "trigger_key": self.trigger_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AISuggestion {self.id} {self.suggestion_type}->{self.target_artifact_type} [{self.status}]>"
