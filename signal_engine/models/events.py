"""
Governance Signal Engine
Artifact lifecycle event model.

Models:
    - ArtifactEvent: Immutable fact appended when an artifact is created,
      updated or otherwise mutated. The orchestrator worker is the only
      writer of the processing columns (processed_at, process_error and the
      claim/attempt bookkeeping).
"""

from datetime import datetime, timezone

from signal_engine.models import db


# ── Constants ────────────────────────────────────────────────────────────────

EVENT_ACTIONS = {"created", "updated", "deleted", "submitted", "approved", "rejected"}
EVENT_STATES = {"pending", "processed", "failed", "quarantined"}


class ArtifactEvent(db.Model):
    """
    Append-only artifact lifecycle event.

    Processing state is derived from the nullable columns:
        pending      processed_at IS NULL, process_error IS NULL
        failed       processed_at IS NULL, process_error IS NOT NULL
        quarantined  quarantined_at IS NOT NULL
        processed    processed_at IS NOT NULL
    """

    __tablename__ = "artifact_events"
    __table_args__ = (
        db.Index("ix_artifact_events_queue", "processed_at", "quarantined_at", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=False, index=True)
    artifact_id = db.Column(db.Integer, nullable=True)
    artifact_type = db.Column(db.String(60), nullable=False,
                              comment="project_charter, stakeholder_register, raid, ...")
    action = db.Column(db.String(30), nullable=False, comment="created, updated, ...")
    payload = db.Column(db.JSON, default=dict, comment="Artifact snapshot at mutation time")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    process_error = db.Column(db.Text, nullable=True)

    # Worker bookkeeping
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    claimed_by = db.Column(db.String(100), nullable=True)
    attempt_count = db.Column(db.Integer, nullable=False, default=0)
    quarantined_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def state(self) -> str:
        if self.processed_at is not None:
            return "processed"
        if self.quarantined_at is not None:
            return "quarantined"
        if self.process_error:
            return "failed"
        return "pending"

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "artifact_id": self.artifact_id,
            "artifact_type": self.artifact_type,
            "action": self.action,
            "payload": self.payload,
            "state": self.state,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "process_error": self.process_error,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "claimed_by": self.claimed_by,
            "attempt_count": self.attempt_count,
            "quarantined_at": self.quarantined_at.isoformat() if self.quarantined_at else None,
        }

    def __repr__(self):
        return f"<ArtifactEvent {self.id} {self.artifact_type}.{self.action} [{self.state}]>"
