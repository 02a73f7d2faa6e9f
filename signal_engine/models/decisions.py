"""
Governance Signal Engine
Decision log models.

Models:
    - Project: Minimal project row (id, name, status) used to scope scheduled runs
    - Decision: Decision log entry (owned by the decision log feature, read-only here)
    - DecisionIntelligenceSnapshot: Latest intelligence summary per project
"""

from datetime import datetime, timezone

from signal_engine.models import db


# ── Constants ────────────────────────────────────────────────────────────────

DECISION_STATUSES = {
    "open", "pending", "approved", "implemented", "deferred", "rejected", "superseded",
}
TERMINAL_DECISION_STATUSES = {"implemented", "rejected", "superseded"}
DECISION_IMPACTS = {"low", "medium", "high", "critical"}
DECISION_CATEGORIES = {
    "Technical", "Commercial", "Resource", "Schedule", "Scope",
    "Governance", "Financial", "Regulatory", "Stakeholder", "Other",
}
PROJECT_STATUSES = {"active", "on_hold", "closed"}


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="active", index=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "status": self.status}


class Decision(db.Model):
    """Decision log entry."""

    __tablename__ = "decisions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    ref = db.Column(db.String(30), nullable=False, comment="e.g. D-001")
    title = db.Column(db.String(300), nullable=False)
    category = db.Column(db.String(40), nullable=False, default="Other")
    status = db.Column(db.String(20), nullable=False, default="open")
    impact = db.Column(db.String(20), nullable=False, default="medium")
    impact_description = db.Column(db.Text, default="")

    owner = db.Column(db.String(150), nullable=True)
    approver = db.Column(db.String(150), nullable=True)
    rationale = db.Column(db.Text, default="")
    context = db.Column(db.Text, default="")
    options_considered = db.Column(db.JSON, default=list)

    date_raised = db.Column(db.Date, nullable=False)
    needed_by_date = db.Column(db.Date, nullable=True)
    implementation_date = db.Column(db.Date, nullable=True)
    review_date = db.Column(db.Date, nullable=True)
    reversible = db.Column(db.Boolean, nullable=False, default=False)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False,
                             default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "ref": self.ref,
            "title": self.title,
            "category": self.category,
            "status": self.status,
            "impact": self.impact,
            "impact_description": self.impact_description,
            "owner": self.owner,
            "approver": self.approver,
            "rationale": self.rationale,
            "context": self.context,
            "options_considered": self.options_considered or [],
            "date_raised": self.date_raised.isoformat() if self.date_raised else None,
            "needed_by_date": self.needed_by_date.isoformat() if self.needed_by_date else None,
            "implementation_date": self.implementation_date.isoformat() if self.implementation_date else None,
            "review_date": self.review_date.isoformat() if self.review_date else None,
            "reversible": self.reversible,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    def __repr__(self):
        return f"<Decision {self.ref} [{self.status}/{self.impact}]>"


class DecisionIntelligenceSnapshot(db.Model):
    """Latest generated decision intelligence per project (upserted)."""

    __tablename__ = "decision_intelligence"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
                           nullable=False, unique=True)
    headline = db.Column(db.String(500), nullable=False, default="")
    rag = db.Column(db.String(10), nullable=False, default="green")
    narrative = db.Column(db.Text, default="")
    key_decisions = db.Column(db.JSON, default=list)
    pending_risks = db.Column(db.JSON, default=list)
    pm_actions = db.Column(db.JSON, default=list)
    early_warnings = db.Column(db.JSON, default=list)
    signals = db.Column(db.JSON, default=list)
    fallback = db.Column(db.Boolean, nullable=False, default=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False,
                             default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "headline": self.headline,
            "rag": self.rag,
            "narrative": self.narrative,
            "key_decisions": self.key_decisions or [],
            "pending_risks": self.pending_risks or [],
            "pm_actions": self.pm_actions or [],
            "early_warnings": self.early_warnings or [],
            "signals": self.signals or [],
            "fallback": self.fallback,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }
