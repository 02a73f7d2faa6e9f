"""
Governance Signal Engine
Approval SLA models.

Models:
    - SlaPolicy: SLA configuration row scoped by project / artifact type / stage
    - ApprovalGroup: Named approver group (labels group-owned steps)
    - ApprovalStep: Pending approval step on an artifact (read-only to the engine)
    - ChangeApproval: Ad-hoc approval row on a change request (read-only to the engine)
    - SlaCacheGeneration: One completed cache rebuild; exactly one is current
    - SlaCacheRow: Materialised SLA classification per pending step
    - BottleneckRow: Per-approver aggregate of open / at-risk / breached work
"""

from datetime import datetime, timezone

from signal_engine.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SLA_STATUSES = {"ok", "at_risk", "breached", "overdue_undecided", "unknown"}
STEP_STATUSES = {"pending", "approved", "rejected", "cancelled"}
STEP_SOURCES = {"artifact_approval_steps", "change_approvals"}


class SlaPolicy(db.Model):
    """
    SLA policy. Null scope columns match any value.

    Selection among several matching policies is by specificity
    (project > artifact type > stage), see services.sla_resolver.
    """

    __tablename__ = "approval_sla_config"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=True, index=True)
    artifact_type = db.Column(db.String(60), nullable=True)
    stage_key = db.Column(db.String(60), nullable=True)

    sla_hours = db.Column(db.Integer, nullable=False, default=72)
    warn_hours = db.Column(db.Integer, nullable=False, default=24)
    breach_grace_hours = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "artifact_type": self.artifact_type,
            "stage_key": self.stage_key,
            "sla_hours": self.sla_hours,
            "warn_hours": self.warn_hours,
            "breach_grace_hours": self.breach_grace_hours,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<SlaPolicy {self.id} {self.project_id}/{self.artifact_type}/{self.stage_key}>"


class ApprovalGroup(db.Model):
    __tablename__ = "approval_groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)


class ApprovalStep(db.Model):
    """Pending approval step on a governed artifact."""

    __tablename__ = "artifact_approval_steps"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=False, index=True)
    artifact_id = db.Column(db.Integer, nullable=True)
    artifact_type = db.Column(db.String(60), nullable=False)
    stage_key = db.Column(db.String(60), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True,
                             comment="When the step became pending")
    due_at = db.Column(db.DateTime(timezone=True), nullable=True,
                       comment="Explicit due date; overrides policy derivation")

    approver_user_id = db.Column(db.String(150), nullable=True)
    approver_group_id = db.Column(
        db.Integer, db.ForeignKey("approval_groups.id", ondelete="SET NULL"), nullable=True,
    )


class ChangeApproval(db.Model):
    """Ad-hoc approval requested on a change request."""

    __tablename__ = "change_approvals"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, nullable=False, index=True)
    change_request_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)

    approver_user_id = db.Column(db.String(150), nullable=True)
    approver_group_id = db.Column(
        db.Integer, db.ForeignKey("approval_groups.id", ondelete="SET NULL"), nullable=True,
    )


class SlaCacheGeneration(db.Model):
    """
    A completed SLA cache rebuild.

    Rows in exec_approval_cache / exec_approval_bottlenecks belong to exactly
    one generation. Readers only see the generation flagged is_current; the
    flag is flipped in the same transaction that inserts the new rows.
    """

    __tablename__ = "sla_cache_generations"

    id = db.Column(db.Integer, primary_key=True)
    computed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_current = db.Column(db.Boolean, nullable=False, default=False, index=True)
    cache_rows = db.Column(db.Integer, nullable=False, default=0)
    bottleneck_rows = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "is_current": self.is_current,
            "cache_rows": self.cache_rows,
            "bottleneck_rows": self.bottleneck_rows,
        }


class SlaCacheRow(db.Model):
    __tablename__ = "exec_approval_cache"

    id = db.Column(db.Integer, primary_key=True)
    generation_id = db.Column(
        db.Integer, db.ForeignKey("sla_cache_generations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_id = db.Column(db.Integer, nullable=False)
    source = db.Column(db.String(40), nullable=False, default="artifact_approval_steps")

    project_id = db.Column(db.Integer, nullable=False, index=True)
    artifact_id = db.Column(db.Integer, nullable=True)
    artifact_type = db.Column(db.String(60), nullable=True)
    stage_key = db.Column(db.String(60), nullable=True)

    approver_user_id = db.Column(db.String(150), nullable=True)
    approver_group_id = db.Column(db.Integer, nullable=True)
    approver_label = db.Column(db.String(200), nullable=False)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sla_status = db.Column(db.String(30), nullable=False, default="unknown", index=True)
    hours_to_due = db.Column(db.Integer, nullable=True)
    hours_overdue = db.Column(db.Integer, nullable=True)
    sla_hours = db.Column(db.Integer, nullable=True)

    computed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "generation_id": self.generation_id,
            "step_id": self.step_id,
            "source": self.source,
            "project_id": self.project_id,
            "artifact_id": self.artifact_id,
            "artifact_type": self.artifact_type,
            "stage_key": self.stage_key,
            "approver_user_id": self.approver_user_id,
            "approver_group_id": self.approver_group_id,
            "approver_label": self.approver_label,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "sla_status": self.sla_status,
            "hours_to_due": self.hours_to_due,
            "hours_overdue": self.hours_overdue,
            "sla_hours": self.sla_hours,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


class BottleneckRow(db.Model):
    __tablename__ = "exec_approval_bottlenecks"

    id = db.Column(db.Integer, primary_key=True)
    generation_id = db.Column(
        db.Integer, db.ForeignKey("sla_cache_generations.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    approver_key = db.Column(db.String(200), nullable=False)
    approver_user_id = db.Column(db.String(150), nullable=True)
    approver_group_id = db.Column(db.Integer, nullable=True)
    approver_label = db.Column(db.String(200), nullable=False)

    open_steps = db.Column(db.Integer, nullable=False, default=0)
    breached_steps = db.Column(db.Integer, nullable=False, default=0)
    at_risk_steps = db.Column(db.Integer, nullable=False, default=0)
    max_hours_overdue = db.Column(db.Integer, nullable=False, default=0)
    blocker_score = db.Column(db.Integer, nullable=False, default=0, index=True)

    computed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "generation_id": self.generation_id,
            "approver_key": self.approver_key,
            "approver_user_id": self.approver_user_id,
            "approver_group_id": self.approver_group_id,
            "approver_label": self.approver_label,
            "open_steps": self.open_steps,
            "breached_steps": self.breached_steps,
            "at_risk_steps": self.at_risk_steps,
            "max_hours_overdue": self.max_hours_overdue,
            "blocker_score": self.blocker_score,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }
