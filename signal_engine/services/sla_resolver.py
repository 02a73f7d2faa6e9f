"""
SLA Resolver & Breach Classifier.

Pure functions over plain values: no I/O, and ``now`` is always passed in.

    select_policy(step, policies)          → the most specific matching policy
    resolve(step, policies, now)           → due date + sla_status + hours
    classify(due_at, now, warn, grace)     → sla_status for a resolved due date
    approver_identity(step, group_names)   → (key, label) for bottleneck grouping
    aggregate_bottlenecks(classified)      → per-approver blocker scores

Status progression for a fixed due date is monotonic in time:
    ok → at_risk → breached → overdue_undecided

Usage:
    from signal_engine.services.sla_resolver import PendingStep, resolve
    res = resolve(step, policies, now=datetime.now(timezone.utc))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Sequence

from signal_engine.utils.helpers import round_half_up


class SlaStatus(str, Enum):
    OK = "ok"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    OVERDUE_UNDECIDED = "overdue_undecided"
    UNKNOWN = "unknown"


# Fallback when no active policy matches the step.
DEFAULT_SLA_HOURS = 72
DEFAULT_WARN_HOURS = 24
DEFAULT_GRACE_HOURS = 0

# Steps due within this window are at risk even before warn_at.
DEFAULT_RISK_WINDOW_DAYS = 7

# Specificity weights: project dominates, then artifact type, then stage.
_W_PROJECT = 4
_W_ARTIFACT_TYPE = 2
_W_STAGE = 1

BREACHED_STATUSES = frozenset({SlaStatus.BREACHED, SlaStatus.OVERDUE_UNDECIDED})


# ═════════════════════════════════════════════════════════════════════════════
# Value types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PolicyTerms:
    """Scope + time budget of one SLA policy (projection of SlaPolicy)."""
    sla_hours: int = DEFAULT_SLA_HOURS
    warn_hours: int = DEFAULT_WARN_HOURS
    breach_grace_hours: int = DEFAULT_GRACE_HOURS
    project_id: int | None = None
    artifact_type: str | None = None
    stage_key: str | None = None
    is_active: bool = True
    policy_id: int | None = None

    @classmethod
    def from_model(cls, p) -> "PolicyTerms":
        return cls(
            sla_hours=p.sla_hours if p.sla_hours is not None else DEFAULT_SLA_HOURS,
            warn_hours=p.warn_hours if p.warn_hours is not None else DEFAULT_WARN_HOURS,
            breach_grace_hours=(
                p.breach_grace_hours if p.breach_grace_hours is not None else DEFAULT_GRACE_HOURS
            ),
            project_id=p.project_id,
            artifact_type=p.artifact_type or None,
            stage_key=p.stage_key or None,
            is_active=bool(p.is_active),
            policy_id=p.id,
        )


DEFAULT_POLICY = PolicyTerms()


@dataclass(frozen=True)
class PendingStep:
    """A unit of approval work awaiting a decision."""
    id: int
    project_id: int
    artifact_type: str | None = None
    stage_key: str | None = None
    submitted_at: datetime | None = None
    due_at: datetime | None = None
    approver_user_id: str | None = None
    approver_group_id: int | None = None
    artifact_id: int | None = None
    source: str = "artifact_approval_steps"


@dataclass(frozen=True)
class SlaResolution:
    due_at: datetime | None
    sla_status: SlaStatus
    hours_to_due: int | None
    hours_overdue: int | None
    sla_hours: int
    policy_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "sla_status": self.sla_status.value,
            "hours_to_due": self.hours_to_due,
            "hours_overdue": self.hours_overdue,
            "sla_hours": self.sla_hours,
            "policy_id": self.policy_id,
        }


@dataclass
class BottleneckAggregate:
    approver_key: str
    approver_label: str
    approver_user_id: str | None
    approver_group_id: int | None
    open_steps: int = 0
    breached_steps: int = 0
    at_risk_steps: int = 0
    max_hours_overdue: int = 0

    @property
    def blocker_score(self) -> int:
        return self.breached_steps * 5 + self.at_risk_steps * 2 + self.open_steps

    def to_dict(self) -> dict:
        return {
            "approver_key": self.approver_key,
            "approver_label": self.approver_label,
            "approver_user_id": self.approver_user_id,
            "approver_group_id": self.approver_group_id,
            "open_steps": self.open_steps,
            "breached_steps": self.breached_steps,
            "at_risk_steps": self.at_risk_steps,
            "max_hours_overdue": self.max_hours_overdue,
            "blocker_score": self.blocker_score,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Policy selection
# ═════════════════════════════════════════════════════════════════════════════

def _matches(policy: PolicyTerms, step: PendingStep) -> bool:
    if not policy.is_active:
        return False
    if policy.project_id is not None and policy.project_id != step.project_id:
        return False
    if policy.artifact_type and policy.artifact_type != step.artifact_type:
        return False
    if policy.stage_key and policy.stage_key != step.stage_key:
        return False
    return True


def specificity(policy: PolicyTerms) -> int:
    score = 0
    if policy.project_id is not None:
        score += _W_PROJECT
    if policy.artifact_type:
        score += _W_ARTIFACT_TYPE
    if policy.stage_key:
        score += _W_STAGE
    return score


def select_policy(step: PendingStep, policies: Iterable[PolicyTerms]) -> PolicyTerms:
    """Return the most specific active policy matching ``step``.

    Ties keep the first policy in input order. No match → DEFAULT_POLICY.
    """
    best: PolicyTerms | None = None
    best_score = -1
    for p in policies:
        if not _matches(p, step):
            continue
        score = specificity(p)
        if score > best_score:
            best, best_score = p, score
    return best or DEFAULT_POLICY


# ═════════════════════════════════════════════════════════════════════════════
# Classification
# ═════════════════════════════════════════════════════════════════════════════

def _hours_between(a: datetime, b: datetime) -> int:
    return round_half_up((b - a).total_seconds() / 3600)


def classify(
    due_at: datetime,
    now: datetime,
    warn_hours: int = DEFAULT_WARN_HOURS,
    grace_hours: int = DEFAULT_GRACE_HOURS,
    risk_window_days: int = DEFAULT_RISK_WINDOW_DAYS,
) -> SlaStatus:
    breach_at = due_at + timedelta(hours=grace_hours)
    warn_at = due_at - timedelta(hours=warn_hours)
    risk_cutoff = now + timedelta(days=risk_window_days)

    if now > breach_at:
        return SlaStatus.OVERDUE_UNDECIDED
    if now >= due_at:
        return SlaStatus.BREACHED
    if now >= warn_at or due_at <= risk_cutoff:
        return SlaStatus.AT_RISK
    return SlaStatus.OK


def resolve(
    step: PendingStep,
    policies: Sequence[PolicyTerms],
    now: datetime,
    *,
    risk_window_days: int = DEFAULT_RISK_WINDOW_DAYS,
) -> SlaResolution:
    """Resolve the due date of ``step`` and classify it against ``now``."""
    policy = select_policy(step, policies)

    due_at = step.due_at
    if due_at is None and step.submitted_at is not None:
        due_at = step.submitted_at + timedelta(hours=policy.sla_hours)

    if due_at is None:
        return SlaResolution(
            due_at=None,
            sla_status=SlaStatus.UNKNOWN,
            hours_to_due=None,
            hours_overdue=None,
            sla_hours=policy.sla_hours,
            policy_id=policy.policy_id,
        )

    status = classify(
        due_at, now,
        warn_hours=policy.warn_hours,
        grace_hours=policy.breach_grace_hours,
        risk_window_days=risk_window_days,
    )
    return SlaResolution(
        due_at=due_at,
        sla_status=status,
        hours_to_due=_hours_between(now, due_at),
        hours_overdue=_hours_between(due_at, now) if now > due_at else None,
        sla_hours=policy.sla_hours,
        policy_id=policy.policy_id,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Bottlenecks
# ═════════════════════════════════════════════════════════════════════════════

def approver_identity(step: PendingStep, group_names: dict[int, str] | None = None) -> tuple[str, str]:
    """Return (grouping key, display label): user, else group, else unassigned."""
    if step.approver_user_id:
        return f"U:{step.approver_user_id}", f"User:{step.approver_user_id}"
    if step.approver_group_id is not None:
        name = (group_names or {}).get(step.approver_group_id)
        return f"G:{step.approver_group_id}", name or f"Group:{step.approver_group_id}"
    return "X:unassigned", "Unassigned"


def aggregate_bottlenecks(
    classified: Iterable[tuple[PendingStep, SlaResolution]],
    group_names: dict[int, str] | None = None,
) -> list[BottleneckAggregate]:
    """Group classified steps by approver and compute blocker scores.

    Sorted by blocker_score descending, then label, so escalation targets
    come first.
    """
    by_key: dict[str, BottleneckAggregate] = {}
    for step, res in classified:
        key, label = approver_identity(step, group_names)
        agg = by_key.get(key)
        if agg is None:
            agg = BottleneckAggregate(
                approver_key=key,
                approver_label=label,
                approver_user_id=step.approver_user_id or None,
                approver_group_id=None if step.approver_user_id else step.approver_group_id,
            )
            by_key[key] = agg
        agg.open_steps += 1
        if res.sla_status in BREACHED_STATUSES:
            agg.breached_steps += 1
        elif res.sla_status == SlaStatus.AT_RISK:
            agg.at_risk_steps += 1
        agg.max_hours_overdue = max(agg.max_hours_overdue, res.hours_overdue or 0)

    return sorted(by_key.values(), key=lambda a: (-a.blocker_score, a.approver_label))
