"""
Decision Signal Detector — decision log → typed governance signals.

Pure: the caller supplies ``now``; nothing is read from the database here.
Signals are derived per request and never persisted on their own.

Detectors (evaluated over open decisions, i.e. status not terminal):

    DECISION_OVERDUE        needed_by_date passed                  critical
    DECISION_STALE          not updated in > 21 days               warning
    HIGH_IMPACT_UNOWNED     high/critical impact, no owner         critical
    RATIONALE_WEAK          rationale quality score ≤ 2            warning
    IMPLEMENTATION_OVERDUE  approved, implementation_date passed   critical
    CLUSTER_CONCENTRATION   ≥ 3 open decisions in one category     warning
    REVERSAL_RISK           reversible + approved, no review date  warning
    PENDING_ESCALATION      open/pending high-impact, > 14 days    warning

Usage:
    from signal_engine.services.decision_signals import DecisionRecord, detect
    signals = detect([DecisionRecord.from_model(d) for d in rows], now)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Mapping

from signal_engine.utils.helpers import parse_datetime, round_half_up


class SignalSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class SignalCode(str, Enum):
    DECISION_OVERDUE = "DECISION_OVERDUE"
    DECISION_STALE = "DECISION_STALE"
    HIGH_IMPACT_UNOWNED = "HIGH_IMPACT_UNOWNED"
    RATIONALE_WEAK = "RATIONALE_WEAK"
    IMPLEMENTATION_OVERDUE = "IMPLEMENTATION_OVERDUE"
    CLUSTER_CONCENTRATION = "CLUSTER_CONCENTRATION"
    REVERSAL_RISK = "REVERSAL_RISK"
    PENDING_ESCALATION = "PENDING_ESCALATION"


STALE_DAYS = 21
PENDING_ESCALATION_DAYS = 14
CLUSTER_THRESHOLD = 3
WEAK_RATIONALE_SCORE = 2

TERMINAL_STATUSES = frozenset({"implemented", "rejected", "superseded"})
HIGH_IMPACTS = frozenset({"high", "critical"})

_SECONDS_PER_DAY = 86400


# ═════════════════════════════════════════════════════════════════════════════
# Types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DecisionRecord:
    """Read-only projection of a decision log entry."""
    id: str
    ref: str = ""
    title: str = ""
    category: str = "Other"
    status: str = "open"
    impact: str = "medium"
    impact_description: str | None = None
    owner: str | None = None
    approver: str | None = None
    rationale: str | None = None
    context: str | None = None
    options_considered: tuple = ()
    date_raised: datetime | None = None
    needed_by_date: datetime | None = None
    implementation_date: datetime | None = None
    review_date: datetime | None = None
    reversible: bool = False
    last_updated: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def is_high_impact(self) -> bool:
        return self.impact in HIGH_IMPACTS

    @classmethod
    def from_model(cls, d) -> "DecisionRecord":
        return cls(
            id=str(d.id),
            ref=d.ref or "",
            title=d.title or "",
            category=d.category or "Other",
            status=(d.status or "open").lower(),
            impact=(d.impact or "medium").lower(),
            impact_description=d.impact_description,
            owner=d.owner,
            approver=d.approver,
            rationale=d.rationale,
            context=d.context,
            options_considered=tuple(d.options_considered or ()),
            date_raised=parse_datetime(d.date_raised),
            needed_by_date=parse_datetime(d.needed_by_date),
            implementation_date=parse_datetime(d.implementation_date),
            review_date=parse_datetime(d.review_date),
            reversible=bool(d.reversible),
            last_updated=parse_datetime(d.last_updated),
        )

    @classmethod
    def from_dict(cls, data: Mapping) -> "DecisionRecord":
        """Build from a camelCase or snake_case JSON payload."""
        def pick(*keys, default=None):
            for k in keys:
                if data.get(k) is not None:
                    return data[k]
            return default

        options = pick("optionsConsidered", "options_considered", default=())
        return cls(
            id=str(pick("id", default="")),
            ref=str(pick("ref", default="")),
            title=str(pick("title", default="")),
            category=str(pick("category", default="Other")),
            status=str(pick("status", default="open")).lower(),
            impact=str(pick("impact", default="medium")).lower(),
            impact_description=pick("impactDescription", "impact_description"),
            owner=pick("owner"),
            approver=pick("approver"),
            rationale=pick("rationale"),
            context=pick("context"),
            options_considered=tuple(options) if isinstance(options, (list, tuple)) else (),
            date_raised=parse_datetime(pick("dateRaised", "date_raised")),
            needed_by_date=parse_datetime(pick("neededByDate", "needed_by_date")),
            implementation_date=parse_datetime(pick("implementationDate", "implementation_date")),
            review_date=parse_datetime(pick("reviewDate", "review_date")),
            reversible=bool(pick("reversible", default=False)),
            last_updated=parse_datetime(pick("lastUpdated", "last_updated")),
        )


@dataclass
class DecisionSignal:
    code: SignalCode
    severity: SignalSeverity
    label: str
    detail: str
    affected_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "label": self.label,
            "detail": self.detail,
            "affected_ids": list(self.affected_ids),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Date helpers
# ═════════════════════════════════════════════════════════════════════════════

def days_until(when: datetime | date | None, now: datetime) -> int | None:
    """Whole days from ``now`` to ``when`` (negative when in the past)."""
    target = parse_datetime(when)
    if target is None:
        return None
    return round_half_up((target - now).total_seconds() / _SECONDS_PER_DAY)


def days_since(when: datetime | date | None, now: datetime) -> int | None:
    target = parse_datetime(when)
    if target is None:
        return None
    return round_half_up((now - target).total_seconds() / _SECONDS_PER_DAY)


def _plural(n: int, singular: str = "", plural: str = "s") -> str:
    return singular if n == 1 else plural


# ═════════════════════════════════════════════════════════════════════════════
# Rationale quality
# ═════════════════════════════════════════════════════════════════════════════

def rationale_quality_score(d: DecisionRecord) -> int:
    """Deterministic proxy for how well a decision is documented (0–5)."""
    score = 0
    rationale = (d.rationale or "").strip()
    if len(rationale) > 30:
        score += 2
    elif rationale:
        score += 1
    if len((d.context or "").strip()) > 20:
        score += 1
    if len(d.options_considered or ()) >= 2:
        score += 1
    if len((d.impact_description or "").strip()) > 10:
        score += 1
    return min(5, score)


def is_overdue(d: DecisionRecord, now: datetime) -> bool:
    remaining = days_until(d.needed_by_date, now)
    return remaining is not None and remaining < 0


# ═════════════════════════════════════════════════════════════════════════════
# Detection
# ═════════════════════════════════════════════════════════════════════════════

def detect(decisions: Iterable[DecisionRecord], now: datetime) -> list[DecisionSignal]:
    """Evaluate every detector over the open decisions, in a fixed order."""
    open_ = [d for d in decisions if d.is_open]
    signals: list[DecisionSignal] = []

    def emit(code, severity, label, detail, affected):
        signals.append(DecisionSignal(
            code=code, severity=severity, label=label, detail=detail,
            affected_ids=[d.id for d in affected],
        ))

    overdue = [d for d in open_ if is_overdue(d, now)]
    if overdue:
        n = len(overdue)
        emit(SignalCode.DECISION_OVERDUE, SignalSeverity.CRITICAL, "Decisions Overdue",
             f"{n} decision{_plural(n)} past needed-by date", overdue)

    stale = [d for d in open_ if (days_since(d.last_updated, now) or 0) > STALE_DAYS]
    if stale:
        n = len(stale)
        emit(SignalCode.DECISION_STALE, SignalSeverity.WARNING, "Stale Decisions",
             f"{n} decision{_plural(n)} not updated in {STALE_DAYS}+ days", stale)

    unowned = [d for d in open_ if d.is_high_impact and not d.owner]
    if unowned:
        n = len(unowned)
        emit(SignalCode.HIGH_IMPACT_UNOWNED, SignalSeverity.CRITICAL, "High Impact Unowned",
             f"{n} high/critical impact decision{_plural(n)} {_plural(n, 'has', 'have')} no owner",
             unowned)

    weak = [d for d in open_ if rationale_quality_score(d) <= WEAK_RATIONALE_SCORE]
    if weak:
        n = len(weak)
        emit(SignalCode.RATIONALE_WEAK, SignalSeverity.WARNING, "Weak Rationale",
             f"{n} decision{_plural(n)} {_plural(n, 'has', 'have')} insufficient rationale or context",
             weak)

    impl_overdue = [
        d for d in open_
        if d.status == "approved" and (days_until(d.implementation_date, now) or 0) < 0
    ]
    if impl_overdue:
        n = len(impl_overdue)
        emit(SignalCode.IMPLEMENTATION_OVERDUE, SignalSeverity.CRITICAL, "Implementation Overdue",
             f"{n} approved decision{_plural(n)} past implementation date", impl_overdue)

    by_category: dict[str, list[DecisionRecord]] = {}
    for d in open_:
        by_category.setdefault(d.category, []).append(d)
    for category, members in by_category.items():
        if len(members) >= CLUSTER_THRESHOLD:
            emit(SignalCode.CLUSTER_CONCENTRATION, SignalSeverity.WARNING,
                 f"{category} Decision Cluster",
                 f'{len(members)} open decisions concentrated in "{category}" — systemic issue likely',
                 members)

    reversal = [d for d in open_ if d.reversible and d.status == "approved" and d.review_date is None]
    if reversal:
        n = len(reversal)
        emit(SignalCode.REVERSAL_RISK, SignalSeverity.WARNING, "Reversal Risk",
             f"{n} reversible decision{_plural(n)} approved with no review date scheduled",
             reversal)

    pending = [
        d for d in open_
        if d.status in ("open", "pending")
        and d.is_high_impact
        and (days_since(d.date_raised, now) or 0) > PENDING_ESCALATION_DAYS
    ]
    if pending:
        n = len(pending)
        emit(SignalCode.PENDING_ESCALATION, SignalSeverity.WARNING, "Pending Escalation",
             f"{n} high-impact decision{_plural(n)} open for {PENDING_ESCALATION_DAYS}+ days "
             "without resolution", pending)

    return signals
