"""
Decision Rule-Based Analyzer — deterministic intelligence summary.

Used whenever the generative path is unavailable or fails, so it must
produce a complete result for any input (including an empty log).

RAG:
    red    any critical signal
    amber  ≥ 2 warning signals
    green  otherwise
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from signal_engine.services.decision_signals import (
    DecisionRecord,
    DecisionSignal,
    SignalSeverity,
    days_until,
    is_overdue,
    rationale_quality_score,
)

_IMPACT_RANK = {"critical": 3, "high": 2, "medium": 1, "low": 0}

MAX_KEY_DECISIONS = 3
MAX_PENDING_RISKS = 2
MAX_EARLY_WARNINGS = 3


@dataclass
class DecisionIntelligenceResult:
    headline: str
    rag: str
    narrative: str
    key_decisions: list[dict] = field(default_factory=list)
    pending_risks: list[dict] = field(default_factory=list)
    pm_actions: list[dict] = field(default_factory=list)
    early_warnings: list[str] = field(default_factory=list)
    fallback: bool = True

    def to_dict(self) -> dict:
        return {
            "headline": self.headline,
            "rag": self.rag,
            "narrative": self.narrative,
            "key_decisions": self.key_decisions,
            "pending_risks": self.pending_risks,
            "pm_actions": self.pm_actions,
            "early_warnings": self.early_warnings,
            "fallback": self.fallback,
        }

    @classmethod
    def from_dict(cls, data: dict, *, fallback: bool = False) -> "DecisionIntelligenceResult":
        """Build from a generative-model payload (camelCase or snake_case keys)."""
        def pick(snake, camel, default):
            value = data.get(snake, data.get(camel))
            return default if value is None else value

        def pick_list(snake, camel):
            value = pick(snake, camel, [])
            if not isinstance(value, list):
                raise TypeError(f"{camel} must be a list, got {type(value).__name__}")
            return value

        warnings = pick_list("early_warnings", "earlyWarnings")
        if not all(isinstance(w, str) for w in warnings):
            raise TypeError("earlyWarnings must be a list of strings")

        return cls(
            headline=str(pick("headline", "headline", "")),
            rag=str(pick("rag", "rag", "green")).lower(),
            narrative=str(pick("narrative", "narrative", "")),
            key_decisions=list(pick_list("key_decisions", "keyDecisions")),
            pending_risks=list(pick_list("pending_risks", "pendingRisks")),
            pm_actions=list(pick_list("pm_actions", "pmActions")),
            early_warnings=list(warnings),
            fallback=fallback,
        )


def rag_status(signals: Iterable[DecisionSignal]) -> str:
    signals = list(signals)
    if any(s.severity == SignalSeverity.CRITICAL for s in signals):
        return "red"
    warnings = sum(1 for s in signals if s.severity == SignalSeverity.WARNING)
    return "amber" if warnings >= 2 else "green"


def rationale_assessment(score: int) -> str:
    if score >= 4:
        return "Well documented with context and options"
    if score >= 3:
        return "Adequate rationale — could be strengthened"
    if score >= 2:
        return "Rationale present but thin"
    return "Rationale missing or insufficient"


def urgency(d: DecisionRecord, now: datetime) -> str:
    remaining = days_until(d.needed_by_date, now)
    if remaining is None:
        return "monitor"
    if remaining < 0:
        return "immediate"
    if remaining <= 7:
        return "this_week"
    if remaining <= 14:
        return "this_sprint"
    return "monitor"


def _key_decision(d: DecisionRecord, now: datetime) -> dict:
    score = rationale_quality_score(d)
    return {
        "id": d.id,
        "ref": d.ref,
        "title": d.title,
        "rationale_score": score,
        "rationale_assessment": rationale_assessment(score),
        "impact_assessment": (
            f"{d.impact.capitalize()} impact — "
            f"{d.impact_description or 'no impact detail provided'}"
        ),
        "urgency": urgency(d, now),
    }


def _headline(critical: int, warnings: int) -> str:
    if critical:
        return (
            f"{critical} critical decision signal{'s' if critical > 1 else ''} "
            "require immediate action"
        )
    if warnings:
        return f"{warnings} decision warning{'s' if warnings > 1 else ''} — log needs attention"
    return "Decision log is in good order"


def _narrative(open_: list[DecisionRecord], overdue: int, unowned: int) -> str:
    n = len(open_)
    categories = len({d.category for d in open_})
    parts = [f"{n} open decision{'' if n == 1 else 's'} across {categories} categories."]
    if overdue:
        parts.append(f"{overdue} decision{' is' if overdue == 1 else 's are'} past needed-by date.")
    if unowned:
        parts.append(f"{unowned} decision{' is' if unowned == 1 else 's are'} unowned.")
    else:
        parts.append("All decisions have owners.")
    return " ".join(parts)


def analyze(
    decisions: Iterable[DecisionRecord],
    signals: Iterable[DecisionSignal],
    now: datetime,
) -> DecisionIntelligenceResult:
    """Summarise a decision log from its signals without any external service."""
    signals = list(signals)
    open_ = [d for d in decisions if d.is_open]

    critical = sum(1 for s in signals if s.severity == SignalSeverity.CRITICAL)
    warnings = sum(1 for s in signals if s.severity == SignalSeverity.WARNING)

    # sorted() is stable: equal impact keeps log order
    key = sorted(
        (d for d in open_ if d.is_high_impact),
        key=lambda d: -_IMPACT_RANK.get(d.impact, 0),
    )[:MAX_KEY_DECISIONS]

    overdue = [d for d in open_ if is_overdue(d, now)]
    unowned = [d for d in open_ if not d.owner]

    pending_risks = [
        {
            "ref": d.ref,
            "risk": f"Pending {d.impact} impact decision on {d.title}",
            "recommendation": (
                f"Chase {d.approver} for approval" if d.approver
                else "Assign approver and set deadline"
            ),
        }
        for d in open_
        if d.status == "pending" and d.is_high_impact
    ][:MAX_PENDING_RISKS]

    pm_actions: list[dict] = []
    if overdue:
        n = len(overdue)
        pm_actions.append({
            "action": f"Resolve {n} overdue decision{'s' if n > 1 else ''}",
            "priority": "high",
            "timeframe": "Today",
        })
    if unowned:
        pm_actions.append({
            "action": "Assign owners to unowned decisions",
            "priority": "high",
            "timeframe": "This week",
        })
    pm_actions.append({
        "action": "Strengthen rationale on weak decision records",
        "priority": "medium",
        "timeframe": "This sprint",
    })

    return DecisionIntelligenceResult(
        headline=_headline(critical, warnings),
        rag=rag_status(signals),
        narrative=_narrative(open_, len(overdue), len(unowned)),
        key_decisions=[_key_decision(d, now) for d in key],
        pending_risks=pending_risks,
        pm_actions=pm_actions,
        early_warnings=[s.detail for s in signals[:MAX_EARLY_WARNINGS]],
        fallback=True,
    )
