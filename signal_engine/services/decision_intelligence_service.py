"""
Governance Signal Engine
Decision Intelligence Service.

Wires the pure detector and analyzer to the decision log tables:

    analyze_project(project_id)           on-demand, no writes
    generate_for_active_projects()        scheduled, upserts one snapshot per project
    get_snapshot(project_id)              latest stored snapshot

The generative path is attempted only when requested and configured; any
failure there degrades to the rule-based analyzer (``fallback=True``).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app

from signal_engine.ai.gateway import LLMGateway, LLMUnavailableError
from signal_engine.core.exceptions import NotFoundError, ValidationError
from signal_engine.models import db
from signal_engine.models.decisions import Decision, DecisionIntelligenceSnapshot, Project
from signal_engine.services.decision_analyzer import DecisionIntelligenceResult, analyze
from signal_engine.services.decision_signals import (
    DecisionRecord,
    DecisionSignal,
    days_until,
    detect,
    rationale_quality_score,
)

logger = logging.getLogger(__name__)

_IMPACT_RANK = {"critical": 3, "high": 2, "medium": 1, "low": 0}
PROMPT_DECISION_LIMIT = 10

DECISION_INTEL_SCHEMA = {
    "type": "object",
    "properties": {
        "headline": {"type": "string"},
        "rag": {"type": "string", "enum": ["green", "amber", "red"]},
        "narrative": {"type": "string"},
        "keyDecisions": {"type": "array"},
        "pendingRisks": {"type": "array"},
        "pmActions": {"type": "array"},
        "earlyWarnings": {"type": "array", "items": {"type": "string"}},
    },
    "required": [
        "headline", "rag", "narrative", "keyDecisions",
        "pendingRisks", "pmActions", "earlyWarnings",
    ],
}


# ═══════════════════════════════════════════════════════════════════════════
#  Loading
# ═══════════════════════════════════════════════════════════════════════════

def load_decisions(project_id: int) -> list[DecisionRecord]:
    rows = Decision.query.filter_by(project_id=project_id).order_by(Decision.id).all()
    return [DecisionRecord.from_model(d) for d in rows]


def parse_decisions(payload) -> list[DecisionRecord]:
    """Decision records from a request body list (camelCase or snake_case)."""
    if not isinstance(payload, list):
        raise ValidationError("decisions must be a list", {"decisions": type(payload).__name__})
    records = []
    for i, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValidationError(f"decisions[{i}] must be an object", {"index": i})
        if item.get("id") in (None, ""):
            raise ValidationError(f"decisions[{i}].id is required", {"index": i})
        records.append(DecisionRecord.from_dict(item))
    return records


# ═══════════════════════════════════════════════════════════════════════════
#  Generative path
# ═══════════════════════════════════════════════════════════════════════════

def build_prompt(project_name: str, decisions: list[DecisionRecord],
                 signals: list[DecisionSignal], now: datetime) -> str:
    open_ = [d for d in decisions if d.is_open]
    implemented = sum(1 for d in decisions if d.status == "implemented")

    signal_lines = [
        f"[{s.severity.value.upper()}] {s.label}: {s.detail}" for s in signals
    ] or ["No signals"]

    decision_lines = []
    top = sorted(open_, key=lambda d: -_IMPACT_RANK.get(d.impact, 0))[:PROMPT_DECISION_LIMIT]
    for d in top:
        line = (
            f"{d.ref} {d.title} | {d.status} | {d.impact} impact | "
            f"Owner: {d.owner or 'UNOWNED'} | Rationale: {rationale_quality_score(d)}/5"
        )
        remaining = days_until(d.needed_by_date, now)
        if remaining is not None and remaining < 0:
            line += f" | OVERDUE {abs(remaining)}d"
        decision_lines.append(line)

    return "\n".join([
        "You are a senior project governance advisor reviewing a decision log for daily briefing.",
        f"Project: {project_name}",
        f"Total: {len(decisions)} | Open: {len(open_)} | Implemented: {implemented}",
        "",
        "SIGNALS",
        *signal_lines,
        "",
        "OPEN DECISIONS (top 10 by impact)",
        *decision_lines,
        "",
        "Concise governance brief. Narrative: 2-3 sentences max.",
    ])


def _ai_analysis(gateway: LLMGateway, project_name: str, decisions, signals, now):
    prompt = build_prompt(project_name, decisions, signals, now)
    data = gateway.chat_json(prompt, DECISION_INTEL_SCHEMA)
    try:
        result = DecisionIntelligenceResult.from_dict(data, fallback=False)
    except (TypeError, ValueError) as exc:
        raise LLMUnavailableError(f"LLM returned malformed brief: {exc}") from exc
    if result.rag not in ("green", "amber", "red"):
        raise LLMUnavailableError(f"LLM returned invalid rag '{result.rag}'")
    return result


def run_analysis(
    decisions: list[DecisionRecord],
    *,
    now: datetime | None = None,
    use_ai: bool = False,
    project_name: str = "",
    gateway: LLMGateway | None = None,
) -> tuple[DecisionIntelligenceResult, list[DecisionSignal]]:
    """Signals + analysis, degrading to the rule-based analyzer on any AI failure."""
    now = now or datetime.now(timezone.utc)
    signals = detect(decisions, now)

    if use_ai:
        gateway = gateway or LLMGateway.from_config(current_app.config)
        if gateway.available:
            try:
                return _ai_analysis(gateway, project_name, decisions, signals, now), signals
            except (LLMUnavailableError, RuntimeError) as exc:
                logger.warning("Generative decision analysis failed, using rules: %s", exc)
        else:
            logger.debug("No LLM provider configured, using rule-based analysis")

    return analyze(decisions, signals, now), signals


# ═══════════════════════════════════════════════════════════════════════════
#  Project operations
# ═══════════════════════════════════════════════════════════════════════════

def _get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def analyze_project(
    project_id: int,
    *,
    decisions: list[DecisionRecord] | None = None,
    use_ai: bool = False,
    now: datetime | None = None,
    gateway: LLMGateway | None = None,
) -> dict:
    """On-demand analysis for one project. Performs no writes."""
    project = _get_project(project_id)
    if decisions is None:
        decisions = load_decisions(project_id)
    result, signals = run_analysis(
        decisions, now=now, use_ai=use_ai, project_name=project.name, gateway=gateway,
    )
    return {
        "project_id": project_id,
        **result.to_dict(),
        "signals": [s.to_dict() for s in signals],
    }


def upsert_snapshot(project_id: int, result: DecisionIntelligenceResult,
                    signals: list[DecisionSignal], now: datetime) -> DecisionIntelligenceSnapshot:
    snap = DecisionIntelligenceSnapshot.query.filter_by(project_id=project_id).first()
    if snap is None:
        snap = DecisionIntelligenceSnapshot(project_id=project_id)
        db.session.add(snap)
    snap.headline = result.headline
    snap.rag = result.rag
    snap.narrative = result.narrative
    snap.key_decisions = result.key_decisions
    snap.pending_risks = result.pending_risks
    snap.pm_actions = result.pm_actions
    snap.early_warnings = result.early_warnings
    snap.signals = [s.to_dict() for s in signals]
    snap.fallback = result.fallback
    snap.generated_at = now
    return snap


def generate_for_active_projects(
    *,
    now: datetime | None = None,
    use_ai: bool = True,
    gateway: LLMGateway | None = None,
) -> dict:
    """Recompute and store the snapshot of every active project.

    A failing project is rolled back and counted; the rest continue.

    Returns:
        {processed: N, failed: M, results: {project_id: {rag, signals, fallback}}}
    """
    now = now or datetime.now(timezone.utc)
    if use_ai and gateway is None:
        gateway = LLMGateway.from_config(current_app.config)

    projects = Project.query.filter_by(status="active").order_by(Project.id).all()
    results: dict[str, dict] = {}
    processed = failed = 0

    for project in projects:
        project_id, project_name = project.id, project.name
        try:
            decisions = load_decisions(project_id)
            result, signals = run_analysis(
                decisions, now=now, use_ai=use_ai, project_name=project_name, gateway=gateway,
            )
            upsert_snapshot(project_id, result, signals, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            failed += 1
            logger.exception("Decision intelligence failed for project %s", project_id,
                             extra={"project_id": project_id})
            continue
        processed += 1
        results[str(project_id)] = {
            "rag": result.rag,
            "signals": len(signals),
            "fallback": result.fallback,
        }

    logger.info("Decision intelligence generated: processed=%d failed=%d", processed, failed)
    return {"processed": processed, "failed": failed, "results": results}


def get_snapshot(project_id: int) -> dict:
    _get_project(project_id)
    snap = DecisionIntelligenceSnapshot.query.filter_by(project_id=project_id).first()
    if snap is None:
        raise NotFoundError(resource="DecisionIntelligenceSnapshot", resource_id=project_id)
    return snap.to_dict()
