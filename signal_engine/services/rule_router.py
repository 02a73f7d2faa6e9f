"""
Rule Router — artifact event → suggestion drafts.

Pure and deterministic: no I/O, no clock, no state. The same
(artifact_type, action, payload) always yields the same drafts.

Rules are a closed table keyed by (artifact_type, action):

    project_charter      created|updated  → 3 narrative seeding suggestions
    stakeholder_register created|updated  → RAID risk patch per imbalanced
                                            stakeholder + dashboard narrative
    anything else                         → no suggestions

A new rule means a new EventKind member, a classify() entry and a match arm.

Usage:
    from signal_engine.services.rule_router import route
    drafts = route(event)     # event: ArtifactEvent or EventView
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from signal_engine.core.exceptions import EventContractError


# ═════════════════════════════════════════════════════════════════════════════
# Types
# ═════════════════════════════════════════════════════════════════════════════

class EventKind(str, Enum):
    CHARTER_CHANGED = "charter_changed"
    STAKEHOLDERS_CHANGED = "stakeholders_changed"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class EventView:
    """The fields of an artifact event the router reads."""
    id: int
    project_id: int
    artifact_type: str
    action: str
    artifact_id: int | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SuggestionDraft:
    """Suggestion to be persisted with status "proposed"."""
    project_id: int
    source_event_id: int
    target_artifact_type: str
    suggestion_type: str
    rationale: str
    confidence: float
    patch: dict | None = None
    target_artifact_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "source_event_id": self.source_event_id,
            "target_artifact_id": self.target_artifact_id,
            "target_artifact_type": self.target_artifact_type,
            "suggestion_type": self.suggestion_type,
            "patch": self.patch,
            "rationale": self.rationale,
            "confidence": self.confidence,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Rule constants
# ═════════════════════════════════════════════════════════════════════════════

_CHANGE_ACTIONS = frozenset({"created", "updated"})

CHARTER_SEEDS: tuple[tuple[str, float, str], ...] = (
    (
        "stakeholder_register",
        0.75,
        "Charter changed. Suggest seeding stakeholder register with sponsor, PM, "
        "customer reps, delivery leads, and key approvers.",
    ),
    (
        "schedule",
        0.72,
        "Charter changed. Suggest drafting initial milestones (kickoff, design complete, "
        "build complete, UAT, go-live) aligned to start/end dates.",
    ),
    (
        "raid",
        0.70,
        "Charter changed. Suggest seeding RAID with typical startup risks (resource "
        "availability, approvals, scope creep, environment access, vendor lead times).",
    ),
)

STAKEHOLDER_RISK_CONFIDENCE = 0.82
STAKEHOLDER_NARRATIVE_CONFIDENCE = 0.75


# ═════════════════════════════════════════════════════════════════════════════
# Dispatch
# ═════════════════════════════════════════════════════════════════════════════

def classify(artifact_type: str | None, action: str | None) -> EventKind:
    """Map a raw (artifact_type, action) pair onto the closed EventKind set."""
    at = str(artifact_type or "").strip().lower()
    act = str(action or "").strip().lower()
    if act not in _CHANGE_ACTIONS:
        return EventKind.UNHANDLED
    if at == "project_charter":
        return EventKind.CHARTER_CHANGED
    if at == "stakeholder_register":
        return EventKind.STAKEHOLDERS_CHANGED
    return EventKind.UNHANDLED


def route(event) -> list[SuggestionDraft]:
    """Route one event to zero or more suggestion drafts.

    Raises:
        EventContractError: the event lacks an id/project_id, or its payload
            does not have the shape the matched rule reads.
    """
    view = _to_view(event)

    match classify(view.artifact_type, view.action):
        case EventKind.CHARTER_CHANGED:
            return _charter_rules(view)
        case EventKind.STAKEHOLDERS_CHANGED:
            return _stakeholder_rules(view)
        case _:
            return []


def _to_view(event) -> EventView:
    if isinstance(event, EventView):
        view = event
    else:
        view = EventView(
            id=getattr(event, "id", None),
            project_id=getattr(event, "project_id", None),
            artifact_type=getattr(event, "artifact_type", "") or "",
            action=getattr(event, "action", "") or "",
            artifact_id=getattr(event, "artifact_id", None),
            payload=getattr(event, "payload", None) or {},
        )
    if view.id is None:
        raise EventContractError("event has no id")
    if view.project_id is None:
        raise EventContractError("event has no project_id", event_id=view.id)
    if view.payload is not None and not isinstance(view.payload, Mapping):
        raise EventContractError(
            f"payload must be an object, got {type(view.payload).__name__}", event_id=view.id,
        )
    return view


# ═════════════════════════════════════════════════════════════════════════════
# Rules
# ═════════════════════════════════════════════════════════════════════════════

def _charter_rules(evt: EventView) -> list[SuggestionDraft]:
    """Charter created/updated → seed downstream artifacts (advisory only)."""
    return [
        SuggestionDraft(
            project_id=evt.project_id,
            source_event_id=evt.id,
            target_artifact_type=target,
            suggestion_type="narrative",
            rationale=rationale,
            confidence=confidence,
            patch=None,
        )
        for target, confidence, rationale in CHARTER_SEEDS
    ]


def _is_imbalanced(stakeholder: Mapping) -> bool:
    influence = str(stakeholder.get("influence") or "").strip().lower()
    interest = str(stakeholder.get("interest") or "").strip().lower()
    return influence == "high" and interest != "high"


def _stakeholder_rules(evt: EventView) -> list[SuggestionDraft]:
    """Stakeholder register created/updated → RAID risk patches + dashboard narrative."""
    stakeholders = (evt.payload or {}).get("stakeholders") or []
    if not isinstance(stakeholders, list):
        raise EventContractError("payload.stakeholders must be a list", event_id=evt.id)

    drafts: list[SuggestionDraft] = []
    flagged_names: list[str] = []

    for s in stakeholders:
        if not isinstance(s, Mapping) or not _is_imbalanced(s):
            continue
        name = str(s.get("name") or "").strip()
        if name:
            flagged_names.append(name)
        label = name or "Unnamed stakeholder"
        drafts.append(SuggestionDraft(
            project_id=evt.project_id,
            source_event_id=evt.id,
            target_artifact_type="raid",
            suggestion_type="patch",
            confidence=STAKEHOLDER_RISK_CONFIDENCE,
            rationale=(
                f"High-influence stakeholder ({label}) shows low engagement. "
                "Risk of late escalation or delivery blockage."
            ),
            patch={
                "type": "raid.add",
                "data": {
                    "category": "Stakeholder",
                    "description": f"{label} may block or delay progress due to low engagement.",
                    "impact": "High",
                    "probability": "Medium",
                    "mitigation": "Increase engagement cadence and clarify expectations.",
                    "owner": s.get("owner"),
                },
            },
        ))

    if flagged_names:
        drafts.append(SuggestionDraft(
            project_id=evt.project_id,
            source_event_id=evt.id,
            target_artifact_type="dashboard",
            suggestion_type="narrative",
            confidence=STAKEHOLDER_NARRATIVE_CONFIDENCE,
            rationale="Stakeholder engagement imbalance detected",
            patch={
                "type": "dashboard.narrative",
                "data": {
                    "message": (
                        f"Stakeholder risk increasing: {', '.join(flagged_names)} "
                        "have high influence but insufficient engagement."
                    ),
                    "severity": "amber",
                },
            },
        ))

    return drafts
