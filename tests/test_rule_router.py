"""
Tests: Rule Router — artifact event → suggestion drafts.

Covers:
    1. Event classification (case-insensitive, closed kind set)
    2. Charter seeding rules
    3. Stakeholder imbalance rules
    4. Unknown combinations and malformed events
"""

import pytest

from signal_engine.core.exceptions import EventContractError
from signal_engine.services.rule_router import EventKind, EventView, classify, route


def _event(artifact_type, action, payload=None, event_id=1, project_id=10):
    return EventView(
        id=event_id,
        project_id=project_id,
        artifact_type=artifact_type,
        action=action,
        payload=payload or {},
    )


# ═══════════════════════════════════════════════════════════════════════════
#  1. CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════

class TestClassify:
    def test_charter_created(self):
        assert classify("project_charter", "created") == EventKind.CHARTER_CHANGED

    def test_case_and_whitespace_normalised(self):
        assert classify(" Stakeholder_Register ", "UPDATED") == EventKind.STAKEHOLDERS_CHANGED

    def test_delete_is_unhandled(self):
        assert classify("project_charter", "deleted") == EventKind.UNHANDLED

    def test_none_values_unhandled(self):
        assert classify(None, None) == EventKind.UNHANDLED


# ═══════════════════════════════════════════════════════════════════════════
#  2. CHARTER RULES
# ═══════════════════════════════════════════════════════════════════════════

class TestCharterRules:
    def test_charter_created_yields_three_seeds(self):
        drafts = route(_event("project_charter", "created"))
        assert [d.target_artifact_type for d in drafts] == ["stakeholder_register", "schedule", "raid"]
        assert [d.confidence for d in drafts] == [0.75, 0.72, 0.70]
        assert all(d.suggestion_type == "narrative" for d in drafts)
        assert all(d.patch is None for d in drafts)

    def test_drafts_reference_event_and_project(self):
        drafts = route(_event("project_charter", "updated", event_id=7, project_id=3))
        assert {(d.source_event_id, d.project_id) for d in drafts} == {(7, 3)}

    def test_routing_is_deterministic(self):
        evt = _event("project_charter", "created")
        assert route(evt) == route(evt)


# ═══════════════════════════════════════════════════════════════════════════
#  3. STAKEHOLDER RULES
# ═══════════════════════════════════════════════════════════════════════════

class TestStakeholderRules:
    def test_imbalanced_stakeholder_yields_raid_patch_and_dashboard_narrative(self):
        payload = {"stakeholders": [
            {"name": "CFO", "influence": "high", "interest": "medium", "owner": "pm@x.com"},
        ]}
        drafts = route(_event("stakeholder_register", "created", payload))

        patches = [d for d in drafts if d.suggestion_type == "patch"]
        assert len(patches) == 1
        risk = patches[0]
        assert risk.target_artifact_type == "raid"
        assert risk.confidence == 0.82
        assert risk.patch["type"] == "raid.add"
        assert risk.patch["data"]["category"] == "Stakeholder"
        assert risk.patch["data"]["owner"] == "pm@x.com"
        assert "CFO" in risk.rationale

        narratives = [d for d in drafts if d.target_artifact_type == "dashboard"]
        assert len(narratives) == 1
        assert narratives[0].confidence == 0.75
        assert narratives[0].patch["data"]["severity"] == "amber"
        assert "CFO" in narratives[0].patch["data"]["message"]

    def test_balanced_stakeholders_yield_nothing(self):
        payload = {"stakeholders": [
            {"name": "Sponsor", "influence": "High", "interest": "HIGH"},
            {"name": "User", "influence": "low", "interest": "low"},
        ]}
        assert route(_event("stakeholder_register", "updated", payload)) == []

    def test_unnamed_stakeholder_gets_patch_but_no_narrative(self):
        payload = {"stakeholders": [{"influence": "high", "interest": "low"}]}
        drafts = route(_event("stakeholder_register", "updated", payload))
        assert len(drafts) == 1
        assert "Unnamed stakeholder" in drafts[0].rationale

    def test_missing_stakeholders_key_yields_nothing(self):
        assert route(_event("stakeholder_register", "created", {})) == []

    def test_non_list_stakeholders_raises(self):
        with pytest.raises(EventContractError):
            route(_event("stakeholder_register", "created", {"stakeholders": "CFO"}))


# ═══════════════════════════════════════════════════════════════════════════
#  4. UNKNOWN / MALFORMED
# ═══════════════════════════════════════════════════════════════════════════

class TestUnknownAndMalformed:
    @pytest.mark.parametrize("artifact_type,action", [
        ("raid", "created"),
        ("schedule", "updated"),
        ("project_charter", "approved"),
        ("", ""),
    ])
    def test_unknown_combination_returns_empty(self, artifact_type, action):
        assert route(_event(artifact_type, action)) == []

    def test_missing_project_id_raises(self):
        with pytest.raises(EventContractError):
            route(EventView(id=1, project_id=None, artifact_type="raid", action="created"))

    def test_non_mapping_payload_raises(self):
        evt = EventView(id=1, project_id=1, artifact_type="project_charter",
                        action="created", payload=["not", "a", "dict"])
        with pytest.raises(EventContractError) as exc:
            route(evt)
        assert exc.value.event_id == 1
