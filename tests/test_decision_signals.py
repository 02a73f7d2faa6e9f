"""
Tests: Decision Signal Detector (pure, fixed clock).

Covers:
    1. Rationale quality scoring
    2. Each of the eight detectors, including terminal-state exclusion
    3. Payload parsing (camelCase / snake_case)
"""

from datetime import datetime, timedelta, timezone

import pytest

from signal_engine.services.decision_signals import (
    DecisionRecord,
    SignalCode,
    SignalSeverity,
    days_until,
    detect,
    rationale_quality_score,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

GOOD_RATIONALE = {
    "rationale": "Chosen vendor offers the only certified connector for the ERP.",
    "context": "Integration must be live before the UAT window opens.",
    "options_considered": ("Vendor A", "Vendor B"),
    "impact_description": "Delays integration testing by two weeks if missed.",
}


def _decision(id_="1", **kw):
    """A well-documented, owned, recently updated open decision; override per test."""
    base = {
        "id": id_,
        "ref": f"D-{id_}",
        "title": f"Decision {id_}",
        "category": "Technical",
        "status": "open",
        "impact": "medium",
        "owner": "alice",
        "date_raised": NOW - timedelta(days=2),
        "last_updated": NOW - timedelta(days=1),
        **GOOD_RATIONALE,
    }
    base.update(kw)
    return DecisionRecord(**base)


def _codes(signals):
    return [s.code for s in signals]


# ═══════════════════════════════════════════════════════════════════════════
#  1. RATIONALE SCORE
# ═══════════════════════════════════════════════════════════════════════════

class TestRationaleScore:
    def test_full_documentation_scores_five(self):
        assert rationale_quality_score(_decision()) == 5

    def test_empty_record_scores_zero(self):
        assert rationale_quality_score(DecisionRecord(id="x")) == 0

    def test_short_rationale_scores_one(self):
        d = DecisionRecord(id="x", rationale="Cheaper.")
        assert rationale_quality_score(d) == 1

    def test_single_option_not_counted(self):
        d = _decision(options_considered=("Only option",))
        assert rationale_quality_score(d) == 4


# ═══════════════════════════════════════════════════════════════════════════
#  2. DETECTORS
# ═══════════════════════════════════════════════════════════════════════════

class TestDetectors:
    def test_clean_log_has_no_signals(self):
        assert detect([_decision("1"), _decision("2", category="Scope")], NOW) == []

    def test_overdue_open_decision(self):
        d = _decision("7", needed_by_date=NOW - timedelta(days=5))
        signals = detect([d], NOW)
        overdue = [s for s in signals if s.code == SignalCode.DECISION_OVERDUE]
        assert len(overdue) == 1
        assert overdue[0].severity == SignalSeverity.CRITICAL
        assert overdue[0].affected_ids == ["7"]
        assert overdue[0].detail == "1 decision past needed-by date"

    def test_overdue_ignores_terminal_decisions(self):
        d = _decision("7", status="implemented", needed_by_date=NOW - timedelta(days=5))
        assert detect([d], NOW) == []

    def test_stale_after_21_days(self):
        stale = _decision("1", last_updated=NOW - timedelta(days=22))
        fresh = _decision("2", last_updated=NOW - timedelta(days=21))
        signals = detect([stale, fresh], NOW)
        assert _codes(signals) == [SignalCode.DECISION_STALE]
        assert signals[0].affected_ids == ["1"]

    def test_high_impact_unowned(self):
        d = _decision("3", impact="critical", owner=None)
        signals = detect([d], NOW)
        unowned = [s for s in signals if s.code == SignalCode.HIGH_IMPACT_UNOWNED]
        assert unowned[0].severity == SignalSeverity.CRITICAL
        assert unowned[0].detail == "1 high/critical impact decision has no owner"

    def test_weak_rationale(self):
        weak = DecisionRecord(id="4", last_updated=NOW, date_raised=NOW, owner="bob",
                              rationale="Because.")
        signals = detect([weak], NOW)
        assert _codes(signals) == [SignalCode.RATIONALE_WEAK]
        assert signals[0].severity == SignalSeverity.WARNING

    def test_implementation_overdue(self):
        d = _decision("5", status="approved", implementation_date=NOW - timedelta(days=3),
                      review_date=NOW + timedelta(days=30))
        signals = detect([d], NOW)
        assert _codes(signals) == [SignalCode.IMPLEMENTATION_OVERDUE]

    def test_cluster_fires_at_threshold(self):
        three = [_decision(str(i), category="Commercial") for i in range(3)]
        signals = detect(three, NOW)
        assert _codes(signals) == [SignalCode.CLUSTER_CONCENTRATION]
        assert signals[0].label == "Commercial Decision Cluster"
        assert signals[0].affected_ids == ["0", "1", "2"]

    def test_cluster_not_fired_below_threshold(self):
        two = [_decision(str(i), category="Commercial") for i in range(2)]
        assert detect(two, NOW) == []

    def test_cluster_excludes_terminal_decisions(self):
        decisions = [
            _decision("1", category="Commercial"),
            _decision("2", category="Commercial"),
            _decision("3", category="Commercial", status="superseded"),
        ]
        assert detect(decisions, NOW) == []

    def test_reversal_risk(self):
        d = _decision("6", status="approved", reversible=True, review_date=None)
        signals = detect([d], NOW)
        assert _codes(signals) == [SignalCode.REVERSAL_RISK]

    def test_pending_escalation(self):
        d = _decision("8", status="pending", impact="high",
                      date_raised=NOW - timedelta(days=15))
        signals = detect([d], NOW)
        assert _codes(signals) == [SignalCode.PENDING_ESCALATION]
        assert signals[0].affected_ids == ["8"]

    def test_signal_to_dict(self):
        d = _decision("7", needed_by_date=NOW - timedelta(days=5))
        data = detect([d], NOW)[0].to_dict()
        assert data == {
            "code": "DECISION_OVERDUE",
            "severity": "critical",
            "label": "Decisions Overdue",
            "detail": "1 decision past needed-by date",
            "affected_ids": ["7"],
        }


# ═══════════════════════════════════════════════════════════════════════════
#  3. PARSING & DATES
# ═══════════════════════════════════════════════════════════════════════════

class TestRecordParsing:
    def test_from_dict_accepts_camel_case(self):
        d = DecisionRecord.from_dict({
            "id": 12,
            "status": "Open",
            "impact": "HIGH",
            "neededByDate": "2026-02-25",
            "optionsConsidered": ["a", "b"],
            "impactDescription": "Blocks go-live",
        })
        assert d.id == "12"
        assert d.status == "open"
        assert d.is_high_impact
        assert d.needed_by_date == datetime(2026, 2, 25, tzinfo=timezone.utc)
        assert d.options_considered == ("a", "b")

    def test_from_dict_accepts_snake_case(self):
        d = DecisionRecord.from_dict({"id": "a", "needed_by_date": "2026-02-25T10:00:00Z"})
        assert d.needed_by_date.hour == 10

    @pytest.mark.parametrize("offset_hours,expected", [(-132, -5), (12, 1), (11, 0), (-12, 0)])
    def test_days_until_rounds_half_up(self, offset_hours, expected):
        assert days_until(NOW + timedelta(hours=offset_hours), NOW) == expected
