"""
Tests: SLA Resolver & Breach Classifier (pure, fixed clock).

Covers:
    1. Policy selection by specificity, ties and defaults
    2. Due date derivation and unknown classification
    3. Status thresholds and monotonicity in time
    4. Approver identity and bottleneck aggregation
"""

from datetime import datetime, timedelta, timezone

from signal_engine.services.sla_resolver import (
    DEFAULT_POLICY,
    PendingStep,
    PolicyTerms,
    SlaStatus,
    aggregate_bottlenecks,
    approver_identity,
    classify,
    resolve,
    select_policy,
)

T = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _step(**kw):
    base = {"id": 1, "project_id": 10, "artifact_type": "project_charter",
            "stage_key": "sponsor", "submitted_at": T}
    base.update(kw)
    return PendingStep(**base)


# ═══════════════════════════════════════════════════════════════════════════
#  1. POLICY SELECTION
# ═══════════════════════════════════════════════════════════════════════════

class TestSelectPolicy:
    def test_no_policies_uses_defaults(self):
        policy = select_policy(_step(), [])
        assert policy is DEFAULT_POLICY
        assert (policy.sla_hours, policy.warn_hours, policy.breach_grace_hours) == (72, 24, 0)

    def test_project_beats_type_and_stage(self):
        by_project = PolicyTerms(sla_hours=10, project_id=10, policy_id=1)
        by_type_stage = PolicyTerms(sla_hours=20, artifact_type="project_charter",
                                    stage_key="sponsor", policy_id=2)
        assert select_policy(_step(), [by_type_stage, by_project]).policy_id == 1

    def test_type_beats_stage(self):
        by_type = PolicyTerms(artifact_type="project_charter", policy_id=1)
        by_stage = PolicyTerms(stage_key="sponsor", policy_id=2)
        assert select_policy(_step(), [by_stage, by_type]).policy_id == 1

    def test_non_matching_scope_is_ignored(self):
        other_project = PolicyTerms(project_id=99, policy_id=1)
        wildcard = PolicyTerms(policy_id=2)
        assert select_policy(_step(), [other_project, wildcard]).policy_id == 2

    def test_inactive_policy_is_ignored(self):
        inactive = PolicyTerms(project_id=10, is_active=False, policy_id=1)
        assert select_policy(_step(), [inactive]) is DEFAULT_POLICY

    def test_tie_resolves_to_first_in_order(self):
        a = PolicyTerms(artifact_type="project_charter", policy_id=1)
        b = PolicyTerms(artifact_type="project_charter", policy_id=2)
        assert select_policy(_step(), [a, b]).policy_id == 1
        assert select_policy(_step(), [b, a]).policy_id == 2


# ═══════════════════════════════════════════════════════════════════════════
#  2. DUE DATE
# ═══════════════════════════════════════════════════════════════════════════

class TestResolveDueDate:
    def test_due_derived_from_submitted_plus_sla(self):
        res = resolve(_step(), [], T + timedelta(hours=1))
        assert res.due_at == T + timedelta(hours=72)
        assert res.sla_hours == 72

    def test_explicit_due_at_wins(self):
        due = T + timedelta(hours=5)
        res = resolve(_step(due_at=due), [PolicyTerms(sla_hours=100)], T)
        assert res.due_at == due

    def test_no_temporal_data_is_unknown(self):
        res = resolve(_step(submitted_at=None), [], T)
        assert res.sla_status == SlaStatus.UNKNOWN
        assert res.due_at is None
        assert res.hours_to_due is None and res.hours_overdue is None

    def test_past_due_with_grace_is_breached(self):
        policy = PolicyTerms(sla_hours=72, warn_hours=24, breach_grace_hours=12)
        res = resolve(_step(), [policy], T + timedelta(hours=80))
        assert res.due_at == T + timedelta(hours=72)
        assert res.sla_status == SlaStatus.BREACHED
        assert res.hours_overdue == 8
        assert res.hours_to_due == -8

    def test_past_due_without_grace_is_overdue_undecided(self):
        policy = PolicyTerms(sla_hours=72, warn_hours=24, breach_grace_hours=0)
        res = resolve(_step(), [policy], T + timedelta(hours=80))
        assert res.due_at == T + timedelta(hours=72)
        assert res.sla_status == SlaStatus.OVERDUE_UNDECIDED

    def test_half_hours_round_up(self):
        due = T + timedelta(hours=2, minutes=30)
        assert resolve(_step(due_at=due), [], T).hours_to_due == 3

        late = resolve(_step(due_at=due), [], due + timedelta(hours=2, minutes=30))
        assert late.hours_overdue == 3
        assert late.hours_to_due == -2

    def test_to_dict_serialises_status(self):
        data = resolve(_step(), [], T).to_dict()
        assert data["sla_status"] in {s.value for s in SlaStatus}
        assert data["due_at"].startswith("2026-01-08")


# ═══════════════════════════════════════════════════════════════════════════
#  3. CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════

class TestClassify:
    due = T + timedelta(days=30)

    def test_ok_far_from_due(self):
        assert classify(self.due, T, warn_hours=24, grace_hours=0) == SlaStatus.OK

    def test_at_risk_inside_warn_window(self):
        now = self.due - timedelta(hours=10)
        assert classify(self.due, now, warn_hours=24, grace_hours=0,
                        risk_window_days=0) == SlaStatus.AT_RISK

    def test_at_risk_inside_lookahead_window(self):
        now = self.due - timedelta(days=6)
        assert classify(self.due, now, warn_hours=1, grace_hours=0) == SlaStatus.AT_RISK

    def test_exactly_at_due_is_breached(self):
        assert classify(self.due, self.due, warn_hours=24, grace_hours=0) == SlaStatus.BREACHED

    def test_monotonic_in_time(self):
        order = [SlaStatus.OK, SlaStatus.AT_RISK, SlaStatus.BREACHED, SlaStatus.OVERDUE_UNDECIDED]
        previous = 0
        for hours in range(0, 24 * 40, 6):
            now = T + timedelta(hours=hours)
            status = classify(self.due, now, warn_hours=24, grace_hours=6)
            rank = order.index(status)
            assert rank >= previous
            previous = rank
        assert previous == 3


# ═══════════════════════════════════════════════════════════════════════════
#  4. BOTTLENECKS
# ═══════════════════════════════════════════════════════════════════════════

class TestBottlenecks:
    def test_identity_prefers_user_then_group(self):
        assert approver_identity(_step(approver_user_id="u1", approver_group_id=5)) == ("U:u1", "User:u1")
        assert approver_identity(_step(approver_group_id=5), {5: "CAB"}) == ("G:5", "CAB")
        assert approver_identity(_step(approver_group_id=6)) == ("G:6", "Group:6")
        assert approver_identity(_step()) == ("X:unassigned", "Unassigned")

    def test_blocker_score_and_ordering(self):
        now = T + timedelta(hours=100)
        late = [_step(id=i, approver_user_id="slow") for i in (1, 2)]
        fresh = [_step(id=3, approver_user_id="fast", submitted_at=now)]
        classified = [(s, resolve(s, [], now)) for s in late + fresh]

        rows = aggregate_bottlenecks(classified)
        assert [r.approver_key for r in rows] == ["U:slow", "U:fast"]

        slow = rows[0]
        assert slow.open_steps == 2
        assert slow.breached_steps == 2
        assert slow.at_risk_steps == 0
        assert slow.max_hours_overdue == 28
        assert slow.blocker_score == 2 * 5 + 2

        fast = rows[1]
        assert fast.at_risk_steps == 1
        assert fast.blocker_score == 2 + 1

    def test_unknown_steps_count_as_open_only(self):
        step = _step(submitted_at=None)
        rows = aggregate_bottlenecks([(step, resolve(step, [], T))])
        assert rows[0].to_dict()["blocker_score"] == 1
