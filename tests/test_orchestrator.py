"""
Tests: Orchestrator Worker — event queue → suggestions.

Covers:
    1. Happy path: charter + stakeholder events persisted as proposed suggestions
    2. Failure isolation (routing and persistence), retry bookkeeping and quarantine
    3. Dry run (no writes)
    4. Claim semantics (live lease vs expired lease, per-batch worker ids)
    5. Limit clamping, ordering and the time budget

All test data created via ORM helpers.
The `session` autouse fixture rolls back after every test.
"""

from datetime import datetime, timedelta, timezone

import pytest

from signal_engine.models import db as _db
from signal_engine.models.events import ArtifactEvent
from signal_engine.models.suggestions import AISuggestion
from signal_engine.services import event_store
from signal_engine.services.orchestrator import default_worker_id, run_batch

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

IMBALANCED = {"stakeholders": [{"name": "CFO", "influence": "high", "interest": "low"}]}


# ── ORM helpers ───────────────────────────────────────────────────────────────


def _make_event(artifact_type="project_charter", action="created", payload=None,
                project_id=1, created_at=None, **kw) -> ArtifactEvent:
    evt = ArtifactEvent(
        project_id=project_id,
        artifact_type=artifact_type,
        action=action,
        payload=payload if payload is not None else {},
        created_at=created_at or NOW - timedelta(hours=1),
        **kw,
    )
    _db.session.add(evt)
    _db.session.commit()
    return evt


def _reload(event_id) -> ArtifactEvent:
    _db.session.expire_all()
    return _db.session.get(ArtifactEvent, event_id)


# ═══════════════════════════════════════════════════════════════════════════
#  1. HAPPY PATH
# ═══════════════════════════════════════════════════════════════════════════

class TestProcessing:
    def test_charter_event_creates_three_proposed_suggestions(self):
        evt = _make_event()
        result = run_batch(10, now=NOW, worker_id="w1")

        assert result.processed == 1
        assert result.failed == 0
        assert result.last_event_id == evt.id

        rows = AISuggestion.query.filter_by(source_event_id=evt.id).all()
        assert sorted(r.target_artifact_type for r in rows) == ["raid", "schedule", "stakeholder_register"]
        assert {r.status for r in rows} == {"proposed"}

        evt = _reload(evt.id)
        assert evt.processed_at is not None
        assert evt.process_error is None
        assert evt.claimed_by is None
        assert evt.state == "processed"

    def test_unhandled_event_is_processed_without_suggestions(self):
        evt = _make_event(artifact_type="raid", action="updated")
        result = run_batch(10, now=NOW)
        assert result.processed == 1
        assert AISuggestion.query.count() == 0
        assert _reload(evt.id).processed_at is not None

    def test_processed_events_are_not_fetched_again(self):
        _make_event()
        run_batch(10, now=NOW)
        second = run_batch(10, now=NOW)
        assert second.processed == 0
        assert AISuggestion.query.count() == 3


# ═══════════════════════════════════════════════════════════════════════════
#  2. FAILURES
# ═══════════════════════════════════════════════════════════════════════════

class TestFailures:
    def test_failing_event_does_not_abort_batch(self):
        bad = _make_event(artifact_type="stakeholder_register",
                          payload={"stakeholders": "not-a-list"},
                          created_at=NOW - timedelta(hours=3))
        good = _make_event(artifact_type="stakeholder_register", payload=IMBALANCED,
                           created_at=NOW - timedelta(hours=2))

        result = run_batch(10, now=NOW)
        assert result.processed == 1
        assert result.failed == 1
        assert result.errors[0]["event_id"] == bad.id
        assert "EventContractError" in result.errors[0]["error"]

        bad = _reload(bad.id)
        assert bad.processed_at is None
        assert bad.process_error
        assert bad.attempt_count == 1
        assert bad.claimed_at is None
        assert bad.state == "failed"

        assert AISuggestion.query.filter_by(source_event_id=good.id).count() == 2
        assert AISuggestion.query.filter_by(source_event_id=bad.id).count() == 0

    def test_persistence_failure_rolls_back_that_event_only(self, monkeypatch):
        first_id = _make_event(created_at=NOW - timedelta(hours=3)).id
        second_id = _make_event(created_at=NOW - timedelta(hours=2)).id
        real_mark_processed = event_store.mark_processed

        def failing_mark(event, now):
            if event.id == first_id:
                raise RuntimeError("disk full")
            real_mark_processed(event, now)

        monkeypatch.setattr(event_store, "mark_processed", failing_mark)
        result = run_batch(10, now=NOW)

        assert result.processed == 1
        assert result.failed == 1
        assert AISuggestion.query.filter_by(source_event_id=first_id).count() == 0
        assert AISuggestion.query.filter_by(source_event_id=second_id).count() == 3

        first = _reload(first_id)
        assert first.processed_at is None
        assert "disk full" in first.process_error
        assert first.attempt_count == 1
        assert _reload(second_id).processed_at is not None

    def test_last_event_id_tracks_failed_events_too(self):
        _make_event(created_at=NOW - timedelta(hours=3))
        bad = _make_event(artifact_type="stakeholder_register", payload={"stakeholders": 5},
                          created_at=NOW - timedelta(hours=2))
        result = run_batch(10, now=NOW)
        assert result.processed == 1
        assert result.last_event_id == bad.id

    def test_every_event_is_either_processed_or_erroring(self):
        _make_event(created_at=NOW - timedelta(hours=4))
        _make_event(artifact_type="stakeholder_register", payload={"stakeholders": 5},
                    created_at=NOW - timedelta(hours=3))
        _make_event(artifact_type="stakeholder_register", payload=IMBALANCED,
                    created_at=NOW - timedelta(hours=2))
        run_batch(10, now=NOW)

        _db.session.expire_all()
        for evt in ArtifactEvent.query.all():
            assert (evt.processed_at is not None) != (evt.process_error is not None)

    def test_event_quarantined_after_max_attempts(self, app):
        bad = _make_event(artifact_type="stakeholder_register", payload={"stakeholders": "x"})
        max_attempts = app.config["ORCHESTRATOR_MAX_ATTEMPTS"]

        for _ in range(max_attempts - 1):
            result = run_batch(10, now=NOW)
            assert result.quarantined == 0
        result = run_batch(10, now=NOW)
        assert result.quarantined == 1

        bad = _reload(bad.id)
        assert bad.attempt_count == max_attempts
        assert bad.quarantined_at is not None
        assert bad.state == "quarantined"

        assert run_batch(10, now=NOW).failed == 0


# ═══════════════════════════════════════════════════════════════════════════
#  3. DRY RUN
# ═══════════════════════════════════════════════════════════════════════════

class TestDryRun:
    def test_dry_run_writes_nothing(self):
        evt = _make_event()
        result = run_batch(10, dry_run=True, now=NOW)

        assert result.dry_run is True
        assert result.processed == 1
        assert len(result.drafts[evt.id]) == 3
        assert AISuggestion.query.count() == 0

        evt = _reload(evt.id)
        assert evt.processed_at is None
        assert evt.claimed_at is None

        data = result.to_dict()
        assert str(evt.id) in data["drafts"]

    def test_dry_run_reports_routing_errors(self):
        _make_event(artifact_type="stakeholder_register", payload={"stakeholders": "x"})
        result = run_batch(10, dry_run=True, now=NOW)
        assert result.failed == 1
        assert result.processed == 0

    def test_drafts_omitted_outside_dry_run(self):
        _make_event()
        assert "drafts" not in run_batch(10, now=NOW).to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  4. CLAIMS
# ═══════════════════════════════════════════════════════════════════════════

class TestClaims:
    def test_event_under_live_lease_is_skipped(self):
        evt = _make_event(claimed_at=NOW - timedelta(seconds=30), claimed_by="other:1")
        result = run_batch(10, now=NOW, worker_id="me:2")
        assert result.skipped == 1
        assert result.processed == 0
        assert _reload(evt.id).claimed_by == "other:1"

    def test_live_claim_blocks_its_own_worker(self):
        evt = _make_event()
        worker = default_worker_id()
        later = NOW + timedelta(seconds=1)
        assert event_store.claim(evt.id, worker, NOW, 300) is True
        assert event_store.claim(evt.id, worker, later, 300) is False
        assert event_store.claim(evt.id, default_worker_id(), later, 300) is False

    def test_default_worker_id_is_unique_per_call(self):
        assert default_worker_id() != default_worker_id()

    def test_expired_lease_is_reclaimed(self):
        evt = _make_event(claimed_at=NOW - timedelta(hours=1), claimed_by="crashed:1")
        result = run_batch(10, now=NOW, worker_id="me:2")
        assert result.processed == 1
        assert _reload(evt.id).processed_at is not None


# ═══════════════════════════════════════════════════════════════════════════
#  5. LIMITS / ORDER / BUDGET
# ═══════════════════════════════════════════════════════════════════════════

class TestBatchBounds:
    @pytest.mark.parametrize("limit,expected", [(0, 1), (-5, 1), ("abc", 3), (2, 2)])
    def test_limit_is_clamped(self, limit, expected):
        for i in range(3):
            _make_event(artifact_type="raid", created_at=NOW - timedelta(minutes=10 - i))
        assert run_batch(limit, now=NOW).processed == expected

    def test_oldest_event_processed_first(self):
        newer = _make_event(artifact_type="raid", created_at=NOW - timedelta(minutes=1))
        older = _make_event(artifact_type="raid", created_at=NOW - timedelta(minutes=5))
        result = run_batch(1, now=NOW)
        assert result.last_event_id == older.id
        assert _reload(newer.id).processed_at is None

    def test_time_budget_stops_batch(self, app, monkeypatch):
        _make_event()
        monkeypatch.setitem(app.config, "ORCHESTRATOR_TIME_BUDGET_SECONDS", 1e-9)
        result = run_batch(10, now=NOW)
        assert result.timed_out is True
        assert result.processed == 0
        assert ArtifactEvent.query.filter(ArtifactEvent.processed_at.is_(None)).count() == 1
