"""
Tests: SLA Cache Builder — rebuild, generation swap and readers.

Covers:
    1. Pending steps from both approval sources are classified
    2. Rebuild replaces the previous generation atomically
    3. A failed rebuild leaves the previous generation current
    4. Readers and the SLA blueprint
"""

from datetime import datetime, timedelta, timezone

import pytest

from signal_engine.core.exceptions import PersistenceError, ValidationError
from signal_engine.models import db as _db
from signal_engine.models.sla import (
    ApprovalGroup,
    ApprovalStep,
    BottleneckRow,
    ChangeApproval,
    SlaCacheGeneration,
    SlaCacheRow,
    SlaPolicy,
)
from signal_engine.services import sla_cache_builder
from signal_engine.services.sla_cache_builder import (
    current_generation,
    get_bottlenecks,
    get_cache_rows,
    load_pending_steps,
    rebuild_cache,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ── ORM helpers ───────────────────────────────────────────────────────────────


def _seed():
    """Three pending items and one decided step.

    - step 1: user u1, submitted 100h ago, default policy → overdue
    - step 2: group CAB, project policy 240h → ok
    - change approval: no dates → unknown
    """
    group = ApprovalGroup(name="CAB")
    _db.session.add(group)
    _db.session.flush()

    _db.session.add(SlaPolicy(project_id=2, sla_hours=240, warn_hours=24, breach_grace_hours=0))
    _db.session.add(SlaPolicy(project_id=1, sla_hours=1, is_active=False))
    _db.session.add_all([
        ApprovalStep(project_id=1, artifact_type="project_charter", stage_key="sponsor",
                     status="pending", submitted_at=NOW - timedelta(hours=100),
                     approver_user_id="u1"),
        ApprovalStep(project_id=2, artifact_type="raid", status="pending",
                     submitted_at=NOW - timedelta(hours=1), approver_group_id=group.id),
        ApprovalStep(project_id=1, artifact_type="raid", status="approved",
                     submitted_at=NOW - timedelta(hours=500), approver_user_id="u1"),
        ChangeApproval(project_id=1, change_request_id=77, status="pending"),
    ])
    _db.session.commit()
    return group


# ═══════════════════════════════════════════════════════════════════════════
#  1. CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════

class TestRebuild:
    def test_loads_pending_steps_from_both_sources(self):
        _seed()
        steps = load_pending_steps()
        assert [s.source for s in steps] == [
            "artifact_approval_steps", "artifact_approval_steps", "change_approvals",
        ]
        assert steps[2].artifact_type == "change_request"
        assert steps[2].artifact_id == 77
        assert steps[0].submitted_at.tzinfo is not None

    def test_rebuild_classifies_every_pending_step(self):
        group = _seed()
        summary = rebuild_cache(now=NOW)
        assert summary["cache"] == 3
        assert summary["bottlenecks"] == 3

        rows = {r.approver_label: r for r in SlaCacheRow.query.all()}
        assert rows["User:u1"].sla_status == "overdue_undecided"
        assert rows["User:u1"].hours_overdue == 28
        assert rows["User:u1"].sla_hours == 72
        assert rows["CAB"].sla_status == "ok"
        assert rows["CAB"].approver_group_id == group.id
        assert rows["CAB"].sla_hours == 240
        assert rows["Unassigned"].sla_status == "unknown"
        assert rows["Unassigned"].due_at is None

    def test_bottleneck_scores(self):
        _seed()
        rebuild_cache(now=NOW)
        top = get_bottlenecks(limit=1)["items"][0]
        assert top["approver_key"] == "U:u1"
        assert top["breached_steps"] == 1
        assert top["blocker_score"] == 6

    def test_empty_rebuild(self):
        summary = rebuild_cache(now=NOW)
        assert summary["cache"] == 0
        assert current_generation().id == summary["generation_id"]


# ═══════════════════════════════════════════════════════════════════════════
#  2. GENERATION SWAP
# ═══════════════════════════════════════════════════════════════════════════

class TestGenerationSwap:
    def test_second_rebuild_replaces_first(self):
        _seed()
        first = rebuild_cache(now=NOW)
        second = rebuild_cache(now=NOW + timedelta(hours=1))

        assert second["generation_id"] != first["generation_id"]
        assert SlaCacheGeneration.query.count() == 1
        assert {r.generation_id for r in SlaCacheRow.query.all()} == {second["generation_id"]}
        assert {r.generation_id for r in BottleneckRow.query.all()} == {second["generation_id"]}

    def test_chunked_inserts_keep_every_row(self):
        _db.session.add_all([
            ApprovalStep(project_id=1, artifact_type="raid", status="pending",
                         submitted_at=NOW, approver_user_id=f"u{i}")
            for i in range(7)
        ])
        _db.session.commit()
        summary = rebuild_cache(now=NOW, chunk_size=3)
        assert summary == {"cache": 7, "bottlenecks": 7, "generation_id": summary["generation_id"]}
        assert SlaCacheRow.query.count() == 7


# ═══════════════════════════════════════════════════════════════════════════
#  3. FAILURE
# ═══════════════════════════════════════════════════════════════════════════

class TestRebuildFailure:
    def test_failed_rebuild_keeps_previous_generation(self, monkeypatch):
        _seed()
        first = rebuild_cache(now=NOW)

        def boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(sla_cache_builder, "approver_identity", boom)
        with pytest.raises(PersistenceError):
            rebuild_cache(now=NOW + timedelta(hours=1))

        assert current_generation().id == first["generation_id"]
        assert SlaCacheRow.query.count() == 3


# ═══════════════════════════════════════════════════════════════════════════
#  4. READERS / API
# ═══════════════════════════════════════════════════════════════════════════

class TestReaders:
    def test_no_generation_yet(self):
        assert get_cache_rows() == {"generation": None, "items": [], "total": 0}
        assert get_bottlenecks() == {"generation": None, "items": []}

    def test_filter_by_status_and_project(self):
        _seed()
        rebuild_cache(now=NOW)
        assert get_cache_rows(status="ok")["total"] == 1
        assert get_cache_rows(project_id=1)["total"] == 2

    def test_most_urgent_first_unknown_last(self):
        _seed()
        rebuild_cache(now=NOW)
        statuses = [r["sla_status"] for r in get_cache_rows()["items"]]
        assert statuses == ["overdue_undecided", "ok", "unknown"]

    def test_invalid_status(self):
        rebuild_cache(now=NOW)
        with pytest.raises(ValidationError):
            get_cache_rows(status="late")

    def test_api_rebuild_and_read(self, client):
        _seed()
        res = client.post("/api/v1/sla/cache/rebuild")
        assert res.status_code == 200
        assert set(res.get_json()) == {"cache", "bottlenecks", "generation_id"}

        res = client.get("/api/v1/sla/cache?project_id=2")
        data = res.get_json()
        assert data["total"] == 1
        assert data["generation"]["is_current"] is True

        res = client.get("/api/v1/sla/bottlenecks?limit=2")
        assert len(res.get_json()["items"]) == 2

    def test_api_invalid_status(self, client):
        rebuild_cache(now=NOW)
        assert client.get("/api/v1/sla/cache?status=late").status_code == 400
