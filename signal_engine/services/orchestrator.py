"""
Governance Signal Engine
Orchestrator Worker — drains the artifact event queue in bounded batches.

Per event, strictly sequentially:
    1. claim (compare-and-swap on claimed_at / claimed_by)
    2. route via the rule router (pure)
    3. insert suggestions + mark processed          ── one transaction
    4. on any failure: rollback, then record the attempt (and quarantine
       once ORCHESTRATOR_MAX_ATTEMPTS is reached)  ── separate transaction

A failing event never aborts the batch. The batch stops early once
ORCHESTRATOR_TIME_BUDGET_SECONDS has elapsed; remaining events stay queued.

Usage:
    from signal_engine.services.orchestrator import run_batch
    result = run_batch(limit=10, dry_run=False)
    result.to_dict()
"""

from __future__ import annotations

import logging
import os
import socket
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app, has_app_context

from signal_engine.models import db
from signal_engine.models.events import ArtifactEvent
from signal_engine.models.suggestions import AISuggestion
from signal_engine.services import event_store
from signal_engine.services.rule_router import SuggestionDraft, route
from signal_engine.utils.helpers import clamp_int

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_LEASE_SECONDS = 300
DEFAULT_TIME_BUDGET_SECONDS = 50


@dataclass
class BatchResult:
    processed: int = 0
    failed: int = 0
    quarantined: int = 0
    skipped: int = 0
    last_event_id: int | None = None
    dry_run: bool = False
    timed_out: bool = False
    errors: list[dict] = field(default_factory=list)
    drafts: dict[int, list[dict]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = {
            "processed": self.processed,
            "failed": self.failed,
            "quarantined": self.quarantined,
            "skipped": self.skipped,
            "last_event_id": self.last_event_id,
            "dry_run": self.dry_run,
            "timed_out": self.timed_out,
            "errors": self.errors,
        }
        if self.dry_run:
            out["drafts"] = {str(k): v for k, v in self.drafts.items()}
        return out


def _cfg(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def default_worker_id() -> str:
    """One id per batch run, so concurrent batches in a process never share claims."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def _persist(event: ArtifactEvent, drafts: list[SuggestionDraft], now: datetime) -> None:
    for d in drafts:
        db.session.add(AISuggestion(
            project_id=d.project_id,
            source_event_id=d.source_event_id,
            target_artifact_id=d.target_artifact_id,
            target_artifact_type=d.target_artifact_type,
            suggestion_type=d.suggestion_type,
            patch=d.patch,
            rationale=d.rationale,
            confidence=d.confidence,
            status="proposed",
            created_at=now,
        ))
    event_store.mark_processed(event, now)
    db.session.commit()


def run_batch(
    limit=DEFAULT_LIMIT,
    dry_run: bool = False,
    *,
    now: datetime | None = None,
    worker_id: str | None = None,
) -> BatchResult:
    """Process up to ``limit`` unprocessed events, oldest first.

    Args:
        limit: Batch size, clamped to 1..ORCHESTRATOR_MAX_LIMIT.
        dry_run: Route only; no claims, inserts or marks. Drafts are
            returned on the result for inspection.
        now: Clock override (processed_at / claim timestamps).
        worker_id: Claim owner; defaults to "<host>:<pid>:<random>".

    Returns:
        BatchResult with per-outcome counts.
    """
    limit = clamp_int(limit, _cfg("ORCHESTRATOR_DEFAULT_LIMIT", DEFAULT_LIMIT),
                      1, _cfg("ORCHESTRATOR_MAX_LIMIT", MAX_LIMIT))
    max_attempts = _cfg("ORCHESTRATOR_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)
    lease_seconds = _cfg("ORCHESTRATOR_CLAIM_LEASE_SECONDS", DEFAULT_LEASE_SECONDS)
    budget = _cfg("ORCHESTRATOR_TIME_BUDGET_SECONDS", DEFAULT_TIME_BUDGET_SECONDS)
    worker_id = worker_id or default_worker_id()
    fixed_now = now

    result = BatchResult(dry_run=bool(dry_run))
    started = time.monotonic()

    if dry_run:
        for event in event_store.fetch_unprocessed(limit):
            result.last_event_id = event.id
            try:
                drafts = route(event)
            except Exception as exc:
                result.failed += 1
                result.errors.append({"event_id": event.id, "error": str(exc)})
                continue
            result.processed += 1
            result.drafts[event.id] = [d.to_dict() for d in drafts]
        logger.info("Orchestrator dry run: routed=%d failed=%d",
                    result.processed, result.failed, extra={"worker_id": worker_id})
        return result

    event_ids = event_store.fetch_unprocessed_ids(limit)

    for idx, event_id in enumerate(event_ids):
        if budget and time.monotonic() - started >= budget:
            result.timed_out = True
            logger.warning("Orchestrator time budget (%ss) exhausted; %d events left queued",
                           budget, len(event_ids) - idx,
                           extra={"worker_id": worker_id})
            break

        ts = fixed_now or datetime.now(timezone.utc)
        result.last_event_id = event_id

        if not event_store.claim(event_id, worker_id, ts, lease_seconds):
            result.skipped += 1
            logger.debug("Event #%d claimed elsewhere, skipping", event_id,
                         extra={"event_id": event_id, "worker_id": worker_id})
            continue

        try:
            event = db.session.get(ArtifactEvent, event_id)
            drafts = route(event)
            _persist(event, drafts, ts)
        except Exception as exc:
            db.session.rollback()
            error = f"{type(exc).__name__}: {exc}"
            result.failed += 1
            result.errors.append({"event_id": event_id, "error": error})
            try:
                failed = event_store.mark_failed(event_id, error, ts, max_attempts)
            except Exception:
                db.session.rollback()
                logger.exception("Could not record failure for event #%d", event_id,
                                 extra={"event_id": event_id, "worker_id": worker_id})
                continue
            if failed is not None and failed.quarantined_at is not None:
                result.quarantined += 1
                logger.error("Event #%d quarantined after %d attempts: %s",
                             event_id, failed.attempt_count, error,
                             extra={"event_id": event_id, "worker_id": worker_id})
            else:
                logger.warning("Event #%d failed: %s", event_id, error,
                               extra={"event_id": event_id, "worker_id": worker_id})
            continue

        result.processed += 1
        logger.info("Event #%d processed: %d suggestions", event_id, len(drafts),
                    extra={"event_id": event_id, "worker_id": worker_id})

    logger.info(
        "Orchestrator batch: processed=%d failed=%d quarantined=%d skipped=%d",
        result.processed, result.failed, result.quarantined, result.skipped,
        extra={"worker_id": worker_id},
    )
    return result
