"""
Governance Signal Engine
Scheduled Jobs.

Concrete job implementations run by SchedulerService.

Jobs:
    - orchestrator_batch: Drain one batch of artifact events
    - sla_cache_rebuild: Rebuild the approval SLA cache + bottlenecks
    - decision_intel_generate: Refresh decision intelligence for active projects
    - suggestion_sla_check: Escalate stale proposed suggestions per active project
"""

from __future__ import annotations

import logging
from typing import Any

from signal_engine.models import db
from signal_engine.models.decisions import Project
from signal_engine.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("orchestrator_batch")
def run_orchestrator_batch(app, limit=None, dry_run=False) -> dict[str, Any]:
    """Process one batch of unprocessed artifact events."""
    from signal_engine.services.orchestrator import run_batch

    result = run_batch(limit if limit is not None else app.config.get("ORCHESTRATOR_DEFAULT_LIMIT", 10),
                       dry_run=bool(dry_run))
    return result.to_dict()


@register_job("sla_cache_rebuild")
def rebuild_sla_cache(app) -> dict[str, Any]:
    """Rebuild the approval SLA cache and bottleneck tables."""
    from signal_engine.services.sla_cache_builder import rebuild_cache

    return rebuild_cache()


@register_job("decision_intel_generate")
def generate_decision_intel(app) -> dict[str, Any]:
    """Generate decision intelligence snapshots for all active projects."""
    from signal_engine.services.decision_intelligence_service import generate_for_active_projects

    return generate_for_active_projects()


@register_job("suggestion_sla_check")
def check_suggestion_sla(app, days=None) -> dict[str, Any]:
    """Escalate proposed suggestions older than SUGGESTION_SLA_DAYS."""
    from signal_engine.services.suggestion_queue import SuggestionQueue

    days = days if days is not None else app.config.get("SUGGESTION_SLA_DAYS", 7)
    results = {"projects": 0, "scanned": 0, "created": 0, "failed": 0}
    for project in Project.query.filter_by(status="active").order_by(Project.id).all():
        try:
            out = SuggestionQueue.escalate_stale_suggestions(project.id, days)
        except Exception as e:
            db.session.rollback()
            logger.error("Suggestion SLA check failed for project %s: %s", project.id, e,
                         extra={"project_id": project.id})
            results["failed"] += 1
            continue
        results["projects"] += 1
        results["scanned"] += out["scanned"]
        results["created"] += out["created"]
    return results
