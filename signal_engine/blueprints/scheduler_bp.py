"""
Scheduler blueprint.

Endpoints:
    GET   /api/v1/scheduler/jobs                  — registered jobs + run history
    POST  /api/v1/scheduler/jobs/<name>/trigger   — run a job now
    PATCH /api/v1/scheduler/jobs/<name>/toggle    — enable / disable
"""

import logging

from flask import Blueprint, jsonify, request

from signal_engine.blueprints import parse_bool
from signal_engine.middleware.cron_auth import require_cron_secret
from signal_engine.services.scheduler_service import SchedulerService, get_registered_jobs
from signal_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler_bp", __name__, url_prefix="/api/v1/scheduler")


@scheduler_bp.route("/jobs", methods=["GET"])
def list_scheduled_jobs():
    """List all registered jobs with their status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@scheduler_bp.route("/jobs/<job_name>/trigger", methods=["POST"])
@require_cron_secret
def trigger_job(job_name):
    """Manually trigger a scheduled job."""
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    result = SchedulerService.run_job(job_name)
    status = 500 if result.get("status") == "failed" else 200
    return jsonify(result), status


@scheduler_bp.route("/jobs/<job_name>/toggle", methods=["PATCH"])
@require_cron_secret
def toggle_job_status(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    result = SchedulerService.toggle_job(job_name, parse_bool(enabled))
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
