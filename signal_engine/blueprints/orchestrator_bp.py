"""
Orchestrator & event queue blueprint.

Endpoints:
    POST /api/v1/orchestrator/run           — drain one batch {limit, dryRun}
    POST /api/v1/events                     — append an artifact event
    GET  /api/v1/events?status=&project_id= — list events by derived state
    POST /api/v1/events/<id>/requeue        — return a failed/quarantined event to the queue
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from signal_engine.blueprints import paginate_args, parse_bool
from signal_engine.core.exceptions import NotFoundError, ValidationError
from signal_engine.middleware.cron_auth import require_cron_secret
from signal_engine.services import event_store
from signal_engine.services.orchestrator import run_batch
from signal_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

orchestrator_bp = Blueprint("orchestrator_bp", __name__, url_prefix="/api/v1")


@orchestrator_bp.route("/orchestrator/run", methods=["POST"])
@require_cron_secret
def run_orchestrator():
    """Process up to `limit` (1–50) unprocessed events, oldest first."""
    data = request.get_json(silent=True) or {}
    limit = data.get("limit", current_app.config.get("ORCHESTRATOR_DEFAULT_LIMIT", 10))
    dry_run = parse_bool(data.get("dryRun", data.get("dry_run", False)))

    result = run_batch(limit, dry_run)
    return jsonify(result.to_dict()), 200


@orchestrator_bp.route("/events", methods=["POST"])
def create_event():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    project_id = data.get("project_id")
    if project_id is None:
        return api_error(E.VALIDATION_REQUIRED, "project_id is required")
    try:
        project_id = int(project_id)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "project_id must be an integer")

    try:
        event = event_store.record_event(
            project_id=project_id,
            artifact_type=data.get("artifact_type", ""),
            action=data.get("action", ""),
            payload=data.get("payload"),
            artifact_id=data.get("artifact_id"),
        )
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify(event.to_dict()), 201


@orchestrator_bp.route("/events", methods=["GET"])
def list_events():
    page, per_page = paginate_args(default_per_page=50)
    try:
        result = event_store.list_events(
            status=request.args.get("status"),
            project_id=request.args.get("project_id", type=int),
            page=page,
            per_page=per_page,
        )
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify(result)


@orchestrator_bp.route("/events/<int:event_id>/requeue", methods=["POST"])
@require_cron_secret
def requeue_event(event_id):
    try:
        event = event_store.requeue(event_id)
    except NotFoundError as e:
        return api_error(E.NOT_FOUND, str(e))
    except ValidationError as e:
        return api_error(E.CONFLICT_STATE, str(e), details=e.details)
    return jsonify(event.to_dict())
