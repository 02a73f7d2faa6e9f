"""
Suggestion queue blueprint.

Endpoints:
    GET  /api/v1/projects/<pid>/suggestions             — list (status, type, target filters)
    GET  /api/v1/projects/<pid>/suggestions/stats       — counts by status / type
    POST /api/v1/projects/<pid>/suggestions/sla-check   — escalate stale proposals {days}
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from signal_engine.blueprints import paginate_args
from signal_engine.core.exceptions import ValidationError
from signal_engine.middleware.cron_auth import require_cron_secret
from signal_engine.services.suggestion_queue import SuggestionQueue
from signal_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

suggestion_bp = Blueprint("suggestion_bp", __name__, url_prefix="/api/v1")


@suggestion_bp.route("/projects/<int:project_id>/suggestions", methods=["GET"])
def list_suggestions(project_id):
    page, per_page = paginate_args()
    try:
        result = SuggestionQueue.list_suggestions(
            project_id=project_id,
            status=request.args.get("status"),
            suggestion_type=request.args.get("type"),
            target_artifact_type=request.args.get("target"),
            source_event_id=request.args.get("source_event_id", type=int),
            page=page,
            per_page=per_page,
        )
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify(result)


@suggestion_bp.route("/projects/<int:project_id>/suggestions/stats", methods=["GET"])
def suggestion_stats(project_id):
    return jsonify(SuggestionQueue.get_stats(project_id))


@suggestion_bp.route("/projects/<int:project_id>/suggestions/sla-check", methods=["POST"])
@require_cron_secret
def suggestion_sla_check(project_id):
    data = request.get_json(silent=True) or {}
    days = data.get("days", current_app.config.get("SUGGESTION_SLA_DAYS", 7))
    result = SuggestionQueue.escalate_stale_suggestions(project_id, days)
    return jsonify(result)
