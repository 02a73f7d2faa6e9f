"""
Decision intelligence blueprint.

Endpoints:
    POST /api/v1/projects/<pid>/decision-intelligence   — analyze now (no writes)
         body: {decisions?: [...], useAi?: bool}
    GET  /api/v1/projects/<pid>/decision-intelligence   — latest stored snapshot
"""

import logging

from flask import Blueprint, jsonify, request

from signal_engine.blueprints import parse_bool
from signal_engine.core.exceptions import NotFoundError, ValidationError
from signal_engine.services import decision_intelligence_service as dis
from signal_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

decision_bp = Blueprint("decision_bp", __name__, url_prefix="/api/v1")


@decision_bp.route("/projects/<int:project_id>/decision-intelligence", methods=["POST"])
def analyze_decisions(project_id):
    """Compute signals and an intelligence summary for one project."""
    data = request.get_json(silent=True) or {}
    use_ai = parse_bool(data.get("useAi", data.get("use_ai", False)))

    try:
        decisions = None
        if data.get("decisions") is not None:
            decisions = dis.parse_decisions(data["decisions"])
        result = dis.analyze_project(project_id, decisions=decisions, use_ai=use_ai)
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    except NotFoundError as e:
        return api_error(E.NOT_FOUND, str(e))
    return jsonify(result)


@decision_bp.route("/projects/<int:project_id>/decision-intelligence", methods=["GET"])
def get_decision_intelligence(project_id):
    try:
        return jsonify(dis.get_snapshot(project_id))
    except NotFoundError as e:
        return api_error(E.NOT_FOUND, str(e))
