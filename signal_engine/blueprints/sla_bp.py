"""
SLA cache blueprint.

Endpoints:
    POST /api/v1/sla/cache/rebuild               — rebuild cache + bottlenecks
    GET  /api/v1/sla/cache?project_id=&status=   — current generation rows
    GET  /api/v1/sla/bottlenecks?limit=          — top approvers by blocker score
"""

import logging

from flask import Blueprint, jsonify, request

from signal_engine.core.exceptions import PersistenceError, ValidationError
from signal_engine.middleware.cron_auth import require_cron_secret
from signal_engine.services import sla_cache_builder
from signal_engine.utils.errors import E, api_error
from signal_engine.utils.helpers import clamp_int

logger = logging.getLogger(__name__)

sla_bp = Blueprint("sla_bp", __name__, url_prefix="/api/v1/sla")


@sla_bp.route("/cache/rebuild", methods=["POST"])
@require_cron_secret
def rebuild():
    try:
        summary = sla_cache_builder.rebuild_cache()
    except PersistenceError as e:
        return api_error(E.DATABASE, str(e))
    return jsonify(summary)


@sla_bp.route("/cache", methods=["GET"])
def cache_rows():
    try:
        result = sla_cache_builder.get_cache_rows(
            project_id=request.args.get("project_id", type=int),
            status=request.args.get("status"),
        )
    except ValidationError as e:
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)
    return jsonify(result)


@sla_bp.route("/bottlenecks", methods=["GET"])
def bottlenecks():
    limit = clamp_int(request.args.get("limit"), 20, 1, 200)
    return jsonify(sla_cache_builder.get_bottlenecks(limit=limit))
