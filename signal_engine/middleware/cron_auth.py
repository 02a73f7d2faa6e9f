"""
Shared-secret guard for trigger endpoints.

When CRON_SECRET is configured, decorated views require either
``X-Cron-Secret: <secret>`` or ``Authorization: Bearer <secret>``.
When it is empty the check is off (authentication proper is handled in
front of this service).

Usage:
    from signal_engine.middleware.cron_auth import require_cron_secret

    @orchestrator_bp.route("/orchestrator/run", methods=["POST"])
    @require_cron_secret
    def run_orchestrator(): ...
"""

import hmac
import logging
from functools import wraps

from flask import current_app, request

from signal_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _presented_secret() -> str:
    header = request.headers.get("X-Cron-Secret", "")
    if header:
        return header
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


def require_cron_secret(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET") or ""
        if secret and not hmac.compare_digest(_presented_secret().encode(), secret.encode()):
            logger.warning("Rejected trigger call without valid secret: %s %s",
                           request.method, request.path,
                           extra={"path": request.path, "remote_addr": request.remote_addr})
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        return fn(*args, **kwargs)
    return wrapper
