"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in signal_engine/__init__.py with no
default limits; this module applies granular limits per route category.

Usage:
    from signal_engine.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Decision intelligence:  10/minute  (may call an LLM)
        - Trigger endpoints:      30/minute  (batch work per call)
        - Read endpoints:        200/minute
        - Health check:           exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("decision_bp")
    if bp:
        limiter.limit("10/minute")(bp)

    for bp_name in ("orchestrator_bp", "scheduler_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("30/minute")(bp)

    for bp_name in ("sla_bp", "suggestion_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("200/minute")(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — decision intel: 10/min, triggers: 30/min, read: 200/min"
    )
