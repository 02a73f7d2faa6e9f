"""
Governance Signal Engine
Flask Application Factory.

Usage:
    from signal_engine import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from signal_engine.config import config
from signal_engine.models import db
from signal_engine.core.exceptions import NotFoundError, PersistenceError, ValidationError
from signal_engine.middleware.logging_config import configure_logging
from signal_engine.middleware.timing import init_request_timing
from signal_engine.middleware.rate_limiter import init_rate_limits
from signal_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") \
            and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from signal_engine.models import events as _event_models            # noqa: F401
    from signal_engine.models import suggestions as _suggestion_models  # noqa: F401
    from signal_engine.models import sla as _sla_models                 # noqa: F401
    from signal_engine.models import decisions as _decision_models      # noqa: F401
    from signal_engine.models import scheduling as _scheduling_models   # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from signal_engine.blueprints.health_bp import health_bp
    from signal_engine.blueprints.orchestrator_bp import orchestrator_bp
    from signal_engine.blueprints.sla_bp import sla_bp
    from signal_engine.blueprints.decision_bp import decision_bp
    from signal_engine.blueprints.suggestion_bp import suggestion_bp
    from signal_engine.blueprints.scheduler_bp import scheduler_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(orchestrator_bp)
    app.register_blueprint(sla_bp)
    app.register_blueprint(decision_bp)
    app.register_blueprint(suggestion_bp)
    app.register_blueprint(scheduler_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-orchestrator")
    @click.option("--limit", default=None, type=int, help="Events per batch (1-50).")
    @click.option("--dry-run", is_flag=True, help="Route only; write nothing.")
    def run_orchestrator_cmd(limit, dry_run):
        """Process one batch of unprocessed artifact events."""
        from signal_engine.services.orchestrator import run_batch
        result = run_batch(limit if limit is not None else app.config["ORCHESTRATOR_DEFAULT_LIMIT"],
                           dry_run=dry_run)
        click.echo(result.to_dict())

    @app.cli.command("rebuild-sla-cache")
    def rebuild_sla_cache_cmd():
        """Rebuild the approval SLA cache and bottleneck tables."""
        from signal_engine.services.sla_cache_builder import rebuild_cache
        click.echo(rebuild_cache())

    @app.cli.command("generate-decision-intel")
    @click.option("--no-ai", is_flag=True, help="Rule-based analysis only.")
    def generate_decision_intel_cmd(no_ai):
        """Refresh decision intelligence snapshots for all active projects."""
        from signal_engine.services.decision_intelligence_service import generate_for_active_projects
        click.echo(generate_for_active_projects(use_ai=not no_ai))

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run one registered scheduled job and record the run."""
        from signal_engine.services.scheduler_service import SchedulerService
        SchedulerService.ensure_jobs_registered()
        click.echo(SchedulerService.run_job(job_name))

    # ── Health check (kept short — detailed version at /health/live) ─────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Governance Signal Engine"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return api_error(E.VALIDATION_RULE, str(e), details=e.details)

    @app.errorhandler(PersistenceError)
    def handle_persistence(e):
        logger.error("Persistence failure on %s: %s", request.path, e)
        return api_error(E.DATABASE, str(e))

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    import importlib
    importlib.import_module("signal_engine.services.scheduled_jobs")  # registers @register_job handlers
    from signal_engine.services.scheduler_service import SchedulerService as _SchedulerSvc
    _SchedulerSvc.init_app(app)
    try:
        _SchedulerSvc.ensure_jobs_registered()
    except Exception as e:
        app.logger.warning("Scheduled job registration failed: %s", e)

    return app
