"""
Governance Signal Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'signal_engine_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # Redis (rate-limit storage)
    REDIS_URL = os.getenv("REDIS_URL", "")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Shared secret for trigger endpoints (empty = check disabled)
    CRON_SECRET = os.getenv("CRON_SECRET", "")

    # Orchestrator worker
    ORCHESTRATOR_DEFAULT_LIMIT = _env_int("ORCHESTRATOR_DEFAULT_LIMIT", 10)
    ORCHESTRATOR_MAX_LIMIT = _env_int("ORCHESTRATOR_MAX_LIMIT", 50)
    ORCHESTRATOR_MAX_ATTEMPTS = _env_int("ORCHESTRATOR_MAX_ATTEMPTS", 5)
    ORCHESTRATOR_CLAIM_LEASE_SECONDS = _env_int("ORCHESTRATOR_CLAIM_LEASE_SECONDS", 300)
    ORCHESTRATOR_TIME_BUDGET_SECONDS = _env_int("ORCHESTRATOR_TIME_BUDGET_SECONDS", 50)

    # SLA cache
    SLA_CACHE_CHUNK_SIZE = _env_int("SLA_CACHE_CHUNK_SIZE", 500)
    SLA_RISK_WINDOW_DAYS = _env_int("SLA_RISK_WINDOW_DAYS", 7)

    # Suggestion SLA escalation
    SUGGESTION_SLA_DAYS = _env_int("SUGGESTION_SLA_DAYS", 7)

    # Generative decision intelligence (optional)
    DECISION_INTEL_MODEL = os.getenv("DECISION_INTEL_MODEL", "gpt-4o-mini")
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    RATELIMIT_ENABLED = False
    CRON_SECRET = ""
    OPENAI_API_KEY = ""
    ANTHROPIC_API_KEY = ""


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
