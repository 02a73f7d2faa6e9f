"""
Logging setup for the signal engine.

Worker, SLA rebuild and scheduler logs carry their context through
``extra=`` (event_id, worker_id, generation_id, job_name, ...):

- Production: one JSON object per line, context fields as top-level keys
- Development: coloured single line with the context appended as key=value
- LOG_LEVEL overrides the default level (DEBUG in dev, INFO in prod)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

SERVICE_NAME = "signal-engine"

# Request fields set by middleware/timing.py
_REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Engine context set by the worker, cache builder and scheduler
_ENGINE_FIELDS = ("project_id", "event_id", "worker_id", "job_name", "generation_id")

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "httpx", "openai", "anthropic")


def _context(record: logging.LogRecord, fields) -> dict:
    return {
        key: getattr(record, key)
        for key in fields
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON document per record, for the log shipper."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record, _REQUEST_FIELDS))
        entry.update(_context(record, _ENGINE_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Terminal output while developing: level colour, engine context, request duration."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{clock} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        ctx = _context(record, _ENGINE_FIELDS)
        if ctx:
            line += " (" + " ".join(f"{k}={v}" for k, v in ctx.items()) + ")"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single root handler with the formatter for this environment.

    Called first in ``create_app``. Test apps get the readable formatter and
    no startup line.
    """
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)

    # create_app runs many times under pytest; replace, don't stack, handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if production else "readable")
