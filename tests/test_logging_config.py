"""Tests: log formatters carry engine context fields."""

import json
import logging

from signal_engine.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord("signal_engine.services.orchestrator", logging.INFO,
                               __file__, 10, "Event #%d processed", (7,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_promotes_context_fields():
    entry = json.loads(JSONFormatter().format(_record(event_id=7, worker_id="h:1:ab", path="/x")))
    assert entry["service"] == "signal-engine"
    assert entry["msg"] == "Event #7 processed"
    assert entry["event_id"] == 7
    assert entry["worker_id"] == "h:1:ab"
    assert entry["path"] == "/x"
    assert "generation_id" not in entry


def test_readable_formatter_appends_context():
    line = ReadableFormatter().format(_record(job_name="sla_cache_rebuild", duration_ms=12.4))
    assert "Event #7 processed" in line
    assert "(job_name=sla_cache_rebuild)" in line
    assert line.endswith("[12ms]")
