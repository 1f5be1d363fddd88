"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging

from perfstats.logging_config import JSONFormatter, get_logger, log_context, setup_logging


def test_json_formatter_outputs_valid_json():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py",
        lineno=1, msg="hello %s", args=("world",), exc_info=None
    )
    result = formatter.format(record)
    parsed = json.loads(result)
    assert parsed["message"] == "hello world"
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test"
    assert "timestamp" in parsed


def test_json_formatter_includes_exception():
    formatter = JSONFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        import sys
        exc_info = sys.exc_info()
    record = logging.LogRecord(
        name="test", level=logging.ERROR, pathname="test.py",
        lineno=1, msg="fail", args=(), exc_info=exc_info
    )
    result = formatter.format(record)
    parsed = json.loads(result)
    assert parsed["exception"]["type"] == "ValueError"
    assert parsed["exception"]["message"] == "test error"


def test_json_formatter_includes_context_attributes():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py",
        lineno=1, msg="analysis", args=(), exc_info=None
    )
    record.ctx_athlete_id = "a-1"
    record.unrelated = "skip"
    parsed = json.loads(formatter.format(record))
    assert parsed["context"] == {"athlete_id": "a-1"}


def test_log_context_prefixes_and_drops_none():
    assert log_context(athlete_id="a-1", test_type=None) == {"ctx_athlete_id": "a-1"}


def test_service_log_record_carries_analysis_context():
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="perfstats.services.force_velocity", level=logging.INFO, pathname="fv.py",
        lineno=7, msg="profile", args=(), exc_info=None
    )
    for key, value in log_context(athlete_id="a-1", modality="sprint").items():
        setattr(record, key, value)
    parsed = json.loads(formatter.format(record))
    assert parsed["service"] == "force_velocity"
    assert parsed["context"] == {"athlete_id": "a-1", "modality": "sprint"}
    assert parsed["location"].endswith(":7")


def test_get_logger_returns_named_logger():
    log = get_logger("my.module")
    assert log.name == "my.module"
    assert isinstance(log, logging.Logger)


def test_setup_logging_idempotent():
    root = logging.getLogger()
    initial_count = len(root.handlers)
    setup_logging()
    setup_logging()
    # Should not add duplicate handlers
    assert len(root.handlers) <= initial_count + 1
