"""Structured logging for analysis runs.

Service modules attach the athlete, test type or session under analysis with
``extra=log_context(...)``; the JSON formatter lifts those values into a
``context`` object so one analysis can be followed across services.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

CONTEXT_PREFIX = "ctx_"

# numexpr is loaded by pandas and logs its thread setup at INFO
_QUIET_LOGGERS = ("numexpr", "numexpr.utils")


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra`` mapping for a log call; None values are left out."""
    return {f"{CONTEXT_PREFIX}{name}": value for name, value in fields.items() if value is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record: level, source, message and analysis context."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": record.name.rsplit(".", 1)[-1],
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        context = {
            key[len(CONTEXT_PREFIX):]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            entry["context"] = context
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Install one stdout handler on the root logger; later calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
