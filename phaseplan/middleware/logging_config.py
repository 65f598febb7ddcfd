"""
Logging setup for the app and the batch jobs.

Production writes one JSON object per line; development and tests get a
short colored line. Batch code attaches context through ``extra``:

    logger.info("Phase insight stored", extra={"tenant_id": 1, "phase_id": 7})

LOG_LEVEL overrides the level (default DEBUG in development, INFO otherwise).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Context keys emitted by both formatters, in this order
CONTEXT_FIELDS = ("job_name", "tenant_id", "project_id", "phase_id")
# Keys only the JSON formatter emits
EXTRA_FIELDS = ("duration_ms", "method", "path", "status", "remote_addr", "request_id")

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "httpx", "anthropic")


def _context(record, keys):
    return {k: getattr(record, k) for k in keys if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record, CONTEXT_FIELDS + EXTRA_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO  phaseplan.services.x [tenant_id=1 phase_id=7] message (12ms)``"""

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
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        ctx = _context(record, CONTEXT_FIELDS)
        ctx_str = " [" + " ".join(f"{k}={v}" for k, v in ctx.items()) + "]" if ctx else ""
        duration = getattr(record, "duration_ms", None)
        dur_str = f" ({duration:.0f}ms)" if duration is not None else ""

        line = (f"{color}{ts} {record.levelname:<7}{self.RESET} "
                f"{record.name}{ctx_str} {record.getMessage()}{dur_str}")
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # one handler, even if create_app runs twice in a process
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if production else "readable")
