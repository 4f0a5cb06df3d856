"""
Structured logging configuration.

- Development: one colored line per record, domain scope appended
- Production: one JSON object per record (log aggregator compatible)
- Level: ``LOG_LEVEL`` app config / env variable
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Request fields set by the timing middleware
_REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Domain fields services attach through ``logger.info(..., extra={...})``.
# The short label is used by the readable formatter.
_SCOPE_FIELDS = (
    ("strategy_id", "strategy"),
    ("pillar_type", "pillar"),
    ("phase", "phase"),
    ("signal_id", "signal"),
    ("decision_id", "decision"),
    ("mission_id", "mission"),
    ("widget_id", "widget"),
    ("trigger", "trigger"),
)


def _scope(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key, _ in _SCOPE_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "event_type": getattr(record, "event_type", None),
        }
        for key in _REQUEST_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        entry.update(_scope(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
            entry["location"] = f"{record.module}.{record.funcName}:{record.lineno}"
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[2m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        labels = dict(_SCOPE_FIELDS)
        scope = " ".join(f"{labels[k]}={v}" for k, v in _scope(record).items())
        if scope:
            line += f" {self.DIM}[{scope}]{self.RESET}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    Production (neither DEBUG nor TESTING) logs JSON at INFO by default;
    development and testing log readable lines at DEBUG.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test session; avoid stacking handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "httpx", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if is_prod else "readable")
