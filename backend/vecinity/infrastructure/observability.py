"""Structured Logging — JSON and text formatters for the gateway's log stream.

Invariants:
    - Every line carries timestamp, level, logger name and message
    - Request/process fields (client_ip, path, status_code, ...) appear only
      when the record carries them, in both formats
    - setup_logging is idempotent: re-running replaces the handler it installed
    - uvicorn's own access logger stays quiet; access lines come from
      vecinity.access

Design Decisions:
    - json for production log shippers, text for local runs (LOG_FORMAT)
"""

import json
import logging
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "client_ip", "path", "status_code", "duration_ms", "error_code", "state",
)
QUIET_LOGGERS = ("uvicorn.access",)
_HANDLER_NAME = "vecinity"


def extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: record.__dict__[key]
        for key in EXTRA_FIELDS
        if record.__dict__.get(key) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **extra_fields(record),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable line with extras appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = extra_fields(record)
        if not extras:
            return line
        head, sep, trace = line.partition("\n")
        pairs = " ".join(f"{key}={value}" for key, value in extras.items())
        return f"{head} [{pairs}]{sep}{trace}"


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the gateway handler on the root logger."""
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
