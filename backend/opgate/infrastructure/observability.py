"""Structured Logging — JSON formatter, setup, and the audit line stream.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (operation, correlation_key, error_code, audit_event) surfaced when present
    - JSON format in production, human-readable in development
    - Audit stream: one line per event, "[timestamp] [REQUEST-BEGIN|REQUEST-END] {record}"
    - setup functions are idempotent: calling twice never duplicates handlers

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - Audit stream is the "opgate.audit" logger: file appends when audit_log_path is set,
      otherwise it flows to the root handlers like any other log
    - debug_mode echoes audit lines to stderr even when they go to a file
"""

import logging
import json
from datetime import datetime, timezone

AUDIT_LOGGER_NAME = "opgate.audit"
_EXTRA_FIELDS = (
    "operation", "correlation_key", "error_code", "audit_event", "path",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


class AuditLineFormatter(logging.Formatter):
    """One audit event per line, event tag in place of the level."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).isoformat(
            timespec="milliseconds",
        )
        event = record.__dict__.get("audit_event") or record.levelname
        return f"[{stamp}] [{event}] {record.getMessage()}"


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure logging for the application."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    for existing in list(logging.root.handlers):
        if getattr(existing, "_opgate", False):
            logging.root.removeHandler(existing)
    handler._opgate = True
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))


def setup_audit_log(path: str | None = None, echo: bool = False) -> logging.Logger:
    """Route the audit stream to an append-only file (and stderr when echo)."""
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    for existing in list(audit.handlers):
        audit.removeHandler(existing)
        existing.close()
    audit.setLevel(logging.INFO)
    if path:
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(AuditLineFormatter())
        audit.addHandler(file_handler)
        audit.propagate = False
        if echo:
            console = logging.StreamHandler()
            console.setFormatter(AuditLineFormatter())
            audit.addHandler(console)
    else:
        audit.propagate = True
    return audit
