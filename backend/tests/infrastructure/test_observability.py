"""Observability — JSON log format and the append-only audit file."""

import json
import logging
import re

import pytest

from opgate.infrastructure.observability import (
    AUDIT_LOGGER_NAME, JSONFormatter, setup_audit_log, setup_logging,
)
from opgate.services.audit_ledger import AuditLedger


@pytest.fixture
def audit_file(tmp_path):
    path = tmp_path / "audit.log"
    setup_audit_log(str(path))
    yield path
    setup_audit_log(None)


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("opgate.test", logging.WARNING, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


def test_json_formatter_surfaces_extra_fields():
    line = JSONFormatter().format(
        _record("Validation failed", operation="createUser", correlation_key="k1"),
    )
    payload = json.loads(line)
    assert payload["level"] == "WARNING"
    assert payload["message"] == "Validation failed"
    assert payload["operation"] == "createUser"
    assert payload["correlation_key"] == "k1"
    assert "error_code" not in payload


def test_setup_logging_is_idempotent():
    before = len(logging.root.handlers)
    setup_logging("INFO", "json")
    setup_logging("DEBUG", "text")
    marked = [h for h in logging.root.handlers if getattr(h, "_opgate", False)]
    assert len(marked) == 1
    assert len(logging.root.handlers) <= before + 1


def test_audit_lines_appended_to_file(audit_file):
    ledger = AuditLedger()
    key = ledger.start("createUser", {"email": "ada@example.com"})
    ledger.finish(key, {"status": "OK"})
    for handler in logging.getLogger(AUDIT_LOGGER_NAME).handlers:
        handler.flush()

    lines = audit_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert "[REQUEST-BEGIN]" in lines[0]
    assert "[REQUEST-END]" in lines[1]
    end = json.loads(lines[1].split("] ", 2)[2])
    assert end["requestKey"] == key
    assert end["function"] == "createUser"
    assert end["returnValues"] == {"status": "OK"}
    assert re.fullmatch(r"\d+m\d+s\d+ms", end["duration"])


def test_audit_file_stops_propagation(audit_file):
    assert logging.getLogger(AUDIT_LOGGER_NAME).propagate is False


def test_audit_without_path_propagates():
    audit = setup_audit_log(None)
    assert audit.propagate is True
    assert audit.handlers == []
