"""SQL Audit Sink — persists finished audit records to the audit_entries table.

Invariants:
    - Implements core.repository_protocols.AuditSink
    - Values are normalized through JSON (default=str) before hitting JSON columns
    - Errors surface as DatabaseError; the ledger logs and drops them

Design Decisions:
    - One short session per record: sink writes run as background tasks, never
      share a session with anything else
"""

import json
import logging
from typing import Any

from opgate.core.audit_record import AuditRecord, canonical_json
from opgate.infrastructure.database import DatabaseSessionManager
from opgate.models.audit_entry import AuditEntry

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(canonical_json(value))


def _status_of(return_values: Any) -> str | None:
    if isinstance(return_values, dict):
        status = return_values.get("status")
        return str(status) if status is not None else None
    return None


class SqlAuditSink:
    """AuditSink backed by DatabaseSessionManager."""

    def __init__(self, manager: DatabaseSessionManager):
        self._manager = manager

    async def save(self, record: AuditRecord) -> None:
        duration = record.duration
        entry = AuditEntry(
            correlation_key=record.correlation_key,
            operation=record.operation,
            input_values=_jsonable(record.values),
            return_values=_jsonable(record.return_values),
            status=_status_of(record.return_values),
            begin_time=record.begin_time,
            end_time=record.end_time,
            duration_minutes=duration.minutes if duration else 0,
            duration_seconds=duration.seconds if duration else 0,
            duration_milliseconds=duration.milliseconds if duration else 0,
        )
        async with self._manager.session() as db:
            db.add(entry)
            await db.commit()
        logger.debug(
            "Audit record persisted",
            extra={"correlation_key": record.correlation_key, "operation": record.operation},
        )
