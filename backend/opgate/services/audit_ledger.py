"""Audit Ledger — correlation key -> AuditRecord for every in-flight and recent call.

Invariants:
    - A key exists from start() onward; finish() mutates it exactly once
    - start() writes one REQUEST-BEGIN line, finish() one REQUEST-END line (opgate.audit logger)
    - Only finished records are ever evicted, oldest finished first, once the
      ledger holds more than max_entries
    - Sink failures are logged, never raised into the call path
    - values and return_values are copied in: handlers mutating their payload
      or result afterwards never rewrite the audit

Design Decisions:
    - Plain dicts, no lock: start/finish contain no await, so each is atomic on the event loop
    - Sink writes scheduled as tasks: finish() stays synchronous and usable outside a loop
    - finish() on an unknown key raises KeyError — the gateway always starts first
"""

import asyncio
import json
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable

from opgate.core.audit_record import (
    AuditRecord, compute_duration, derive_correlation_key, snapshot,
)
from opgate.core.domain_types import AuditEvent, CorrelationKey
from opgate.core.errors import AuditAlreadyFinishedError
from opgate.core.repository_protocols import AuditSink

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("opgate.audit")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLedger:
    """In-memory record table plus the audit line stream."""

    def __init__(
        self,
        max_entries: int = 10_000,
        sink: AuditSink | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._records: dict[CorrelationKey, AuditRecord] = {}
        self._finished: OrderedDict[CorrelationKey, None] = OrderedDict()
        self._max_entries = max_entries
        self._sink = sink
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    def start(self, operation: str, values: dict) -> CorrelationKey:
        """Open a record for a new call and return its key."""
        begin_time = self._clock()
        key = derive_correlation_key(
            operation, values, begin_time, uuid.uuid4().hex,
        )
        while key in self._records:
            key = derive_correlation_key(
                operation, values, begin_time, uuid.uuid4().hex,
            )
        record = AuditRecord(
            correlation_key=key, operation=operation,
            values=snapshot(values), begin_time=begin_time,
        )
        self._records[key] = record
        self._emit(AuditEvent.BEGIN, record)
        return key

    def finish(self, key: CorrelationKey, return_values: Any) -> AuditRecord:
        """Close the record: end time, duration, result. Returns the record."""
        record = self._records[key]
        if record.finished:
            raise AuditAlreadyFinishedError(key)
        if isinstance(return_values, str):
            try:
                return_values = json.loads(return_values)
            except json.JSONDecodeError:
                pass
        end_time = self._clock()
        record.end_time = end_time
        record.duration = compute_duration(record.begin_time, end_time)
        record.return_values = snapshot(return_values)
        record.finished = True
        self._emit(AuditEvent.END, record)
        self._finished[key] = None
        self._evict()
        self._persist(record)
        return record

    def attach_sink(self, sink: AuditSink) -> None:
        """Persist finished records from now on (replaces any previous sink)."""
        self._sink = sink

    def get(self, key: str) -> AuditRecord | None:
        return self._records.get(CorrelationKey(key))

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    @property
    def sink(self) -> AuditSink | None:
        return self._sink

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def in_flight(self) -> int:
        return len(self._records) - len(self._finished)

    async def drain(self) -> None:
        """Wait for scheduled sink writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _emit(self, event: AuditEvent, record: AuditRecord) -> None:
        audit_logger.info(
            json.dumps(record.to_dict(), ensure_ascii=False, default=str),
            extra={
                "audit_event": event.value,
                "correlation_key": record.correlation_key,
                "operation": record.operation,
            },
        )

    def _evict(self) -> None:
        while len(self._records) > self._max_entries and self._finished:
            oldest, _ = self._finished.popitem(last=False)
            self._records.pop(oldest, None)

    def _persist(self, record: AuditRecord) -> None:
        if self._sink is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; audit record not persisted",
                extra={"correlation_key": record.correlation_key},
            )
            return
        task = loop.create_task(self._save(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self, record: AuditRecord) -> None:
        try:
            await self._sink.save(record)
        except Exception as e:
            logger.warning(
                f"Failed to persist audit record: {e}",
                extra={
                    "correlation_key": record.correlation_key,
                    "operation": record.operation,
                },
            )
