"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - Persistence of audit records accessed through AuditSink only
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async in Protocol: implementations do IO; the ledger itself stays synchronous
      and schedules the sink call on the running loop
"""

from typing import Protocol

from opgate.core.audit_record import AuditRecord


class AuditSink(Protocol):
    """Contract for persisting finished audit records — implemented by shell."""
    async def save(self, record: AuditRecord) -> None: ...
