"""AuditEntry ORM — persisted copy of every finished audit record.

Invariants:
    - One row per correlation key, written once when the call finishes
    - Duration stored as its three components, never as a single scalar
    - status mirrors the envelope's `status` field when the result carries one

Design Decisions:
    - Logging table, not enforcement: nothing on the request path reads it
    - JSON columns for input/output: operation payloads have no fixed shape
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String, DateTime, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from opgate.db.base import Base


class AuditEntry(Base):
    """Finished call — observability for operation usage."""
    __tablename__ = "audit_entries"

    correlation_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    operation: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    input_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    return_values: Mapped[Any] = mapped_column(JSON, nullable=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    begin_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_milliseconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
