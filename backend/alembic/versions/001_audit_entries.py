"""Audit entries — persisted copy of finished calls.

Revision ID: 001_audit_entries
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_audit_entries"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "audit_entries",
        sa.Column("correlation_key", sa.String(64), primary_key=True),
        sa.Column("operation", sa.String(200), nullable=False),
        sa.Column("input_values", sa.JSON, nullable=True),
        sa.Column("return_values", sa.JSON, nullable=True),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("begin_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("duration_seconds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("duration_milliseconds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_entries_operation", "audit_entries", ["operation"])


def downgrade() -> None:
    op.drop_index("ix_audit_entries_operation", table_name="audit_entries")
    op.drop_table("audit_entries")
