"""Audit log table using SQLAlchemy Core."""

from sqlalchemy import Column, Index, Table, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from clinic_scheduler.models.appointments import metadata

audit_logs = Table(
    "audit_logs",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("actor_id", Text, nullable=False),
    Column("action", Text, nullable=False),
    Column("entity_type", Text, nullable=False),
    Column("entity_id", UUID(as_uuid=True), nullable=False),
    Column("before", JSONB, nullable=True),
    Column("after", JSONB, nullable=True),
    Column("timestamp", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Index("ix_audit_logs_clinic_timestamp", "clinic_id", "timestamp"),
    Index("ix_audit_logs_entity_id", "entity_id"),
)
