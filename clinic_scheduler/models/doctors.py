"""Doctor roster table using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    Index,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from clinic_scheduler.models.appointments import metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")),
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("name", Text, nullable=False),
    Column("specialties", JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    Column("active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Index("ix_doctors_clinic_id", "clinic_id"),
)
