"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID, ExcludeConstraint

# Metadata for all tables
metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    # Ownership / references
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("doctor_id", UUID(as_uuid=True), nullable=False),
    Column("patient_id", UUID(as_uuid=True), nullable=False),
    Column("booked_by", Text, nullable=False),
    # Slot
    Column("start_at", TIMESTAMP(timezone=True), nullable=False),
    Column("end_at", TIMESTAMP(timezone=True), nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    # Billing
    Column("kind", Text, nullable=False, server_default="self_pay"),
    Column("insurance", JSONB, nullable=True),
    Column("notes", Text, nullable=True),
    # Status management
    Column(
        "status",
        Text,
        nullable=False,
        server_default="scheduled",
    ),
    Column("status_history", JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    Column("cancellation", JSONB, nullable=True),
    Column("confirmed_at", TIMESTAMP(timezone=True), nullable=True),
    Column("confirmation_method", Text, nullable=True),
    Column("confirmation_requested_at", TIMESTAMP(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Optimistic concurrency
    Column("version", Integer, nullable=False, server_default=text("1")),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'awaiting_confirmation', 'confirmed', "
        "'completed', 'no_show', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint("kind IN ('self_pay', 'insurance')", name="appointments_kind_check"),
    CheckConstraint("end_at > start_at", name="appointments_interval_check"),
    CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
    Index("ix_appointments_doctor_start", "doctor_id", "start_at"),
    Index("ix_appointments_patient_id", "patient_id"),
    Index("ix_appointments_clinic_start", "clinic_id", "start_at"),
    Index("ix_appointments_status", "status"),
)

# Active appointments of a doctor never intersect on [start_at, end_at)
appointments.append_constraint(
    ExcludeConstraint(
        (appointments.c.doctor_id, "="),
        (func.tstzrange(appointments.c.start_at, appointments.c.end_at, "[)"), "&&"),
        name="appointments_no_overlap",
        using="gist",
        where=text("status IN ('scheduled', 'awaiting_confirmation', 'confirmed')"),
    )
)
