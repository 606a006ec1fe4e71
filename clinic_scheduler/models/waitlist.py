"""Waitlist table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    Index,
    Integer,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from clinic_scheduler.models.appointments import metadata

waitlist_entries = Table(
    "waitlist_entries",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("patient_id", UUID(as_uuid=True), nullable=False),
    # Matching criteria
    Column("specialty", Text, nullable=False),
    Column("preferred_doctor_id", UUID(as_uuid=True), nullable=True),
    Column("preferred_start_date", Date, nullable=False),
    Column("preferred_end_date", Date, nullable=False),
    # Offer lifecycle
    Column("status", Text, nullable=False, server_default="waiting"),
    Column("offered_appointment_id", UUID(as_uuid=True), nullable=True),
    Column("offered_at", TIMESTAMP(timezone=True), nullable=True),
    Column("offer_expires_at", TIMESTAMP(timezone=True), nullable=True),
    # FIFO key, never updated
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("version", Integer, nullable=False, server_default=text("1")),
    CheckConstraint(
        "status IN ('waiting', 'offered', 'accepted', 'expired')",
        name="waitlist_entries_status_check",
    ),
    CheckConstraint(
        "preferred_end_date >= preferred_start_date",
        name="waitlist_entries_range_check",
    ),
    Index("ix_waitlist_entries_clinic_status_created", "clinic_id", "status", "created_at"),
    Index("ix_waitlist_entries_offer_expires_at", "offer_expires_at"),
    # One live offer per freed appointment
    Index(
        "uq_waitlist_entries_live_offer",
        "offered_appointment_id",
        unique=True,
        postgresql_where=text("status = 'offered'"),
    ),
)
