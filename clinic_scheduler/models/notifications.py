"""Notification intent outbox table."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    String,
    Table,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from clinic_scheduler.models.appointments import metadata

notification_intents = Table(
    "notification_intents",
    metadata,
    Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("clinic_id", UUID(as_uuid=True), nullable=False),
    Column("patient_id", UUID(as_uuid=True), nullable=False),
    Column("appointment_id", UUID(as_uuid=True), nullable=False),
    Column("waitlist_entry_id", UUID(as_uuid=True), nullable=True),
    Column("intent_type", String(50), nullable=False),
    Column("payload", JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("dispatched_at", TIMESTAMP(timezone=True), nullable=True),
    CheckConstraint(
        "intent_type IN ('confirmation_request', 'waitlist_offer', "
        "'appointment_cancelled', 'appointment_confirmed')",
        name="notification_intents_type_check",
    ),
    CheckConstraint(
        "status IN ('pending', 'dispatched')",
        name="notification_intents_status_check",
    ),
    Index("idx_notification_intents_clinic_status", "clinic_id", "status"),
    Index("idx_notification_intents_created_at", "created_at"),
)
