"""Notification intent schemas.

The scheduler never sends messages; it records what should be sent and an
external messaging collaborator picks the intents up.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class IntentType(str, Enum):
    """Kind of message the messaging collaborator should send."""

    CONFIRMATION_REQUEST = "confirmation_request"
    WAITLIST_OFFER = "waitlist_offer"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"


class IntentStatus(str, Enum):
    """Delivery hand-off status."""

    PENDING = "pending"
    DISPATCHED = "dispatched"


class NotificationIntent(BaseModel):
    """Outbox record of a message to send."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    appointment_id: UUID
    waitlist_entry_id: UUID | None = None
    intent_type: IntentType
    payload: dict[str, Any]
    status: IntentStatus = IntentStatus.PENDING
    created_at: datetime
    dispatched_at: datetime | None = None


class NotificationIntentListResponse(BaseModel):
    """Schema for intent list response."""

    total: int
    items: list[NotificationIntent]
