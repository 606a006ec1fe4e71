"""Waitlist schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WaitlistStatus(str, Enum):
    """Waitlist entry status enumeration."""

    WAITING = "waiting"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (WaitlistStatus.ACCEPTED, WaitlistStatus.EXPIRED)


class OfferResponse(str, Enum):
    """Answer to a waitlist offer."""

    ACCEPT = "accept"
    DECLINE = "decline"


class DateRange(BaseModel):
    """Inclusive calendar date range."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class WaitlistEntry(BaseModel):
    """Immutable waitlist entry record."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    clinic_id: UUID
    patient_id: UUID
    specialty: str
    preferred_doctor_id: UUID | None = None
    preferred_date_range: DateRange
    status: WaitlistStatus
    offered_appointment_id: UUID | None = None
    offered_at: datetime | None = None
    offer_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int = Field(..., ge=1)


class WaitlistJoin(BaseModel):
    """Schema for joining the waitlist."""

    clinic_id: UUID
    patient_id: UUID
    specialty: str = Field(..., min_length=1, max_length=200)
    preferred_doctor_id: UUID | None = None
    preferred_date_range: DateRange


class OfferResponseRequest(BaseModel):
    """Schema for answering a waitlist offer."""

    response: OfferResponse


class WaitlistListResponse(BaseModel):
    """Schema for waitlist list response."""

    total: int
    items: list[WaitlistEntry]
