"""Appointment schemas for records and request/response validation."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clinic_scheduler.schemas.actors import ActorClass


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW, AppointmentStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.AWAITING_CONFIRMATION,
        AppointmentStatus.CONFIRMED,
    }
)


class AppointmentKind(str, Enum):
    """How the appointment is paid for."""

    SELF_PAY = "self_pay"
    INSURANCE = "insurance"


class HistoryEvent(str, Enum):
    """What produced a status history entry."""

    STATUS_CHANGE = "status_change"
    RESCHEDULE = "reschedule"
    REASSIGNMENT = "reassignment"


class ConfirmationMethod(str, Enum):
    """Channel through which an appointment was confirmed."""

    SYSTEM = "system"
    PATIENT_RESPONSE = "patient_response"
    WAITLIST = "waitlist"


class InsuranceDetails(BaseModel):
    """Insurer plan reference and optional card metadata."""

    model_config = ConfigDict(frozen=True)

    insurer_id: UUID
    insurer_name: str = Field(..., min_length=1, max_length=200)
    plan_name: str | None = Field(None, max_length=200)
    card_number: str | None = Field(None, max_length=50)


class StatusHistoryEntry(BaseModel):
    """One append-only entry of an appointment's status history."""

    model_config = ConfigDict(frozen=True)

    status: AppointmentStatus
    changed_at: datetime
    changed_by: str
    reason: str | None = None
    event: HistoryEvent = HistoryEvent.STATUS_CHANGE


class CancellationInfo(BaseModel):
    """Present only while the appointment is cancelled."""

    model_config = ConfigDict(frozen=True)

    cancelled_at: datetime
    cancelled_by: str
    actor_class: ActorClass
    reason: str | None = None


class Appointment(BaseModel):
    """Immutable appointment record."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    clinic_id: UUID
    doctor_id: UUID
    patient_id: UUID
    booked_by: str
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    kind: AppointmentKind
    insurance: InsuranceDetails | None = None
    notes: str | None = None
    status: AppointmentStatus
    status_history: tuple[StatusHistoryEntry, ...]
    cancellation: CancellationInfo | None = None
    confirmed_at: datetime | None = None
    confirmation_method: ConfirmationMethod | None = None
    confirmation_requested_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int = Field(..., ge=1)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open interval overlap with [start, end)."""
        return self.start_at < end and start < self.end_at


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    clinic_id: UUID
    doctor_id: UUID
    patient_id: UUID
    start_at: datetime
    duration_minutes: int
    kind: AppointmentKind = AppointmentKind.SELF_PAY
    insurance: InsuranceDetails | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("start_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Require timezone-aware instants."""
        if v.tzinfo is None:
            raise ValueError("start_at must include a timezone offset")
        return v

    @model_validator(mode="after")
    def validate_insurance(self) -> "AppointmentCreate":
        """Insurance details go with insurance appointments only."""
        if self.kind == AppointmentKind.INSURANCE and self.insurance is None:
            raise ValueError("Insurance appointments require insurance details")
        if self.kind == AppointmentKind.SELF_PAY and self.insurance is not None:
            raise ValueError("Self-pay appointments cannot carry insurance details")
        return self


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus
    reason: str | None = Field(None, max_length=1000)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment."""

    start_at: datetime
    duration_minutes: int | None = None
    reason: str | None = Field(None, max_length=1000)

    @field_validator("start_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        """Require timezone-aware instants."""
        if v.tzinfo is None:
            raise ValueError("start_at must include a timezone offset")
        return v


class ConfirmationResponse(str, Enum):
    """Patient answer to a confirmation request."""

    CONFIRM = "confirm"
    CANCEL = "cancel"


class ConfirmationResponseRequest(BaseModel):
    """Schema for a patient's confirmation answer."""

    response: ConfirmationResponse


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""

    total: int
    items: list[Appointment]


class SweepResult(BaseModel):
    """Number of records a sweep changed."""

    processed: int
