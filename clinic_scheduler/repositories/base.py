"""Persistence ports consumed by the scheduling services.

Implementations: PostgresStorage (SQLAlchemy Core), MemoryStorage.

Every write of a versioned record passes the version it was read at; a
mismatch raises StaleVersionError and the caller retries with a fresh read.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from clinic_scheduler.schemas.appointments import Appointment
from clinic_scheduler.schemas.audit import AuditLogEntry
from clinic_scheduler.schemas.doctors import Doctor
from clinic_scheduler.schemas.notifications import NotificationIntent
from clinic_scheduler.schemas.waitlist import WaitlistEntry, WaitlistStatus


@runtime_checkable
class AppointmentRepository(Protocol):
    """Appointment records. Never deletes."""

    async def get(self, appointment_id: UUID) -> Appointment | None: ...

    async def add(self, appointment: Appointment) -> None: ...

    async def replace(self, appointment: Appointment, expected_version: int) -> None:
        """Overwrite the stored record if it is still at expected_version."""
        ...

    async def find_overlapping(
        self,
        doctor_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]:
        """Active appointments of the doctor intersecting [start, end)."""
        ...

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        doctor_id: UUID | None = None,
        patient_id: UUID | None = None,
        clinic_id: UUID | None = None,
    ) -> list[Appointment]:
        """Appointments of any status intersecting [start, end), ordered by start."""
        ...

    async def list_confirmation_requested(self) -> list[Appointment]:
        """Scheduled appointments with an outstanding confirmation request."""
        ...


@runtime_checkable
class WaitlistRepository(Protocol):
    """Waitlist entries."""

    async def get(self, entry_id: UUID) -> WaitlistEntry | None: ...

    async def add(self, entry: WaitlistEntry) -> None: ...

    async def replace(self, entry: WaitlistEntry, expected_version: int) -> None: ...

    async def delete(self, entry_id: UUID, expected_version: int) -> None: ...

    async def list_by_clinic(
        self,
        clinic_id: UUID,
        status: WaitlistStatus | None = None,
    ) -> list[WaitlistEntry]:
        """Entries ordered by (created_at, id)."""
        ...

    async def find_offer_for_appointment(self, appointment_id: UUID) -> WaitlistEntry | None:
        """The entry currently holding an offer for the appointment, if any."""
        ...

    async def list_expired_offers(self, now: datetime) -> list[WaitlistEntry]:
        """Offered entries whose offer_expires_at <= now, oldest expiry first."""
        ...


@runtime_checkable
class AuditLogRepository(Protocol):
    """Append-only audit log."""

    async def add(self, entry: AuditLogEntry) -> None: ...

    async def list_entries(
        self,
        clinic_id: UUID,
        entity_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]: ...


@runtime_checkable
class DoctorRepository(Protocol):
    """Doctor roster."""

    async def get(self, doctor_id: UUID) -> Doctor | None: ...

    async def add(self, doctor: Doctor) -> None: ...

    async def list_by_clinic(self, clinic_id: UUID) -> list[Doctor]: ...


@runtime_checkable
class NotificationIntentRepository(Protocol):
    """Notification outbox."""

    async def get(self, intent_id: UUID) -> NotificationIntent | None: ...

    async def add(self, intent: NotificationIntent) -> None: ...

    async def replace(self, intent: NotificationIntent) -> None: ...

    async def list_pending(self, clinic_id: UUID, limit: int = 100) -> list[NotificationIntent]: ...


@runtime_checkable
class Storage(Protocol):
    """Bundle of repositories sharing one transactional scope."""

    appointments: AppointmentRepository
    waitlist: WaitlistRepository
    audit_logs: AuditLogRepository
    doctors: DoctorRepository
    notifications: NotificationIntentRepository

    def atomic(self, *keys: str) -> AbstractAsyncContextManager[None]:
        """
        Run a unit of work serialized against other units holding the same keys.

        Nested calls join the outer unit. Everything written inside is committed
        on normal exit and discarded when an exception escapes.
        """
        ...


def doctor_schedule_key(doctor_id: UUID) -> str:
    return f"doctor-schedule:{doctor_id}"


def waitlist_entry_key(entry_id: UUID) -> str:
    return f"waitlist-entry:{entry_id}"


def freed_slot_key(appointment_id: UUID) -> str:
    return f"freed-slot:{appointment_id}"
