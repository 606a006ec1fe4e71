"""In-process storage.

Backs the test suite and single-process deployments (STORAGE_BACKEND=memory).
Records are immutable, so a unit of work snapshots the row dictionaries and
restores them when it fails.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from clinic_scheduler.core.exceptions import StaleVersionError
from clinic_scheduler.schemas.appointments import Appointment, AppointmentStatus
from clinic_scheduler.schemas.audit import AuditLogEntry
from clinic_scheduler.schemas.doctors import Doctor
from clinic_scheduler.schemas.notifications import IntentStatus, NotificationIntent
from clinic_scheduler.schemas.waitlist import WaitlistEntry, WaitlistStatus


class MemoryAppointmentRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Appointment] = {}

    async def get(self, appointment_id: UUID) -> Appointment | None:
        return self.rows.get(appointment_id)

    async def add(self, appointment: Appointment) -> None:
        if appointment.id in self.rows:
            raise ValueError(f"Appointment {appointment.id} already exists")
        self.rows[appointment.id] = appointment

    async def replace(self, appointment: Appointment, expected_version: int) -> None:
        current = self.rows.get(appointment.id)
        if current is None or current.version != expected_version:
            raise StaleVersionError(appointment.id, expected_version)
        self.rows[appointment.id] = appointment

    async def find_overlapping(
        self,
        doctor_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]:
        return sorted(
            (
                a
                for a in self.rows.values()
                if a.doctor_id == doctor_id
                and a.is_active
                and a.id != exclude_id
                and a.overlaps(start, end)
            ),
            key=lambda a: a.start_at,
        )

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        doctor_id: UUID | None = None,
        patient_id: UUID | None = None,
        clinic_id: UUID | None = None,
    ) -> list[Appointment]:
        matches = [
            a
            for a in self.rows.values()
            if a.overlaps(start, end)
            and (doctor_id is None or a.doctor_id == doctor_id)
            and (patient_id is None or a.patient_id == patient_id)
            and (clinic_id is None or a.clinic_id == clinic_id)
        ]
        return sorted(matches, key=lambda a: (a.start_at, str(a.id)))

    async def list_confirmation_requested(self) -> list[Appointment]:
        return sorted(
            (
                a
                for a in self.rows.values()
                if a.status == AppointmentStatus.SCHEDULED
                and a.confirmation_requested_at is not None
            ),
            key=lambda a: a.start_at,
        )


class MemoryWaitlistRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, WaitlistEntry] = {}

    async def get(self, entry_id: UUID) -> WaitlistEntry | None:
        return self.rows.get(entry_id)

    async def add(self, entry: WaitlistEntry) -> None:
        if entry.id in self.rows:
            raise ValueError(f"Waitlist entry {entry.id} already exists")
        self.rows[entry.id] = entry

    async def replace(self, entry: WaitlistEntry, expected_version: int) -> None:
        current = self.rows.get(entry.id)
        if current is None or current.version != expected_version:
            raise StaleVersionError(entry.id, expected_version)
        if entry.status == WaitlistStatus.OFFERED:
            holder = await self.find_offer_for_appointment(entry.offered_appointment_id)
            if holder is not None and holder.id != entry.id:
                raise StaleVersionError(entry.id, expected_version)
        self.rows[entry.id] = entry

    async def delete(self, entry_id: UUID, expected_version: int) -> None:
        current = self.rows.get(entry_id)
        if current is None or current.version != expected_version:
            raise StaleVersionError(entry_id, expected_version)
        del self.rows[entry_id]

    async def list_by_clinic(
        self,
        clinic_id: UUID,
        status: WaitlistStatus | None = None,
    ) -> list[WaitlistEntry]:
        matches = [
            e
            for e in self.rows.values()
            if e.clinic_id == clinic_id and (status is None or e.status == status)
        ]
        return sorted(matches, key=lambda e: (e.created_at, str(e.id)))

    async def find_offer_for_appointment(self, appointment_id: UUID) -> WaitlistEntry | None:
        for entry in self.rows.values():
            if (
                entry.status == WaitlistStatus.OFFERED
                and entry.offered_appointment_id == appointment_id
            ):
                return entry
        return None

    async def list_expired_offers(self, now: datetime) -> list[WaitlistEntry]:
        expired = [
            e
            for e in self.rows.values()
            if e.status == WaitlistStatus.OFFERED
            and e.offer_expires_at is not None
            and e.offer_expires_at <= now
        ]
        return sorted(expired, key=lambda e: (e.offer_expires_at, str(e.id)))


class MemoryAuditLogRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, AuditLogEntry] = {}

    async def add(self, entry: AuditLogEntry) -> None:
        self.rows[entry.id] = entry

    async def list_entries(
        self,
        clinic_id: UUID,
        entity_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        matches = [
            e
            for e in self.rows.values()
            if e.clinic_id == clinic_id and (entity_id is None or e.entity_id == entity_id)
        ]
        # dicts keep insertion order, which is the recording order
        return list(reversed(matches))[:limit]


class MemoryDoctorRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Doctor] = {}

    async def get(self, doctor_id: UUID) -> Doctor | None:
        return self.rows.get(doctor_id)

    async def add(self, doctor: Doctor) -> None:
        self.rows[doctor.id] = doctor

    async def list_by_clinic(self, clinic_id: UUID) -> list[Doctor]:
        return sorted(
            (d for d in self.rows.values() if d.clinic_id == clinic_id),
            key=lambda d: d.name,
        )


class MemoryNotificationIntentRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, NotificationIntent] = {}

    async def get(self, intent_id: UUID) -> NotificationIntent | None:
        return self.rows.get(intent_id)

    async def add(self, intent: NotificationIntent) -> None:
        self.rows[intent.id] = intent

    async def replace(self, intent: NotificationIntent) -> None:
        self.rows[intent.id] = intent

    async def list_pending(self, clinic_id: UUID, limit: int = 100) -> list[NotificationIntent]:
        pending = [
            i
            for i in self.rows.values()
            if i.clinic_id == clinic_id and i.status == IntentStatus.PENDING
        ]
        return pending[:limit]


class MemoryStorage:
    """All repositories behind one re-entrant lock."""

    def __init__(self) -> None:
        self.appointments = MemoryAppointmentRepository()
        self.waitlist = MemoryWaitlistRepository()
        self.audit_logs = MemoryAuditLogRepository()
        self.doctors = MemoryDoctorRepository()
        self.notifications = MemoryNotificationIntentRepository()
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None
        self._depth = 0

    def _repositories(self) -> list:
        return [
            self.appointments,
            self.waitlist,
            self.audit_logs,
            self.doctors,
            self.notifications,
        ]

    @asynccontextmanager
    async def atomic(self, *keys: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if self._owner is task and self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        async with self._lock:
            self._owner = task
            self._depth = 1
            snapshot = [dict(repo.rows) for repo in self._repositories()]
            try:
                yield
            except BaseException:
                for repo, rows in zip(self._repositories(), snapshot, strict=True):
                    repo.rows = rows
                raise
            finally:
                self._owner = None
                self._depth = 0
