"""PostgreSQL storage on SQLAlchemy Core.

Units of work take transaction-scoped advisory locks on their keys, so two
requests touching the same doctor schedule or waitlist entry are serialized
even across processes. Versioned writes use UPDATE ... WHERE version = :expected.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import (
    ContentionException,
    SlotConflictException,
    StaleVersionError,
    StorageFailureException,
)
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.audit_logs import audit_logs
from clinic_scheduler.models.doctors import doctors
from clinic_scheduler.models.notifications import notification_intents
from clinic_scheduler.models.waitlist import waitlist_entries
from clinic_scheduler.schemas.appointments import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
)
from clinic_scheduler.schemas.audit import AuditLogEntry
from clinic_scheduler.schemas.doctors import Doctor
from clinic_scheduler.schemas.notifications import IntentStatus, NotificationIntent
from clinic_scheduler.schemas.waitlist import DateRange, WaitlistEntry, WaitlistStatus

logger = structlog.get_logger(__name__)

NO_OVERLAP_CONSTRAINT = "appointments_no_overlap"
LIVE_OFFER_INDEX = "uq_waitlist_entries_live_offer"
# SQLSTATE lock_not_available, raised once a wait exceeds lock_timeout
LOCK_NOT_AVAILABLE = "55P03"


def is_lock_timeout(exc: SQLAlchemyError) -> bool:
    """Check whether the driver gave up waiting for a lock."""
    orig = getattr(exc, "orig", None)
    return LOCK_NOT_AVAILABLE in (
        getattr(orig, "sqlstate", None),
        getattr(orig, "pgcode", None),
    )


class _PostgresRepository:
    """Shared execution helper translating driver errors."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, stmt: Any) -> Any:
        try:
            return await self.db.execute(stmt)
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            if is_lock_timeout(e):
                logger.warning("storage_lock_timeout", error=str(e))
                raise ContentionException() from e
            logger.error("storage_statement_failed", error=str(e))
            raise StorageFailureException() from e


def _appointment_values(appointment: Appointment) -> dict[str, Any]:
    doc = appointment.model_dump(
        mode="json",
        include={"status_history", "insurance", "cancellation"},
    )
    return {
        "id": appointment.id,
        "clinic_id": appointment.clinic_id,
        "doctor_id": appointment.doctor_id,
        "patient_id": appointment.patient_id,
        "booked_by": appointment.booked_by,
        "start_at": appointment.start_at,
        "end_at": appointment.end_at,
        "duration_minutes": appointment.duration_minutes,
        "kind": appointment.kind.value,
        "insurance": doc["insurance"],
        "notes": appointment.notes,
        "status": appointment.status.value,
        "status_history": doc["status_history"],
        "cancellation": doc["cancellation"],
        "confirmed_at": appointment.confirmed_at,
        "confirmation_method": (
            appointment.confirmation_method.value if appointment.confirmation_method else None
        ),
        "confirmation_requested_at": appointment.confirmation_requested_at,
        "created_at": appointment.created_at,
        "updated_at": appointment.updated_at,
        "version": appointment.version,
    }


class PostgresAppointmentRepository(_PostgresRepository):
    async def get(self, appointment_id: UUID) -> Appointment | None:
        result = await self._execute(select(appointments).where(appointments.c.id == appointment_id))
        row = result.mappings().first()
        return Appointment.model_validate(dict(row)) if row else None

    async def add(self, appointment: Appointment) -> None:
        try:
            await self._execute(insert(appointments).values(**_appointment_values(appointment)))
        except IntegrityError as e:
            if NO_OVERLAP_CONSTRAINT in str(e.orig):
                raise SlotConflictException() from e
            raise StorageFailureException() from e

    async def replace(self, appointment: Appointment, expected_version: int) -> None:
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment.id,
                    appointments.c.version == expected_version,
                )
            )
            .values(**_appointment_values(appointment))
        )
        try:
            result = await self._execute(stmt)
        except IntegrityError as e:
            if NO_OVERLAP_CONSTRAINT in str(e.orig):
                raise SlotConflictException() from e
            raise StorageFailureException() from e
        if result.rowcount == 0:
            raise StaleVersionError(appointment.id, expected_version)

    async def find_overlapping(
        self,
        doctor_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]:
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
            appointments.c.start_at < end,
            appointments.c.end_at > start,
        ]
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.start_at)
        result = await self._execute(stmt)
        return [Appointment.model_validate(dict(row)) for row in result.mappings().all()]

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        doctor_id: UUID | None = None,
        patient_id: UUID | None = None,
        clinic_id: UUID | None = None,
    ) -> list[Appointment]:
        conditions = [
            appointments.c.start_at < end,
            appointments.c.end_at > start,
        ]

        if doctor_id:
            conditions.append(appointments.c.doctor_id == doctor_id)

        if patient_id:
            conditions.append(appointments.c.patient_id == patient_id)

        if clinic_id:
            conditions.append(appointments.c.clinic_id == clinic_id)

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.start_at.asc(), appointments.c.id.asc())
        )
        result = await self._execute(stmt)
        return [Appointment.model_validate(dict(row)) for row in result.mappings().all()]

    async def list_confirmation_requested(self) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.status == AppointmentStatus.SCHEDULED.value,
                    appointments.c.confirmation_requested_at.is_not(None),
                )
            )
            .order_by(appointments.c.start_at)
        )
        result = await self._execute(stmt)
        return [Appointment.model_validate(dict(row)) for row in result.mappings().all()]


def _waitlist_values(entry: WaitlistEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "clinic_id": entry.clinic_id,
        "patient_id": entry.patient_id,
        "specialty": entry.specialty,
        "preferred_doctor_id": entry.preferred_doctor_id,
        "preferred_start_date": entry.preferred_date_range.start,
        "preferred_end_date": entry.preferred_date_range.end,
        "status": entry.status.value,
        "offered_appointment_id": entry.offered_appointment_id,
        "offered_at": entry.offered_at,
        "offer_expires_at": entry.offer_expires_at,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
        "version": entry.version,
    }


def _waitlist_from_row(row: Any) -> WaitlistEntry:
    data = dict(row)
    data["preferred_date_range"] = DateRange(
        start=data.pop("preferred_start_date"),
        end=data.pop("preferred_end_date"),
    )
    return WaitlistEntry.model_validate(data)


class PostgresWaitlistRepository(_PostgresRepository):
    async def get(self, entry_id: UUID) -> WaitlistEntry | None:
        result = await self._execute(
            select(waitlist_entries).where(waitlist_entries.c.id == entry_id)
        )
        row = result.mappings().first()
        return _waitlist_from_row(row) if row else None

    async def add(self, entry: WaitlistEntry) -> None:
        try:
            await self._execute(insert(waitlist_entries).values(**_waitlist_values(entry)))
        except IntegrityError as e:
            raise StorageFailureException() from e

    async def replace(self, entry: WaitlistEntry, expected_version: int) -> None:
        stmt = (
            update(waitlist_entries)
            .where(
                and_(
                    waitlist_entries.c.id == entry.id,
                    waitlist_entries.c.version == expected_version,
                )
            )
            .values(**_waitlist_values(entry))
        )
        try:
            result = await self._execute(stmt)
        except IntegrityError as e:
            # Another entry already holds the live offer for this appointment
            if LIVE_OFFER_INDEX in str(e.orig):
                raise StaleVersionError(entry.id, expected_version) from e
            raise StorageFailureException() from e
        if result.rowcount == 0:
            raise StaleVersionError(entry.id, expected_version)

    async def delete(self, entry_id: UUID, expected_version: int) -> None:
        stmt = delete(waitlist_entries).where(
            and_(
                waitlist_entries.c.id == entry_id,
                waitlist_entries.c.version == expected_version,
            )
        )
        result = await self._execute(stmt)
        if result.rowcount == 0:
            raise StaleVersionError(entry_id, expected_version)

    async def list_by_clinic(
        self,
        clinic_id: UUID,
        status: WaitlistStatus | None = None,
    ) -> list[WaitlistEntry]:
        conditions = [waitlist_entries.c.clinic_id == clinic_id]
        if status:
            conditions.append(waitlist_entries.c.status == status.value)

        stmt = (
            select(waitlist_entries)
            .where(and_(*conditions))
            .order_by(waitlist_entries.c.created_at.asc(), waitlist_entries.c.id.asc())
        )
        result = await self._execute(stmt)
        return [_waitlist_from_row(row) for row in result.mappings().all()]

    async def find_offer_for_appointment(self, appointment_id: UUID) -> WaitlistEntry | None:
        stmt = select(waitlist_entries).where(
            and_(
                waitlist_entries.c.status == WaitlistStatus.OFFERED.value,
                waitlist_entries.c.offered_appointment_id == appointment_id,
            )
        )
        result = await self._execute(stmt)
        row = result.mappings().first()
        return _waitlist_from_row(row) if row else None

    async def list_expired_offers(self, now: datetime) -> list[WaitlistEntry]:
        stmt = (
            select(waitlist_entries)
            .where(
                and_(
                    waitlist_entries.c.status == WaitlistStatus.OFFERED.value,
                    waitlist_entries.c.offer_expires_at <= now,
                )
            )
            .order_by(waitlist_entries.c.offer_expires_at.asc(), waitlist_entries.c.id.asc())
        )
        result = await self._execute(stmt)
        return [_waitlist_from_row(row) for row in result.mappings().all()]


class PostgresAuditLogRepository(_PostgresRepository):
    async def add(self, entry: AuditLogEntry) -> None:
        # Savepoint: a failed audit insert must not abort the enclosing unit of work
        try:
            async with self.db.begin_nested():
                await self.db.execute(insert(audit_logs).values(**entry.model_dump()))
        except SQLAlchemyError as e:
            raise StorageFailureException("Audit log write failed") from e

    async def list_entries(
        self,
        clinic_id: UUID,
        entity_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        conditions = [audit_logs.c.clinic_id == clinic_id]
        if entity_id:
            conditions.append(audit_logs.c.entity_id == entity_id)

        stmt = (
            select(audit_logs)
            .where(and_(*conditions))
            .order_by(audit_logs.c.timestamp.desc())
            .limit(limit)
        )
        result = await self._execute(stmt)
        return [AuditLogEntry.model_validate(dict(row)) for row in result.mappings().all()]


class PostgresDoctorRepository(_PostgresRepository):
    async def get(self, doctor_id: UUID) -> Doctor | None:
        result = await self._execute(select(doctors).where(doctors.c.id == doctor_id))
        row = result.mappings().first()
        return Doctor.model_validate(dict(row)) if row else None

    async def add(self, doctor: Doctor) -> None:
        try:
            await self._execute(insert(doctors).values(**doctor.model_dump()))
        except IntegrityError as e:
            raise StorageFailureException() from e

    async def list_by_clinic(self, clinic_id: UUID) -> list[Doctor]:
        stmt = select(doctors).where(doctors.c.clinic_id == clinic_id).order_by(doctors.c.name)
        result = await self._execute(stmt)
        return [Doctor.model_validate(dict(row)) for row in result.mappings().all()]


def _intent_values(intent: NotificationIntent) -> dict[str, Any]:
    values = intent.model_dump()
    values["intent_type"] = intent.intent_type.value
    values["status"] = intent.status.value
    values["payload"] = intent.model_dump(mode="json", include={"payload"})["payload"]
    return values


class PostgresNotificationIntentRepository(_PostgresRepository):
    async def get(self, intent_id: UUID) -> NotificationIntent | None:
        result = await self._execute(
            select(notification_intents).where(notification_intents.c.id == intent_id)
        )
        row = result.mappings().first()
        return NotificationIntent.model_validate(dict(row)) if row else None

    async def add(self, intent: NotificationIntent) -> None:
        try:
            await self._execute(insert(notification_intents).values(**_intent_values(intent)))
        except IntegrityError as e:
            raise StorageFailureException() from e

    async def replace(self, intent: NotificationIntent) -> None:
        stmt = (
            update(notification_intents)
            .where(notification_intents.c.id == intent.id)
            .values(status=intent.status.value, dispatched_at=intent.dispatched_at)
        )
        await self._execute(stmt)

    async def list_pending(self, clinic_id: UUID, limit: int = 100) -> list[NotificationIntent]:
        stmt = (
            select(notification_intents)
            .where(
                and_(
                    notification_intents.c.clinic_id == clinic_id,
                    notification_intents.c.status == IntentStatus.PENDING.value,
                )
            )
            .order_by(notification_intents.c.created_at.asc())
            .limit(limit)
        )
        result = await self._execute(stmt)
        return [NotificationIntent.model_validate(dict(row)) for row in result.mappings().all()]


class PostgresStorage:
    """Repositories sharing one AsyncSession and its transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.appointments = PostgresAppointmentRepository(db)
        self.waitlist = PostgresWaitlistRepository(db)
        self.audit_logs = PostgresAuditLogRepository(db)
        self.doctors = PostgresDoctorRepository(db)
        self.notifications = PostgresNotificationIntentRepository(db)
        self._depth = 0

    async def _lock(self, keys: tuple[str, ...]) -> None:
        # Sorted acquisition keeps multi-key units deadlock free
        for key in sorted(set(keys)):
            await self.db.execute(select(func.pg_advisory_xact_lock(func.hashtextextended(key, 0))))

    @asynccontextmanager
    async def atomic(self, *keys: str) -> AsyncIterator[None]:
        if self._depth:
            self._depth += 1
            try:
                await self._lock(keys)
                yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            await self._lock(keys)
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            if is_lock_timeout(e):
                logger.warning("schedule_lock_timeout", keys=list(keys))
                raise ContentionException() from e
            logger.error("unit_of_work_failed", keys=list(keys), error=str(e))
            raise StorageFailureException() from e
        except BaseException:
            await self.db.rollback()
            raise
        finally:
            self._depth = 0
