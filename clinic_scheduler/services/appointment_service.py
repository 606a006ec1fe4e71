"""Appointment service for business logic."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

import structlog

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.events import DomainEvent, EventBus
from clinic_scheduler.core.exceptions import (
    InvalidIntervalException,
    NotFoundException,
    SlotConflictException,
    ValidationException,
)
from clinic_scheduler.core.retry import retry_on_stale_version
from clinic_scheduler.repositories.base import Storage, doctor_schedule_key
from clinic_scheduler.schemas.actors import Actor
from clinic_scheduler.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
)
from clinic_scheduler.schemas.notifications import IntentType
from clinic_scheduler.services import appointment_state_machine as state_machine
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.notification_service import NotificationService

if TYPE_CHECKING:
    from clinic_scheduler.services.waitlist_matcher import SlotReleaseQueue

logger = structlog.get_logger(__name__)

APPOINTMENT_CHANGED = "appointment_changed"


class AppointmentService:
    """Service for booking and updating appointments."""

    def __init__(
        self,
        storage: Storage,
        audit: AuditService,
        notifications: NotificationService,
        events: EventBus | None = None,
        slot_release: "SlotReleaseQueue | None" = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        """Initialize service with storage and collaborators."""
        self.storage = storage
        self.audit = audit
        self.notifications = notifications
        self.events = events
        self.slot_release = slot_release
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def _get_or_404(self, appointment_id: UUID) -> Appointment:
        appointment = await self.storage.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found")
        return appointment

    async def _ensure_slot_free(
        self,
        doctor_id: UUID,
        start_at: datetime,
        end_at: datetime,
        exclude_id: UUID | None = None,
    ) -> None:
        conflicts = await self.storage.appointments.find_overlapping(
            doctor_id, start_at, end_at, exclude_id=exclude_id
        )
        if conflicts:
            logger.info(
                "slot_conflict",
                doctor_id=str(doctor_id),
                start_at=start_at.isoformat(),
                conflicting_id=str(conflicts[0].id),
            )
            raise SlotConflictException()

    async def notify_changed(self, appointment: Appointment, change: str) -> None:
        """Publish a committed change to event subscribers."""
        if self.events is None:
            return
        await self.events.publish(
            DomainEvent(
                name=APPOINTMENT_CHANGED,
                clinic_id=appointment.clinic_id,
                entity_id=appointment.id,
                payload={
                    "change": change,
                    "status": appointment.status.value,
                    "doctor_id": str(appointment.doctor_id),
                    "version": appointment.version,
                },
                occurred_at=appointment.updated_at,
            )
        )

    async def create_appointment(
        self,
        data: AppointmentCreate,
        actor: Actor,
    ) -> Appointment:
        """
        Book a new appointment.

        Args:
            data: Appointment creation data
            actor: Who books it

        Returns:
            Created appointment, status scheduled at version 1

        Raises:
            InvalidIntervalException: Duration is not positive
            SlotConflictException: The doctor is busy during the interval
        """
        end_at = state_machine.slot_end(data.start_at, data.duration_minutes)
        now = self.clock.now()
        appointment = Appointment(
            id=uuid4(),
            clinic_id=data.clinic_id,
            doctor_id=data.doctor_id,
            patient_id=data.patient_id,
            booked_by=actor.id,
            start_at=data.start_at,
            end_at=end_at,
            duration_minutes=data.duration_minutes,
            kind=data.kind,
            insurance=data.insurance,
            notes=data.notes,
            status=AppointmentStatus.SCHEDULED,
            status_history=state_machine.initial_history(actor, now),
            created_at=now,
            updated_at=now,
            version=1,
        )

        async with self.storage.atomic(doctor_schedule_key(data.doctor_id)):
            await self._ensure_slot_free(data.doctor_id, appointment.start_at, end_at)
            await self.storage.appointments.add(appointment)
            await self.audit.record(
                appointment.clinic_id,
                actor,
                "create_appointment",
                "appointment",
                appointment.id,
                after=appointment.model_dump(mode="json"),
            )

        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id),
            start_at=appointment.start_at.isoformat(),
        )
        await self.notify_changed(appointment, "created")
        return appointment

    async def change_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        actor: Actor,
        reason: str | None = None,
    ) -> Appointment:
        """
        Move an appointment to a new status.

        A cancellation frees the slot; once committed it is handed to the
        waitlist matcher.

        Raises:
            NotFoundException: If appointment not found
            AlreadyTerminalException: Appointment is in a final status
            InvalidTransitionException: Status not reachable
            ContentionException: Concurrent writers exhausted the retries
        """
        existing = await self._get_or_404(appointment_id)

        async def attempt() -> Appointment:
            async with self.storage.atomic(doctor_schedule_key(existing.doctor_id)):
                current = await self._get_or_404(appointment_id)
                updated = state_machine.transition(
                    current, status, actor, self.clock.now(), reason
                )
                await self.storage.appointments.replace(updated, expected_version=current.version)
                await self.audit.record(
                    updated.clinic_id,
                    actor,
                    "change_status",
                    "appointment",
                    updated.id,
                    before={"status": current.status.value, "version": current.version},
                    after={
                        "status": updated.status.value,
                        "version": updated.version,
                        "reason": reason,
                    },
                )
                if updated.status == AppointmentStatus.CANCELLED:
                    await self.notifications.record_intent(
                        IntentType.APPOINTMENT_CANCELLED,
                        updated,
                        payload={"reason": reason},
                    )
                return updated

        updated = await retry_on_stale_version(
            attempt,
            retries=self.settings.max_write_retries,
            operation_name="change_status",
        )

        logger.info(
            "appointment_status_changed",
            appointment_id=str(updated.id),
            status=updated.status.value,
            actor_id=actor.id,
        )
        await self.notify_changed(updated, "status_changed")

        if updated.status == AppointmentStatus.CANCELLED and self.slot_release is not None:
            await self.slot_release.release(updated.id, updated.clinic_id)

        return updated

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        start_at: datetime,
        actor: Actor,
        duration_minutes: int | None = None,
        reason: str | None = None,
    ) -> Appointment:
        """
        Move an open appointment to another interval of the same doctor.

        Args:
            appointment_id: Appointment ID
            start_at: New start instant
            actor: Who moves it
            duration_minutes: New duration; keeps the current one when omitted
            reason: Optional reason kept in history

        Raises:
            NotFoundException: If appointment not found
            AlreadyTerminalException: Appointment is in a final status
            InvalidIntervalException: Duration is not positive
            SlotConflictException: The new interval is taken
        """
        existing = await self._get_or_404(appointment_id)

        async def attempt() -> Appointment:
            async with self.storage.atomic(doctor_schedule_key(existing.doctor_id)):
                current = await self._get_or_404(appointment_id)
                duration = current.duration_minutes if duration_minutes is None else duration_minutes
                updated = state_machine.reschedule(
                    current, start_at, duration, actor, self.clock.now(), reason
                )
                await self._ensure_slot_free(
                    updated.doctor_id, updated.start_at, updated.end_at, exclude_id=updated.id
                )
                await self.storage.appointments.replace(updated, expected_version=current.version)
                await self.audit.record(
                    updated.clinic_id,
                    actor,
                    "reschedule_appointment",
                    "appointment",
                    updated.id,
                    before={"start_at": current.start_at, "end_at": current.end_at},
                    after={"start_at": updated.start_at, "end_at": updated.end_at},
                )
                return updated

        updated = await retry_on_stale_version(
            attempt,
            retries=self.settings.max_write_retries,
            operation_name="reschedule_appointment",
        )

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(updated.id),
            start_at=updated.start_at.isoformat(),
        )
        await self.notify_changed(updated, "rescheduled")
        return updated

    async def reassign_from_waitlist(
        self,
        appointment_id: UUID,
        patient_id: UUID,
        actor: Actor,
    ) -> Appointment:
        """
        Give a cancelled slot to a waitlisted patient.

        Runs inside the caller's unit of work; the caller retries on stale
        versions and publishes the change after commit.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: Appointment is not cancelled
            SlotConflictException: Another appointment took the slot
        """
        existing = await self._get_or_404(appointment_id)
        async with self.storage.atomic(doctor_schedule_key(existing.doctor_id)):
            current = await self._get_or_404(appointment_id)
            updated = state_machine.reassign(current, patient_id, actor, self.clock.now())
            await self._ensure_slot_free(
                updated.doctor_id, updated.start_at, updated.end_at, exclude_id=updated.id
            )
            await self.storage.appointments.replace(updated, expected_version=current.version)
            await self.audit.record(
                updated.clinic_id,
                actor,
                "reassign_appointment",
                "appointment",
                updated.id,
                before={"status": current.status.value, "patient_id": current.patient_id},
                after={"status": updated.status.value, "patient_id": updated.patient_id},
            )
            await self.notifications.record_intent(IntentType.APPOINTMENT_CONFIRMED, updated)

        logger.info(
            "appointment_reassigned",
            appointment_id=str(updated.id),
            patient_id=str(patient_id),
        )
        return updated

    async def record_confirmation_request(
        self,
        appointment_id: UUID,
        actor: Actor,
    ) -> Appointment:
        """
        Stamp a confirmation request and queue the message for the patient.

        Raises:
            NotFoundException: If appointment not found
            InvalidTransitionException: Appointment is not scheduled
        """
        existing = await self._get_or_404(appointment_id)

        async def attempt() -> Appointment:
            async with self.storage.atomic(doctor_schedule_key(existing.doctor_id)):
                current = await self._get_or_404(appointment_id)
                updated = state_machine.stamp_confirmation_request(current, self.clock.now())
                await self.storage.appointments.replace(updated, expected_version=current.version)
                await self.notifications.record_intent(IntentType.CONFIRMATION_REQUEST, updated)
                await self.audit.record(
                    updated.clinic_id,
                    actor,
                    "request_confirmation",
                    "appointment",
                    updated.id,
                    after={"confirmation_requested_at": updated.confirmation_requested_at},
                )
                return updated

        updated = await retry_on_stale_version(
            attempt,
            retries=self.settings.max_write_retries,
            operation_name="record_confirmation_request",
        )
        logger.info("confirmation_requested", appointment_id=str(updated.id))
        await self.notify_changed(updated, "confirmation_requested")
        return updated

    async def get_appointment(self, appointment_id: UUID) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        return await self._get_or_404(appointment_id)

    async def query_by_doctor_and_range(
        self,
        doctor_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        """Appointments of a doctor intersecting [start, end), ordered by start."""
        return await self.list_appointments(start, end, doctor_id=doctor_id)

    async def list_appointments(
        self,
        start: datetime,
        end: datetime,
        doctor_id: UUID | None = None,
        patient_id: UUID | None = None,
        clinic_id: UUID | None = None,
    ) -> list[Appointment]:
        """
        List appointments intersecting [start, end).

        Exactly one of doctor_id, patient_id and clinic_id selects the owner.

        Raises:
            InvalidIntervalException: Window is naive, empty or inverted
            ValidationException: No owner filter given
        """
        if start.tzinfo is None or end.tzinfo is None:
            raise InvalidIntervalException("Query window bounds must carry a UTC offset")
        if end <= start:
            raise InvalidIntervalException("Query window must end after it starts")
        if doctor_id is None and patient_id is None and clinic_id is None:
            raise ValidationException("One of doctor_id, patient_id or clinic_id is required")
        return await self.storage.appointments.list_in_range(
            start,
            end,
            doctor_id=doctor_id,
            patient_id=patient_id,
            clinic_id=clinic_id,
        )
