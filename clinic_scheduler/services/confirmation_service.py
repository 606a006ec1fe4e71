"""Appointment confirmation workflow.

Patients are asked to confirm ahead of their visit. Requests left unanswered
past the grace period, for visits coming up within the lead window, move the
appointment to awaiting_confirmation so staff can follow up.
"""

from datetime import datetime, timedelta
from uuid import UUID

import structlog

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.exceptions import AppException, ForbiddenException
from clinic_scheduler.schemas.actors import Actor, ActorClass
from clinic_scheduler.schemas.appointments import (
    Appointment,
    AppointmentStatus,
    ConfirmationResponse,
)
from clinic_scheduler.services.appointment_service import AppointmentService

logger = structlog.get_logger(__name__)


class ConfirmationService:
    """Service for confirmation requests and answers."""

    def __init__(
        self,
        appointments: AppointmentService,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        """Initialize service with the appointment store."""
        self.appointments = appointments
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def request_confirmation(self, appointment_id: UUID, actor: Actor) -> Appointment:
        """Ask the patient to confirm a scheduled appointment."""
        return await self.appointments.record_confirmation_request(appointment_id, actor)

    def is_confirmation_overdue(self, appointment: Appointment, now: datetime) -> bool:
        """Whether an unanswered request should be flagged for follow-up."""
        if appointment.status != AppointmentStatus.SCHEDULED:
            return False
        if appointment.confirmation_requested_at is None:
            return False
        grace = timedelta(hours=self.settings.confirmation_response_grace_hours)
        lead = timedelta(hours=self.settings.confirmation_lead_hours)
        return (
            now - appointment.confirmation_requested_at > grace
            and now <= appointment.start_at <= now + lead
        )

    async def mark_pending_confirmations(self, now: datetime | None = None) -> int:
        """
        Move overdue confirmation requests to awaiting_confirmation.

        Args:
            now: Sweep instant; defaults to the clock

        Returns:
            Number of appointments moved
        """
        sweep_at = now or self.clock.now()
        system = Actor.system("confirmation-sweep")
        marked = 0

        candidates = await self.appointments.storage.appointments.list_confirmation_requested()
        for appointment in candidates:
            if not self.is_confirmation_overdue(appointment, sweep_at):
                continue
            try:
                await self.appointments.change_status(
                    appointment.id,
                    AppointmentStatus.AWAITING_CONFIRMATION,
                    system,
                    reason="No answer to confirmation request",
                )
            except AppException as e:
                # Changed concurrently since it was listed
                logger.info(
                    "pending_confirmation_skipped",
                    appointment_id=str(appointment.id),
                    error=e.message,
                )
                continue
            marked += 1

        logger.info("pending_confirmations_marked", marked=marked, now=sweep_at.isoformat())
        return marked

    async def process_confirmation_response(
        self,
        appointment_id: UUID,
        response: ConfirmationResponse,
        actor: Actor,
    ) -> Appointment:
        """
        Apply the patient's answer to a confirmation request.

        Cancelling frees the slot for the waitlist.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: A patient answers for someone else
            AlreadyTerminalException: Appointment is in a final status
            InvalidTransitionException: Status not reachable
        """
        appointment = await self.appointments.get_appointment(appointment_id)
        if actor.actor_class == ActorClass.PATIENT and actor.id != str(appointment.patient_id):
            raise ForbiddenException("Access denied to this appointment")

        if response == ConfirmationResponse.CONFIRM:
            target = AppointmentStatus.CONFIRMED
            reason = "Confirmed by patient"
        else:
            target = AppointmentStatus.CANCELLED
            reason = "Cancelled by patient on confirmation request"

        updated = await self.appointments.change_status(appointment_id, target, actor, reason=reason)
        logger.info(
            "confirmation_response_processed",
            appointment_id=str(appointment_id),
            response=response.value,
        )
        return updated
