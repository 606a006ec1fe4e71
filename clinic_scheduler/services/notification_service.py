"""Notification intent outbox.

Records which messages should go out (confirmation requests, waitlist offers,
cancellations). Delivery belongs to the external messaging collaborator,
which reads pending intents and marks them dispatched.
"""

from typing import Any
from uuid import UUID, uuid4

import structlog
from pydantic_core import to_jsonable_python

from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.exceptions import NotFoundException
from clinic_scheduler.repositories.base import Storage
from clinic_scheduler.schemas.appointments import Appointment
from clinic_scheduler.schemas.notifications import (
    IntentStatus,
    IntentType,
    NotificationIntent,
)
from clinic_scheduler.schemas.waitlist import WaitlistEntry

logger = structlog.get_logger(__name__)


class NotificationService:
    """Service for recording and handing off notification intents."""

    def __init__(self, storage: Storage, clock: Clock | None = None):
        """Initialize service with storage and clock."""
        self.storage = storage
        self.clock = clock or SystemClock()

    async def record_intent(
        self,
        intent_type: IntentType,
        appointment: Appointment,
        patient_id: UUID | None = None,
        waitlist_entry: WaitlistEntry | None = None,
        payload: dict[str, Any] | None = None,
    ) -> NotificationIntent:
        """
        Record an intent inside the caller's unit of work.

        Args:
            intent_type: Kind of message
            appointment: Appointment the message is about
            patient_id: Recipient; defaults to the appointment's patient
            waitlist_entry: Waitlist entry for offer messages
            payload: Extra template data

        Returns:
            Stored intent
        """
        base_payload = {
            "doctor_id": appointment.doctor_id,
            "start_at": appointment.start_at,
            "end_at": appointment.end_at,
        }
        if waitlist_entry is not None and waitlist_entry.offer_expires_at is not None:
            base_payload["offer_expires_at"] = waitlist_entry.offer_expires_at
        base_payload.update(payload or {})

        intent = NotificationIntent(
            id=uuid4(),
            clinic_id=appointment.clinic_id,
            patient_id=patient_id or appointment.patient_id,
            appointment_id=appointment.id,
            waitlist_entry_id=waitlist_entry.id if waitlist_entry else None,
            intent_type=intent_type,
            payload=to_jsonable_python(base_payload),
            created_at=self.clock.now(),
        )
        await self.storage.notifications.add(intent)

        logger.info(
            "notification_intent_recorded",
            intent_type=intent_type.value,
            appointment_id=str(appointment.id),
            patient_id=str(intent.patient_id),
        )
        return intent

    async def list_pending(self, clinic_id: UUID, limit: int = 100) -> list[NotificationIntent]:
        """List intents not yet taken by the messaging collaborator."""
        return await self.storage.notifications.list_pending(clinic_id, limit)

    async def mark_dispatched(self, intent_id: UUID) -> NotificationIntent:
        """
        Mark an intent as handed off for delivery.

        Raises:
            NotFoundException: If the intent does not exist
        """
        async with self.storage.atomic():
            intent = await self.storage.notifications.get(intent_id)
            if intent is None:
                raise NotFoundException("Notification intent not found")
            if intent.status == IntentStatus.DISPATCHED:
                return intent
            dispatched = intent.model_copy(
                update={"status": IntentStatus.DISPATCHED, "dispatched_at": self.clock.now()}
            )
            await self.storage.notifications.replace(dispatched)
        return dispatched
