"""Waitlist matching for freed slots.

When a slot is freed, the earliest-joined waiting entry that fits it gets a
time-limited offer. Fit means: the entry's specialty is one of the doctor's
(case-insensitive), the preferred doctor is unset or this doctor, and the slot
date (in the clinic time zone) is inside the preferred date range.
"""

from collections import deque
from datetime import date, datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.events import DomainEvent, EventBus
from clinic_scheduler.core.retry import retry_on_stale_version
from clinic_scheduler.repositories.base import Storage, freed_slot_key
from clinic_scheduler.schemas.actors import Actor
from clinic_scheduler.schemas.appointments import Appointment, AppointmentStatus
from clinic_scheduler.schemas.notifications import IntentType
from clinic_scheduler.schemas.waitlist import WaitlistEntry, WaitlistStatus
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.doctor_service import DoctorService
from clinic_scheduler.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)

WAITLIST_ENTRY_CHANGED = "waitlist_entry_changed"


def is_eligible(
    entry: WaitlistEntry,
    appointment: Appointment,
    specialties: list[str],
    slot_date: date,
) -> bool:
    """Check whether a waiting entry fits a freed slot."""
    wanted = entry.specialty.strip().casefold()
    if not any(s.casefold() == wanted for s in specialties):
        return False
    if entry.preferred_doctor_id is not None and entry.preferred_doctor_id != appointment.doctor_id:
        return False
    return entry.preferred_date_range.contains(slot_date)


async def publish_entry_changed(
    events: EventBus | None,
    entry: WaitlistEntry,
    change: str,
) -> None:
    """Publish a committed waitlist entry change to event subscribers."""
    if events is None:
        return
    await events.publish(
        DomainEvent(
            name=WAITLIST_ENTRY_CHANGED,
            clinic_id=entry.clinic_id,
            entity_id=entry.id,
            payload={
                "change": change,
                "status": entry.status.value,
                "offered_appointment_id": (
                    str(entry.offered_appointment_id) if entry.offered_appointment_id else None
                ),
                "version": entry.version,
            },
            occurred_at=entry.updated_at,
        )
    )


class WaitlistMatcher:
    """Offers freed slots to waitlisted patients, first come first served."""

    def __init__(
        self,
        storage: Storage,
        doctors: DoctorService,
        audit: AuditService,
        notifications: NotificationService,
        events: EventBus | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        """Initialize matcher with storage and collaborators."""
        self.storage = storage
        self.doctors = doctors
        self.audit = audit
        self.notifications = notifications
        self.events = events
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    def _skip(self, appointment_id: UUID, reason: str) -> None:
        logger.info("waitlist_match_skipped", appointment_id=str(appointment_id), reason=reason)

    async def offer_freed_slot(
        self,
        appointment_id: UUID,
        now: datetime | None = None,
    ) -> WaitlistEntry | None:
        """
        Offer a freed slot to the first eligible waiting entry.

        Args:
            appointment_id: The cancelled appointment whose slot is free
            now: Offer instant; defaults to the clock

        Returns:
            The entry now holding the offer, or None when nobody was offered
        """
        offered_at = now or self.clock.now()

        async def attempt() -> WaitlistEntry | None:
            async with self.storage.atomic(freed_slot_key(appointment_id)):
                return await self._offer(appointment_id, offered_at)

        offered = await retry_on_stale_version(
            attempt,
            retries=self.settings.max_write_retries,
            operation_name="offer_freed_slot",
        )
        if offered is not None:
            logger.info(
                "waitlist_offer_made",
                appointment_id=str(appointment_id),
                waitlist_entry_id=str(offered.id),
                patient_id=str(offered.patient_id),
                offer_expires_at=offered.offer_expires_at.isoformat(),
            )
            await publish_entry_changed(self.events, offered, "offered")
        return offered

    async def _offer(self, appointment_id: UUID, now: datetime) -> WaitlistEntry | None:
        appointment = await self.storage.appointments.get(appointment_id)
        if appointment is None:
            self._skip(appointment_id, "appointment_not_found")
            return None
        if appointment.status != AppointmentStatus.CANCELLED:
            self._skip(appointment_id, "appointment_not_cancelled")
            return None
        if appointment.start_at <= now:
            self._skip(appointment_id, "slot_started")
            return None
        if await self.storage.waitlist.find_offer_for_appointment(appointment_id) is not None:
            self._skip(appointment_id, "offer_outstanding")
            return None
        occupants = await self.storage.appointments.find_overlapping(
            appointment.doctor_id,
            appointment.start_at,
            appointment.end_at,
            exclude_id=appointment.id,
        )
        if occupants:
            self._skip(appointment_id, "slot_occupied")
            return None

        specialties = await self.doctors.get_specialties(appointment.doctor_id)
        if specialties is None:
            self._skip(appointment_id, "doctor_unknown")
            return None

        slot_date = appointment.start_at.astimezone(ZoneInfo(self.settings.clinic_timezone)).date()
        waiting = await self.storage.waitlist.list_by_clinic(
            appointment.clinic_id, WaitlistStatus.WAITING
        )
        match = next(
            (e for e in waiting if is_eligible(e, appointment, specialties, slot_date)),
            None,
        )
        if match is None:
            self._skip(appointment_id, "no_eligible_entry")
            return None

        offered = match.model_copy(
            update={
                "status": WaitlistStatus.OFFERED,
                "offered_appointment_id": appointment.id,
                "offered_at": now,
                "offer_expires_at": now + timedelta(minutes=self.settings.offer_window_minutes),
                "updated_at": now,
                "version": match.version + 1,
            }
        )
        await self.storage.waitlist.replace(offered, expected_version=match.version)
        await self.notifications.record_intent(
            IntentType.WAITLIST_OFFER,
            appointment,
            patient_id=offered.patient_id,
            waitlist_entry=offered,
        )
        await self.audit.record(
            appointment.clinic_id,
            Actor.system("waitlist-matcher"),
            "offer_waitlist_slot",
            "waitlist_entry",
            offered.id,
            before={"status": match.status.value},
            after={
                "status": offered.status.value,
                "offered_appointment_id": appointment.id,
                "offer_expires_at": offered.offer_expires_at,
            },
        )
        return offered

    async def waiting_count(self, clinic_id: UUID) -> int:
        """Number of waiting entries of a clinic."""
        waiting = await self.storage.waitlist.list_by_clinic(clinic_id, WaitlistStatus.WAITING)
        return len(waiting)


class SlotReleaseQueue:
    """
    Work queue of freed slots waiting to be matched.

    Cancellations, declined offers and expired offers enqueue the appointment
    id; drain() runs the matcher once per queued slot. Draining stops after
    the initial batch plus the waitlist size of the clinics involved, so a
    run of declines or expiries cannot loop unboundedly.
    """

    def __init__(self, matcher: WaitlistMatcher):
        """Initialize queue with the matcher it feeds."""
        self.matcher = matcher
        self._pending: deque[tuple[UUID, UUID, datetime | None]] = deque()
        self._draining = False

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, appointment_id: UUID, clinic_id: UUID, now: datetime | None = None) -> None:
        """Queue a freed slot."""
        self._pending.append((appointment_id, clinic_id, now))
        logger.debug("slot_release_enqueued", appointment_id=str(appointment_id))

    async def release(
        self,
        appointment_id: UUID,
        clinic_id: UUID,
        now: datetime | None = None,
    ) -> list[WaitlistEntry]:
        """Queue a freed slot and drain the queue."""
        self.enqueue(appointment_id, clinic_id, now)
        return await self.drain()

    async def drain(self) -> list[WaitlistEntry]:
        """
        Run the matcher for every queued slot.

        A failing dispatch is logged and the remaining slots still run; the
        write that freed the slot has already committed.

        Returns:
            Entries that received an offer
        """
        if self._draining:
            # The outer drain picks up anything queued meanwhile
            return []

        self._draining = True
        offers: list[WaitlistEntry] = []
        try:
            clinics = {clinic_id for _, clinic_id, _ in self._pending}
            cap = len(self._pending)
            for clinic_id in clinics:
                cap += await self.matcher.waiting_count(clinic_id)

            dispatched = 0
            while self._pending and dispatched < cap:
                appointment_id, _, now = self._pending.popleft()
                dispatched += 1
                try:
                    offered = await self.matcher.offer_freed_slot(appointment_id, now=now)
                except Exception as e:
                    logger.error(
                        "slot_release_failed",
                        appointment_id=str(appointment_id),
                        error=str(e),
                    )
                    continue
                logger.info(
                    "slot_release_dispatched",
                    appointment_id=str(appointment_id),
                    offered_entry_id=str(offered.id) if offered else None,
                )
                if offered is not None:
                    offers.append(offered)

            if self._pending:
                logger.warning("slot_release_cap_reached", remaining=len(self._pending), cap=cap)
                self._pending.clear()
        finally:
            self._draining = False
        return offers
