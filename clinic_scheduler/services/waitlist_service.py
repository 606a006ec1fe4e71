"""Waitlist service for business logic.

Entry lifecycle:
- waiting -> offered (by the matcher, when a fitting slot frees up)
- offered -> accepted (patient takes the slot)
- offered -> expired (patient declines, or the offer window lapses)
- accepted, expired -> (final states)
"""

from datetime import datetime
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import structlog

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.events import EventBus
from clinic_scheduler.core.exceptions import (
    AlreadyTerminalException,
    ForbiddenException,
    InvalidRangeException,
    InvalidTransitionException,
    NotFoundException,
    NotRemovableException,
    OfferExpiredException,
)
from clinic_scheduler.core.retry import retry_on_stale_version
from clinic_scheduler.repositories.base import Storage, waitlist_entry_key
from clinic_scheduler.schemas.actors import Actor, ActorClass
from clinic_scheduler.schemas.appointments import Appointment
from clinic_scheduler.schemas.waitlist import (
    OfferResponse,
    WaitlistEntry,
    WaitlistJoin,
    WaitlistStatus,
)
from clinic_scheduler.services.appointment_service import AppointmentService
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.waitlist_matcher import SlotReleaseQueue, publish_entry_changed

logger = structlog.get_logger(__name__)


class WaitlistService:
    """Service for the clinic waitlist queue."""

    def __init__(
        self,
        storage: Storage,
        appointments: AppointmentService,
        audit: AuditService,
        events: EventBus | None = None,
        slot_release: SlotReleaseQueue | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        """Initialize service with storage and collaborators."""
        self.storage = storage
        self.appointments = appointments
        self.audit = audit
        self.events = events
        self.slot_release = slot_release
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    async def _get_or_404(self, entry_id: UUID) -> WaitlistEntry:
        entry = await self.storage.waitlist.get(entry_id)
        if entry is None:
            raise NotFoundException("Waitlist entry not found")
        return entry

    @staticmethod
    def _check_owner(entry: WaitlistEntry, actor: Actor) -> None:
        if actor.actor_class == ActorClass.PATIENT and actor.id != str(entry.patient_id):
            raise ForbiddenException("Access denied to this waitlist entry")

    async def join_waitlist(self, data: WaitlistJoin, actor: Actor) -> WaitlistEntry:
        """
        Add a patient to the waitlist.

        Args:
            data: Criteria of the slot the patient wants
            actor: Who adds the entry

        Returns:
            New entry in waiting status

        Raises:
            InvalidRangeException: Range is inverted or starts in the past
        """
        now = self.clock.now()
        today = now.astimezone(ZoneInfo(self.settings.clinic_timezone)).date()
        date_range = data.preferred_date_range
        if date_range.end < date_range.start:
            raise InvalidRangeException("Preferred date range ends before it starts")
        if date_range.start < today:
            raise InvalidRangeException("Preferred date range starts in the past")

        entry = WaitlistEntry(
            id=uuid4(),
            clinic_id=data.clinic_id,
            patient_id=data.patient_id,
            specialty=data.specialty.strip(),
            preferred_doctor_id=data.preferred_doctor_id,
            preferred_date_range=date_range,
            status=WaitlistStatus.WAITING,
            created_at=now,
            updated_at=now,
            version=1,
        )
        async with self.storage.atomic(waitlist_entry_key(entry.id)):
            await self.storage.waitlist.add(entry)
            await self.audit.record(
                entry.clinic_id,
                actor,
                "join_waitlist",
                "waitlist_entry",
                entry.id,
                after=entry.model_dump(mode="json"),
            )

        logger.info(
            "waitlist_joined",
            waitlist_entry_id=str(entry.id),
            clinic_id=str(entry.clinic_id),
            specialty=entry.specialty,
        )
        await publish_entry_changed(self.events, entry, "joined")
        return entry

    def _ensure_offer_open(
        self, entry: WaitlistEntry, response: OfferResponse, now: datetime
    ) -> None:
        if entry.status == WaitlistStatus.ACCEPTED:
            raise AlreadyTerminalException("The offer was already accepted")
        if entry.status == WaitlistStatus.EXPIRED:
            raise OfferExpiredException()
        if entry.status == WaitlistStatus.WAITING:
            raise InvalidTransitionException("There is no open offer for this entry")
        # A lapsed window only blocks accepting; a late decline still frees the slot
        if (
            response == OfferResponse.ACCEPT
            and entry.offer_expires_at is not None
            and entry.offer_expires_at <= now
        ):
            raise OfferExpiredException()

    async def respond_to_offer(
        self,
        entry_id: UUID,
        response: OfferResponse,
        actor: Actor,
    ) -> WaitlistEntry:
        """
        Accept or decline a waitlist offer.

        Accepting confirms the offered appointment for the patient in the same
        unit of work. Declining expires the entry and hands the slot back to
        the matcher for the next patient in line.

        Raises:
            NotFoundException: If entry not found
            AlreadyTerminalException: Offer was already accepted
            OfferExpiredException: Offer expired, or accepted after its window lapsed
            InvalidTransitionException: Entry holds no offer
            SlotConflictException: The slot was booked meanwhile
        """
        now = self.clock.now()

        async def attempt() -> tuple[WaitlistEntry, Appointment | None]:
            async with self.storage.atomic(waitlist_entry_key(entry_id)):
                entry = await self._get_or_404(entry_id)
                self._check_owner(entry, actor)
                self._ensure_offer_open(entry, response, now)

                if response == OfferResponse.ACCEPT:
                    updated = entry.model_copy(
                        update={
                            "status": WaitlistStatus.ACCEPTED,
                            "updated_at": now,
                            "version": entry.version + 1,
                        }
                    )
                    await self.storage.waitlist.replace(updated, expected_version=entry.version)
                    appointment = await self.appointments.reassign_from_waitlist(
                        entry.offered_appointment_id, entry.patient_id, actor
                    )
                    action = "accept_waitlist_offer"
                else:
                    updated = entry.model_copy(
                        update={
                            "status": WaitlistStatus.EXPIRED,
                            "updated_at": now,
                            "version": entry.version + 1,
                        }
                    )
                    await self.storage.waitlist.replace(updated, expected_version=entry.version)
                    appointment = None
                    action = "decline_waitlist_offer"

                await self.audit.record(
                    updated.clinic_id,
                    actor,
                    action,
                    "waitlist_entry",
                    updated.id,
                    before={"status": entry.status.value},
                    after={
                        "status": updated.status.value,
                        "offered_appointment_id": updated.offered_appointment_id,
                    },
                )
                return updated, appointment

        updated, appointment = await retry_on_stale_version(
            attempt,
            retries=self.settings.max_write_retries,
            operation_name="respond_to_offer",
        )

        logger.info(
            "waitlist_offer_answered",
            waitlist_entry_id=str(updated.id),
            response=response.value,
            appointment_id=str(updated.offered_appointment_id),
        )
        await publish_entry_changed(self.events, updated, response.value)

        if appointment is not None:
            await self.appointments.notify_changed(appointment, "reassigned")
        elif self.slot_release is not None:
            await self.slot_release.release(updated.offered_appointment_id, updated.clinic_id)

        return updated

    async def sweep_expired_offers(self, now: datetime | None = None) -> int:
        """
        Expire every offer whose window has lapsed and re-offer the slots.

        Running it again for the same instant changes nothing.

        Args:
            now: Sweep instant; defaults to the clock

        Returns:
            Number of offers expired by this run
        """
        sweep_at = now or self.clock.now()
        system = Actor.system("offer-sweep")
        expired: list[WaitlistEntry] = []

        for candidate in await self.storage.waitlist.list_expired_offers(sweep_at):

            async def attempt(entry_id: UUID = candidate.id) -> WaitlistEntry | None:
                async with self.storage.atomic(waitlist_entry_key(entry_id)):
                    entry = await self.storage.waitlist.get(entry_id)
                    if (
                        entry is None
                        or entry.status != WaitlistStatus.OFFERED
                        or entry.offer_expires_at is None
                        or entry.offer_expires_at > sweep_at
                    ):
                        return None
                    updated = entry.model_copy(
                        update={
                            "status": WaitlistStatus.EXPIRED,
                            "updated_at": sweep_at,
                            "version": entry.version + 1,
                        }
                    )
                    await self.storage.waitlist.replace(updated, expected_version=entry.version)
                    await self.audit.record(
                        updated.clinic_id,
                        system,
                        "expire_waitlist_offer",
                        "waitlist_entry",
                        updated.id,
                        before={"status": entry.status.value},
                        after={"status": updated.status.value},
                    )
                    return updated

            updated = await retry_on_stale_version(
                attempt,
                retries=self.settings.max_write_retries,
                operation_name="sweep_expired_offers",
            )
            if updated is None:
                continue
            expired.append(updated)
            await publish_entry_changed(self.events, updated, "expired")
            if self.slot_release is not None:
                self.slot_release.enqueue(
                    updated.offered_appointment_id, updated.clinic_id, now=sweep_at
                )

        if self.slot_release is not None and expired:
            await self.slot_release.drain()

        logger.info("waitlist_offers_swept", expired=len(expired), now=sweep_at.isoformat())
        return len(expired)

    async def remove_entry(self, entry_id: UUID, actor: Actor) -> None:
        """
        Remove a waiting entry.

        Raises:
            NotFoundException: If entry not found
            NotRemovableException: Entry holds an offer or is final
        """

        async def attempt() -> WaitlistEntry:
            async with self.storage.atomic(waitlist_entry_key(entry_id)):
                entry = await self._get_or_404(entry_id)
                self._check_owner(entry, actor)
                if entry.status != WaitlistStatus.WAITING:
                    raise NotRemovableException(
                        f"Entry is {entry.status.value}; only waiting entries can be removed"
                    )
                await self.storage.waitlist.delete(entry.id, expected_version=entry.version)
                await self.audit.record(
                    entry.clinic_id,
                    actor,
                    "remove_waitlist_entry",
                    "waitlist_entry",
                    entry.id,
                    before=entry.model_dump(mode="json"),
                )
                return entry

        entry = await retry_on_stale_version(
            attempt,
            retries=self.settings.max_write_retries,
            operation_name="remove_entry",
        )
        logger.info("waitlist_entry_removed", waitlist_entry_id=str(entry.id))
        await publish_entry_changed(self.events, entry, "removed")

    async def get_entry(self, entry_id: UUID) -> WaitlistEntry:
        """
        Get waitlist entry by ID.

        Raises:
            NotFoundException: If entry not found
        """
        return await self._get_or_404(entry_id)

    async def list_waitlist(
        self,
        clinic_id: UUID,
        status: WaitlistStatus | None = None,
    ) -> list[WaitlistEntry]:
        """Entries of a clinic in queue order."""
        return await self.storage.waitlist.list_by_clinic(clinic_id, status)
