"""Tests for freed-slot matching and the slot release queue."""

from datetime import timedelta
from uuid import uuid4

import pytest

from clinic_scheduler.schemas.appointments import AppointmentCreate, AppointmentStatus
from clinic_scheduler.schemas.notifications import IntentType
from clinic_scheduler.schemas.waitlist import WaitlistStatus
from clinic_scheduler.services.waitlist_matcher import SlotReleaseQueue, is_eligible
from conftest import NOW, at


async def cancelled_slot(book, appointment_service, staff, doctor, start_at):
    """Book and cancel a slot while nobody is waiting."""
    appointment = await book(doctor, start_at)
    return await appointment_service.change_status(
        appointment.id, AppointmentStatus.CANCELLED, staff
    )


@pytest.mark.asyncio
async def test_cancellation_offers_slot_to_waiting_patient(
    book, join, cardiologist, appointment_service, staff, storage, clock
):
    entry = await join()
    appointment = await book(cardiologist, at(10, 10))

    await appointment_service.change_status(appointment.id, AppointmentStatus.CANCELLED, staff)

    offered = await storage.waitlist.get(entry.id)
    assert offered.status == WaitlistStatus.OFFERED
    assert offered.offered_appointment_id == appointment.id
    assert offered.offered_at == clock.now()
    assert offered.offer_expires_at == clock.now() + timedelta(minutes=15)
    assert offered.version == 2

    intents = await storage.notifications.list_pending(appointment.clinic_id)
    offer_intents = [i for i in intents if i.intent_type == IntentType.WAITLIST_OFFER]
    assert len(offer_intents) == 1
    assert offer_intents[0].patient_id == entry.patient_id


@pytest.mark.asyncio
async def test_first_come_first_served(
    book, join, cardiologist, appointment_service, matcher, staff
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    first = await join()
    await join()

    offered = await matcher.offer_freed_slot(slot.id)

    assert offered.id == first.id


@pytest.mark.asyncio
async def test_specialty_match_ignores_case(
    book, join, cardiologist, appointment_service, matcher, staff
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    entry = await join(specialty="  cardiology ")

    offered = await matcher.offer_freed_slot(slot.id)

    assert offered.id == entry.id


@pytest.mark.asyncio
async def test_ineligible_entries_are_passed_over(
    book, join, cardiologist, dermatologist, appointment_service, matcher, staff
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    await join(specialty="Dermatology")
    await join(preferred_doctor_id=dermatologist.id)
    await join(start=at(11, 0), end=at(20, 0))
    fitting = await join(preferred_doctor_id=cardiologist.id, start=at(10, 0), end=at(10, 0))

    offered = await matcher.offer_freed_slot(slot.id)

    assert offered.id == fitting.id


@pytest.mark.asyncio
async def test_no_eligible_entry(book, join, cardiologist, appointment_service, matcher, staff):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    entry = await join(specialty="Dermatology")

    assert await matcher.offer_freed_slot(slot.id) is None
    assert (await matcher.storage.waitlist.get(entry.id)).status == WaitlistStatus.WAITING


@pytest.mark.asyncio
async def test_active_appointment_is_not_offered(book, join, cardiologist, matcher):
    appointment = await book(cardiologist, at(10, 10))
    await join()

    assert await matcher.offer_freed_slot(appointment.id) is None


@pytest.mark.asyncio
async def test_unknown_appointment(matcher):
    assert await matcher.offer_freed_slot(uuid4()) is None


@pytest.mark.asyncio
async def test_started_slot_is_not_offered(
    book, join, cardiologist, appointment_service, matcher, staff
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    await join()

    assert await matcher.offer_freed_slot(slot.id, now=at(10, 10)) is None


@pytest.mark.asyncio
async def test_slot_offered_to_one_entry_at_a_time(
    book, join, cardiologist, appointment_service, matcher, staff, storage
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    first = await join()
    second = await join()

    assert (await matcher.offer_freed_slot(slot.id)).id == first.id
    assert await matcher.offer_freed_slot(slot.id) is None

    assert (await storage.waitlist.get(second.id)).status == WaitlistStatus.WAITING


@pytest.mark.asyncio
async def test_rebooked_slot_is_not_offered(
    book, join, cardiologist, appointment_service, matcher, staff
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    await book(cardiologist, at(10, 10))
    await join()

    assert await matcher.offer_freed_slot(slot.id) is None


@pytest.mark.asyncio
async def test_unknown_doctor(join, appointment_service, matcher, staff, clinic_id, storage):
    appointment = await appointment_service.create_appointment(
        AppointmentCreate(
            clinic_id=clinic_id,
            doctor_id=uuid4(),
            patient_id=uuid4(),
            start_at=at(10, 10),
            duration_minutes=30,
        ),
        staff,
    )
    await appointment_service.change_status(appointment.id, AppointmentStatus.CANCELLED, staff)
    await join()

    assert await matcher.offer_freed_slot(appointment.id) is None


@pytest.mark.asyncio
async def test_offer_is_audited_as_system(
    book, join, cardiologist, appointment_service, matcher, staff, storage
):
    slot = await cancelled_slot(book, appointment_service, staff, cardiologist, at(10, 10))
    entry = await join()

    await matcher.offer_freed_slot(slot.id)

    audit = await storage.audit_logs.list_entries(slot.clinic_id, entry.id)
    assert audit[0].action == "offer_waitlist_slot"
    assert audit[0].actor_id == "waitlist-matcher"


@pytest.mark.asyncio
async def test_is_eligible_date_bounds(book, join, cardiologist):
    appointment = await book(cardiologist, at(10, 10))
    entry = await join(start=at(10, 0), end=at(12, 0))

    assert is_eligible(entry, appointment, ["Cardiology"], at(10, 0).date())
    assert is_eligible(entry, appointment, ["Cardiology"], at(12, 0).date())
    assert not is_eligible(entry, appointment, ["Cardiology"], at(13, 0).date())
    assert not is_eligible(entry, appointment, ["Dermatology"], at(10, 0).date())


class FakeMatcher:
    """Matcher stand-in that records calls and can fail on chosen slots."""

    def __init__(self, failing=(), waiting=0):
        self.calls = []
        self.failing = set(failing)
        self.waiting = waiting

    async def offer_freed_slot(self, appointment_id, now=None):
        self.calls.append(appointment_id)
        if appointment_id in self.failing:
            raise RuntimeError("storage unavailable")
        return None

    async def waiting_count(self, clinic_id):
        return self.waiting


@pytest.mark.asyncio
async def test_release_queue_keeps_draining_after_failure():
    first, second = uuid4(), uuid4()
    matcher = FakeMatcher(failing={first})
    queue = SlotReleaseQueue(matcher)
    clinic_id = uuid4()

    queue.enqueue(first, clinic_id)
    queue.enqueue(second, clinic_id)
    offers = await queue.drain()

    assert offers == []
    assert matcher.calls == [first, second]
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_release_queue_caps_cascades():
    clinic_id = uuid4()
    queue = SlotReleaseQueue(FakeMatcher(waiting=1))
    requeued = []

    async def requeue_forever(appointment_id, now=None):
        requeued.append(appointment_id)
        queue.enqueue(uuid4(), clinic_id)
        return None

    queue.matcher.offer_freed_slot = requeue_forever

    await queue.release(uuid4(), clinic_id, now=NOW)

    # one queued slot plus one waiting entry
    assert len(requeued) == 2
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_cancellation_without_waiting_entries(
    book, cardiologist, appointment_service, staff, storage
):
    appointment = await book(cardiologist, at(10, 9))

    cancelled = await appointment_service.change_status(
        appointment.id, AppointmentStatus.CANCELLED, staff
    )

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert storage.waitlist.rows == {}
    intents = await storage.notifications.list_pending(appointment.clinic_id)
    assert [i.intent_type for i in intents] == [IntentType.APPOINTMENT_CANCELLED]
