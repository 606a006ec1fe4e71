"""Tests for the in-process event bus."""

from uuid import uuid4

import pytest

from clinic_scheduler.core.events import DomainEvent, EventBus
from clinic_scheduler.core.exceptions import SlotConflictException
from clinic_scheduler.schemas.appointments import AppointmentStatus
from clinic_scheduler.services.waitlist_matcher import WAITLIST_ENTRY_CHANGED
from conftest import at


def make_event(name="appointment_changed"):
    return DomainEvent(name=name, clinic_id=uuid4(), entity_id=uuid4())


@pytest.mark.asyncio
async def test_subscribers_filter_by_name():
    bus = EventBus()
    everything, appointments_only = [], []

    async def on_any(event):
        everything.append(event.name)

    async def on_appointment(event):
        appointments_only.append(event.name)

    bus.subscribe(on_any)
    bus.subscribe(on_appointment, "appointment_changed")

    await bus.publish(make_event("appointment_changed"))
    await bus.publish(make_event(WAITLIST_ENTRY_CHANGED))

    assert everything == ["appointment_changed", WAITLIST_ENTRY_CHANGED]
    assert appointments_only == ["appointment_changed"]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event)

    unsubscribe = bus.subscribe(handler)
    unsubscribe()
    unsubscribe()

    await bus.publish(make_event())
    assert received == []


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_others():
    bus = EventBus()
    received = []

    async def broken(event):
        raise RuntimeError("boom")

    async def handler(event):
        received.append(event)

    bus.subscribe(broken)
    bus.subscribe(handler)

    await bus.publish(make_event())
    assert len(received) == 1


@pytest.mark.asyncio
async def test_failed_write_publishes_nothing(book, cardiologist, events):
    await book(cardiologist, at(10, 10))
    received = []

    async def handler(event):
        received.append(event)

    events.subscribe(handler)

    with pytest.raises(SlotConflictException):
        await book(cardiologist, at(10, 10))

    assert received == []


@pytest.mark.asyncio
async def test_waitlist_offer_events(
    book, join, cardiologist, appointment_service, staff, events
):
    received = []

    async def handler(event):
        received.append(event.payload["change"])

    events.subscribe(handler, WAITLIST_ENTRY_CHANGED)

    await join()
    appointment = await book(cardiologist, at(10, 10))
    await appointment_service.change_status(appointment.id, AppointmentStatus.CANCELLED, staff)

    assert received == ["joined", "offered"]
