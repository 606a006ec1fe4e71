"""Tests for the audit recorder."""

from datetime import timedelta

import pytest

from clinic_scheduler.schemas.appointments import AppointmentStatus
from conftest import at


@pytest.mark.asyncio
async def test_audit_failure_does_not_undo_the_operation(
    book, cardiologist, storage, monkeypatch
):
    async def broken_add(entry):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(storage.audit_logs, "add", broken_add)

    appointment = await book(cardiologist, at(10, 10))

    assert await storage.appointments.get(appointment.id) == appointment
    assert storage.audit_logs.rows == {}


@pytest.mark.asyncio
async def test_entries_listed_newest_first(
    book, cardiologist, appointment_service, audit_service, staff, clock
):
    appointment = await book(cardiologist, at(10, 10))
    clock.advance(timedelta(minutes=5))
    await appointment_service.change_status(appointment.id, AppointmentStatus.CONFIRMED, staff)

    entries = await audit_service.list_entries(appointment.clinic_id, appointment.id)

    assert [e.action for e in entries] == ["change_status", "create_appointment"]
    assert entries[0].actor_id == staff.id
    assert entries[0].timestamp > entries[1].timestamp


@pytest.mark.asyncio
async def test_audit_values_are_json_ready(book, cardiologist, appointment_service, staff, storage):
    appointment = await book(cardiologist, at(10, 10))

    await appointment_service.reschedule_appointment(appointment.id, at(10, 11), staff)

    entries = await storage.audit_logs.list_entries(appointment.clinic_id, appointment.id)
    assert entries[0].action == "reschedule_appointment"
    assert entries[0].after["start_at"] == "2025-03-10T11:00:00Z"


@pytest.mark.asyncio
async def test_limit(book, cardiologist, audit_service, clinic_id):
    for hour in (9, 10, 11):
        await book(cardiologist, at(10, hour))

    assert len(await audit_service.list_entries(clinic_id, limit=2)) == 2
