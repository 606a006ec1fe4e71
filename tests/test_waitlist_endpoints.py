"""Tests for waitlist, report, audit and notification endpoints."""

from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import AsyncClient

from conftest import at, bearer
from test_appointments import API, appointment_payload, create_doctor


def join_payload(clinic_id, patient_id, specialty="Cardiology") -> dict:
    return {
        "clinic_id": str(clinic_id),
        "patient_id": str(patient_id),
        "specialty": specialty,
        "preferred_date_range": {"start": "2025-03-01", "end": "2025-03-31"},
    }


async def cancelled_offer(client, staff_headers, patient_headers, clinic_id, patient_id):
    """Put the patient on the waitlist, then free a fitting slot."""
    doctor = await create_doctor(client, staff_headers, clinic_id)
    joined = await client.post(
        f"{API}/waitlist/", json=join_payload(clinic_id, patient_id), headers=patient_headers
    )
    assert joined.status_code == 201
    booked = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], uuid4(), at(10, 10)),
        headers=staff_headers,
    )
    appointment_id = booked.json()["id"]
    cancelled = await client.patch(
        f"{API}/appointments/{appointment_id}/status",
        json={"status": "cancelled", "reason": "doctor away"},
        headers=staff_headers,
    )
    assert cancelled.status_code == 200
    return joined.json()["id"], appointment_id


@pytest.mark.asyncio
async def test_join_waitlist(
    client: AsyncClient, patient_headers: dict, clinic_id, patient_id
) -> None:
    response = await client.post(
        f"{API}/waitlist/", json=join_payload(clinic_id, patient_id), headers=patient_headers
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "waiting"
    assert data["version"] == 1

    response = await client.post(
        f"{API}/waitlist/", json=join_payload(clinic_id, uuid4()), headers=patient_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_join_with_past_range(
    client: AsyncClient, staff_headers: dict, clinic_id, patient_id
) -> None:
    payload = join_payload(clinic_id, patient_id)
    payload["preferred_date_range"] = {"start": "2025-02-01", "end": "2025-03-31"}

    response = await client.post(f"{API}/waitlist/", json=payload, headers=staff_headers)

    assert response.status_code == 422
    assert response.json()["error"] == "InvalidRangeException"


@pytest.mark.asyncio
async def test_offer_and_accept(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    entry_id, appointment_id = await cancelled_offer(
        client, staff_headers, patient_headers, clinic_id, patient_id
    )

    entry = await client.get(f"{API}/waitlist/{entry_id}", headers=patient_headers)
    assert entry.json()["status"] == "offered"
    assert entry.json()["offered_appointment_id"] == appointment_id

    response = await client.post(
        f"{API}/waitlist/{entry_id}/response",
        json={"response": "accept"},
        headers=patient_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    appointment = await client.get(f"{API}/appointments/{appointment_id}", headers=staff_headers)
    data = appointment.json()
    assert data["status"] == "confirmed"
    assert data["patient_id"] == str(patient_id)
    assert data["version"] == 3

    response = await client.post(
        f"{API}/waitlist/{entry_id}/response",
        json={"response": "accept"},
        headers=patient_headers,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyTerminalException"


@pytest.mark.asyncio
async def test_sweep_expired_offers(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id, clock
) -> None:
    entry_id, _ = await cancelled_offer(
        client, staff_headers, patient_headers, clinic_id, patient_id
    )

    response = await client.post(f"{API}/waitlist/offers/sweep", headers=patient_headers)
    assert response.status_code == 403

    clock.advance(timedelta(minutes=16))
    response = await client.post(f"{API}/waitlist/offers/sweep", headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["processed"] == 1

    response = await client.post(
        f"{API}/waitlist/{entry_id}/response",
        json={"response": "accept"},
        headers=patient_headers,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "OfferExpiredException"


@pytest.mark.asyncio
async def test_remove_entry(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    joined = await client.post(
        f"{API}/waitlist/", json=join_payload(clinic_id, patient_id), headers=patient_headers
    )
    entry_id = joined.json()["id"]

    other_patient = bearer(str(uuid4()), "patient")
    response = await client.delete(f"{API}/waitlist/{entry_id}", headers=other_patient)
    assert response.status_code == 403

    response = await client.delete(f"{API}/waitlist/{entry_id}", headers=patient_headers)
    assert response.status_code == 204

    response = await client.get(f"{API}/waitlist/{entry_id}", headers=staff_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_waitlist(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    await client.post(
        f"{API}/waitlist/", json=join_payload(clinic_id, patient_id), headers=patient_headers
    )

    response = await client.get(
        f"{API}/waitlist/",
        params={"clinic_id": str(clinic_id), "status": "waiting"},
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await client.get(
        f"{API}/waitlist/", params={"clinic_id": str(clinic_id)}, headers=patient_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_monthly_report(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)
    for hour in (9, 10):
        await client.post(
            f"{API}/appointments/",
            json=appointment_payload(clinic_id, doctor["id"], uuid4(), at(10, hour)),
            headers=staff_headers,
        )
    params = {"clinic_id": str(clinic_id), "year": 2025, "month": 3}

    response = await client.get(f"{API}/reports/monthly", params=params, headers=staff_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["by_status"] == {"scheduled": 2}
    assert data["by_doctor"] == {doctor["id"]: 2}

    response = await client.get(f"{API}/reports/monthly", params=params, headers=patient_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_audit_logs(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    _, appointment_id = await cancelled_offer(
        client, staff_headers, patient_headers, clinic_id, patient_id
    )

    response = await client.get(
        f"{API}/audit-logs/",
        params={"clinic_id": str(clinic_id), "entity_id": appointment_id},
        headers=staff_headers,
    )
    assert response.status_code == 200
    actions = [item["action"] for item in response.json()["items"]]
    assert actions == ["change_status", "create_appointment"]


@pytest.mark.asyncio
async def test_pending_notifications(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    await cancelled_offer(client, staff_headers, patient_headers, clinic_id, patient_id)

    response = await client.get(
        f"{API}/notifications/pending",
        params={"clinic_id": str(clinic_id)},
        headers=staff_headers,
    )
    assert response.status_code == 200
    items = response.json()["items"]
    assert sorted(i["intent_type"] for i in items) == ["appointment_cancelled", "waitlist_offer"]

    offer = next(i for i in items if i["intent_type"] == "waitlist_offer")
    response = await client.post(
        f"{API}/notifications/{offer['id']}/dispatched", headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "dispatched"

    response = await client.get(
        f"{API}/notifications/pending",
        params={"clinic_id": str(clinic_id)},
        headers=staff_headers,
    )
    assert response.json()["total"] == 1
