"""Tests for appointment endpoints."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from conftest import at, bearer

API = "/api/v1"


async def create_doctor(client: AsyncClient, headers: dict, clinic_id, specialty="Cardiology"):
    response = await client.post(
        f"{API}/doctors/",
        json={"clinic_id": str(clinic_id), "name": "Dr. A", "specialties": [specialty]},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def appointment_payload(clinic_id, doctor_id, patient_id, start_at, duration=30) -> dict:
    return {
        "clinic_id": str(clinic_id),
        "doctor_id": str(doctor_id),
        "patient_id": str(patient_id),
        "start_at": start_at.isoformat(),
        "duration_minutes": duration,
    }


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get(f"{API}/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_detailed_health_check(client: AsyncClient) -> None:
    """Memory backend reports no database to probe."""
    response = await client.get(f"{API}/health/detailed")
    assert response.status_code == 200
    data = response.json()
    assert data["storage_backend"] == "memory"
    assert data["database"] == "not_used"


@pytest.mark.asyncio
async def test_create_appointment(
    client: AsyncClient, staff_headers: dict, clinic_id, patient_id
) -> None:
    """Test booking an appointment."""
    doctor = await create_doctor(client, staff_headers, clinic_id)

    response = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], patient_id, at(10, 10)),
        headers=staff_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["version"] == 1
    assert data["booked_by"] == "secretary-1"
    assert "id" in data


@pytest.mark.asyncio
async def test_overlapping_booking_conflicts(
    client: AsyncClient, staff_headers: dict, clinic_id, patient_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)
    await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], patient_id, at(10, 10)),
        headers=staff_headers,
    )

    response = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], uuid4(), at(10, 10, 15)),
        headers=staff_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "SlotConflictException"


@pytest.mark.asyncio
async def test_patient_books_for_themselves(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)

    own = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], patient_id, at(10, 10)),
        headers=patient_headers,
    )
    other = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], uuid4(), at(10, 11)),
        headers=patient_headers,
    )

    assert own.status_code == 201
    assert other.status_code == 403
    assert other.json()["error"] == "ForbiddenException"


@pytest.mark.asyncio
async def test_invalid_payloads(client: AsyncClient, staff_headers: dict, clinic_id) -> None:
    naive = appointment_payload(clinic_id, uuid4(), uuid4(), at(10, 10))
    naive["start_at"] = "2025-03-10T10:00:00"
    response = await client.post(f"{API}/appointments/", json=naive, headers=staff_headers)
    assert response.status_code == 422

    empty = appointment_payload(clinic_id, uuid4(), uuid4(), at(10, 10), duration=0)
    response = await client.post(f"{API}/appointments/", json=empty, headers=staff_headers)
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidIntervalException"


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient) -> None:
    response = await client.get(f"{API}/appointments/{uuid4()}")
    assert response.status_code in (401, 403)

    response = await client.get(
        f"{API}/appointments/{uuid4()}", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_unknown_appointment(client: AsyncClient, staff_headers: dict) -> None:
    response = await client.get(f"{API}/appointments/{uuid4()}", headers=staff_headers)
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundException"


@pytest.mark.asyncio
async def test_status_changes(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)
    created = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], patient_id, at(10, 10)),
        headers=staff_headers,
    )
    appointment_id = created.json()["id"]

    # Patients may not mark attendance
    response = await client.patch(
        f"{API}/appointments/{appointment_id}/status",
        json={"status": "completed"},
        headers=patient_headers,
    )
    assert response.status_code == 403

    response = await client.patch(
        f"{API}/appointments/{appointment_id}/status",
        json={"status": "confirmed"},
        headers=patient_headers,
    )
    assert response.status_code == 200
    assert response.json()["confirmation_method"] == "patient_response"

    response = await client.patch(
        f"{API}/appointments/{appointment_id}/status",
        json={"status": "completed"},
        headers=staff_headers,
    )
    assert response.status_code == 200

    response = await client.patch(
        f"{API}/appointments/{appointment_id}/status",
        json={"status": "cancelled"},
        headers=staff_headers,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyTerminalException"


@pytest.mark.asyncio
async def test_reschedule_is_staff_only(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)
    created = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], patient_id, at(10, 10)),
        headers=staff_headers,
    )
    appointment_id = created.json()["id"]
    body = {"start_at": at(11, 9).isoformat()}

    response = await client.patch(
        f"{API}/appointments/{appointment_id}/schedule", json=body, headers=patient_headers
    )
    assert response.status_code == 403

    response = await client.patch(
        f"{API}/appointments/{appointment_id}/schedule", json=body, headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["start_at"].startswith("2025-03-11T09:00:00")


@pytest.mark.asyncio
async def test_list_appointments(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)
    for hour, patient in ((11, patient_id), (9, patient_id), (10, uuid4())):
        await client.post(
            f"{API}/appointments/",
            json=appointment_payload(clinic_id, doctor["id"], patient, at(10, hour)),
            headers=staff_headers,
        )
    window = {"start": at(10, 0).isoformat(), "end": at(11, 0).isoformat()}

    response = await client.get(
        f"{API}/appointments/",
        params={**window, "doctor_id": doctor["id"]},
        headers=staff_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    starts = [item["start_at"] for item in data["items"]]
    assert starts == sorted(starts)

    # Patients only see their own appointments
    response = await client.get(f"{API}/appointments/", params=window, headers=patient_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = await client.get(
        f"{API}/appointments/",
        params={**window, "patient_id": str(uuid4())},
        headers=patient_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_appointments_with_naive_window(
    client: AsyncClient, staff_headers: dict, clinic_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)

    response = await client.get(
        f"{API}/appointments/",
        params={"start": "2025-03-10T00:00:00", "end": "2025-03-11T00:00:00", "doctor_id": doctor["id"]},
        headers=staff_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidIntervalException"


@pytest.mark.asyncio
async def test_confirmation_flow(
    client: AsyncClient, staff_headers: dict, patient_headers: dict, clinic_id, patient_id
) -> None:
    doctor = await create_doctor(client, staff_headers, clinic_id)
    created = await client.post(
        f"{API}/appointments/",
        json=appointment_payload(clinic_id, doctor["id"], patient_id, at(2, 12)),
        headers=staff_headers,
    )
    appointment_id = created.json()["id"]

    response = await client.post(
        f"{API}/appointments/{appointment_id}/confirmation-request", headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["confirmation_requested_at"] is not None

    response = await client.post(
        f"{API}/appointments/pending-confirmations/mark", headers=patient_headers
    )
    assert response.status_code == 403

    response = await client.post(
        f"{API}/appointments/{appointment_id}/confirmation-response",
        json={"response": "confirm"},
        headers=bearer(str(uuid4()), "patient"),
    )
    assert response.status_code == 403

    response = await client.post(
        f"{API}/appointments/{appointment_id}/confirmation-response",
        json={"response": "confirm"},
        headers=patient_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
