"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.core.exceptions import ForbiddenException
from clinic_scheduler.dependencies import (
    AppointmentServiceDep,
    ConfirmationServiceDep,
    CurrentActor,
    StaffActor,
)
from clinic_scheduler.schemas.actors import Actor, ActorClass
from clinic_scheduler.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentStatus,
    AppointmentStatusUpdate,
    ConfirmationResponseRequest,
    SweepResult,
)

router = APIRouter()

# Statuses a patient may move their own appointment to
PATIENT_STATUSES = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED})


def _ensure_patient_access(actor: Actor, patient_id: UUID) -> None:
    if actor.actor_class == ActorClass.PATIENT and actor.id != str(patient_id):
        raise ForbiddenException("Access denied to this appointment")


@router.post(
    "/",
    response_model=Appointment,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    service: AppointmentServiceDep,
) -> Appointment:
    """
    Book an appointment in a free slot of the doctor.

    Patients can only book for themselves.

    Args:
        data: Appointment creation data
        actor: Authenticated actor
        service: Appointment service

    Returns:
        Created appointment
    """
    _ensure_patient_access(actor, data.patient_id)
    return await service.create_appointment(data, actor)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    service: AppointmentServiceDep,
    start: datetime = Query(..., description="Window start (inclusive)"),
    end: datetime = Query(..., description="Window end (exclusive)"),
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    clinic_id: UUID | None = Query(None),
) -> AppointmentListResponse:
    """
    List appointments intersecting a time window, ordered by start.

    Patients only see their own appointments.

    Args:
        actor: Authenticated actor
        service: Appointment service
        start: Window start
        end: Window end
        doctor_id: Filter by doctor
        patient_id: Filter by patient
        clinic_id: Filter by clinic

    Returns:
        Appointments in the window
    """
    if actor.actor_class == ActorClass.PATIENT:
        if patient_id is None:
            try:
                patient_id = UUID(actor.id)
            except ValueError:
                raise ForbiddenException("Access denied to these appointments") from None
        _ensure_patient_access(actor, patient_id)

    items = await service.list_appointments(
        start,
        end,
        doctor_id=doctor_id,
        patient_id=patient_id,
        clinic_id=clinic_id,
    )
    return AppointmentListResponse(total=len(items), items=items)


@router.post(
    "/pending-confirmations/mark",
    response_model=SweepResult,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Flag unanswered confirmation requests",
)
async def mark_pending_confirmations(
    actor: StaffActor,
    service: ConfirmationServiceDep,
) -> SweepResult:
    """
    Move overdue confirmation requests to awaiting_confirmation.

    Meant to be called periodically by an external scheduler.

    Returns:
        Number of appointments moved
    """
    return SweepResult(processed=await service.mark_pending_confirmations())


@router.get(
    "/{appointment_id}",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment details",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: AppointmentServiceDep,
) -> Appointment:
    """
    Get appointment details by ID.

    Args:
        appointment_id: Appointment ID
        actor: Authenticated actor
        service: Appointment service

    Returns:
        Appointment details
    """
    appointment = await service.get_appointment(appointment_id)
    _ensure_patient_access(actor, appointment.patient_id)
    return appointment


@router.patch(
    "/{appointment_id}/status",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Change appointment status",
)
async def change_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    actor: CurrentActor,
    service: AppointmentServiceDep,
) -> Appointment:
    """
    Move an appointment to a new status.

    Patients may confirm or cancel their own appointments; staff may apply
    any legal transition. Cancelling offers the slot to the waitlist.

    Args:
        appointment_id: Appointment ID
        data: Target status and reason
        actor: Authenticated actor
        service: Appointment service

    Returns:
        Updated appointment
    """
    if actor.actor_class == ActorClass.PATIENT:
        appointment = await service.get_appointment(appointment_id)
        _ensure_patient_access(actor, appointment.patient_id)
        if data.status not in PATIENT_STATUSES:
            raise ForbiddenException("Patients can only confirm or cancel appointments")

    return await service.change_status(appointment_id, data.status, actor, reason=data.reason)


@router.patch(
    "/{appointment_id}/schedule",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    actor: StaffActor,
    service: AppointmentServiceDep,
) -> Appointment:
    """
    Move an appointment to another interval of the same doctor.

    Args:
        appointment_id: Appointment ID
        data: New start, optional duration and reason
        actor: Staff actor
        service: Appointment service

    Returns:
        Updated appointment
    """
    return await service.reschedule_appointment(
        appointment_id,
        data.start_at,
        actor,
        duration_minutes=data.duration_minutes,
        reason=data.reason,
    )


@router.post(
    "/{appointment_id}/confirmation-request",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Ask the patient to confirm",
)
async def request_confirmation(
    appointment_id: UUID,
    actor: StaffActor,
    service: ConfirmationServiceDep,
) -> Appointment:
    """
    Record a confirmation request and queue the message for the patient.

    Args:
        appointment_id: Appointment ID
        actor: Staff actor
        service: Confirmation service

    Returns:
        Updated appointment
    """
    return await service.request_confirmation(appointment_id, actor)


@router.post(
    "/{appointment_id}/confirmation-response",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Answer a confirmation request",
)
async def respond_to_confirmation(
    appointment_id: UUID,
    data: ConfirmationResponseRequest,
    actor: CurrentActor,
    service: ConfirmationServiceDep,
) -> Appointment:
    """
    Confirm or cancel in answer to a confirmation request.

    Args:
        appointment_id: Appointment ID
        data: Patient answer
        actor: Authenticated actor
        service: Confirmation service

    Returns:
        Updated appointment
    """
    return await service.process_confirmation_response(appointment_id, data.response, actor)
