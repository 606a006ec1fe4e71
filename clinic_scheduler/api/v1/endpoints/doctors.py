"""Doctor roster endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import CurrentActor, DoctorServiceDep, StaffActor
from clinic_scheduler.schemas.doctors import Doctor, DoctorCreate, DoctorListResponse

router = APIRouter()


@router.post(
    "/",
    response_model=Doctor,
    status_code=status.HTTP_201_CREATED,
    tags=["Doctors"],
    summary="Add doctor to roster",
)
async def create_doctor(
    data: DoctorCreate,
    actor: StaffActor,
    service: DoctorServiceDep,
) -> Doctor:
    """Add a doctor and their specialties to a clinic roster."""
    return await service.create_doctor(data)


@router.get(
    "/",
    response_model=DoctorListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Doctors"],
    summary="List clinic roster",
)
async def list_doctors(
    actor: CurrentActor,
    service: DoctorServiceDep,
    clinic_id: UUID = Query(...),
) -> DoctorListResponse:
    """List the doctors of a clinic."""
    items = await service.list_doctors(clinic_id)
    return DoctorListResponse(total=len(items), items=items)


@router.get(
    "/{doctor_id}",
    response_model=Doctor,
    status_code=status.HTTP_200_OK,
    tags=["Doctors"],
    summary="Get doctor",
)
async def get_doctor(
    doctor_id: UUID,
    actor: CurrentActor,
    service: DoctorServiceDep,
) -> Doctor:
    """Get a doctor by ID."""
    return await service.get_doctor(doctor_id)
