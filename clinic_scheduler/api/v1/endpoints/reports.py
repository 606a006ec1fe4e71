"""Report endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import ReportServiceDep, StaffActor
from clinic_scheduler.schemas.reports import MonthlyReport

router = APIRouter()


@router.get(
    "/monthly",
    response_model=MonthlyReport,
    status_code=status.HTTP_200_OK,
    tags=["Reports"],
    summary="Monthly appointment report",
)
async def monthly_report(
    actor: StaffActor,
    service: ReportServiceDep,
    clinic_id: UUID = Query(...),
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
) -> MonthlyReport:
    """
    Appointment counts and no-show rate for a calendar month.

    Args:
        actor: Staff actor
        service: Report service
        clinic_id: Clinic ID
        year: Calendar year
        month: Calendar month

    Returns:
        Monthly report
    """
    return await service.monthly_report(clinic_id, year, month)
