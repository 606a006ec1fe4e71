"""Audit log endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import AuditServiceDep, StaffActor
from clinic_scheduler.schemas.audit import AuditLogListResponse

router = APIRouter()


@router.get(
    "/",
    response_model=AuditLogListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Audit"],
    summary="List audit log",
)
async def list_audit_logs(
    actor: StaffActor,
    service: AuditServiceDep,
    clinic_id: UUID = Query(...),
    entity_id: UUID | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
) -> AuditLogListResponse:
    """
    List audit entries of a clinic, newest first.

    Args:
        actor: Staff actor
        service: Audit service
        clinic_id: Clinic ID
        entity_id: Only entries about this appointment or waitlist entry
        limit: Maximum number of entries

    Returns:
        Audit entries
    """
    items = await service.list_entries(clinic_id, entity_id, limit)
    return AuditLogListResponse(total=len(items), items=items)
