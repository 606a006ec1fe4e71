"""Notification outbox endpoints.

Used by the external messaging collaborator to pick up pending intents and
acknowledge them once handed off for delivery.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import NotificationServiceDep, StaffActor
from clinic_scheduler.schemas.notifications import (
    NotificationIntent,
    NotificationIntentListResponse,
)

router = APIRouter()


@router.get(
    "/pending",
    response_model=NotificationIntentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Notifications"],
    summary="List pending notification intents",
)
async def list_pending_notifications(
    actor: StaffActor,
    service: NotificationServiceDep,
    clinic_id: UUID = Query(...),
    limit: int = Query(100, ge=1, le=500),
) -> NotificationIntentListResponse:
    """List intents not yet dispatched, oldest first."""
    items = await service.list_pending(clinic_id, limit)
    return NotificationIntentListResponse(total=len(items), items=items)


@router.post(
    "/{intent_id}/dispatched",
    response_model=NotificationIntent,
    status_code=status.HTTP_200_OK,
    tags=["Notifications"],
    summary="Mark notification intent dispatched",
)
async def mark_notification_dispatched(
    intent_id: UUID,
    actor: StaffActor,
    service: NotificationServiceDep,
) -> NotificationIntent:
    """Acknowledge that an intent was handed off for delivery."""
    return await service.mark_dispatched(intent_id)
