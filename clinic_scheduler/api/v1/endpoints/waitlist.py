"""Waitlist endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduler.core.exceptions import ForbiddenException
from clinic_scheduler.dependencies import CurrentActor, StaffActor, WaitlistServiceDep
from clinic_scheduler.schemas.actors import ActorClass
from clinic_scheduler.schemas.appointments import SweepResult
from clinic_scheduler.schemas.waitlist import (
    OfferResponseRequest,
    WaitlistEntry,
    WaitlistJoin,
    WaitlistListResponse,
    WaitlistStatus,
)

router = APIRouter()


@router.post(
    "/",
    response_model=WaitlistEntry,
    status_code=status.HTTP_201_CREATED,
    tags=["Waitlist"],
    summary="Join waitlist",
)
async def join_waitlist(
    data: WaitlistJoin,
    actor: CurrentActor,
    service: WaitlistServiceDep,
) -> WaitlistEntry:
    """
    Put a patient on the waitlist for a specialty and date range.

    Args:
        data: Waitlist criteria
        actor: Authenticated actor
        service: Waitlist service

    Returns:
        New waiting entry
    """
    if actor.actor_class == ActorClass.PATIENT and actor.id != str(data.patient_id):
        raise ForbiddenException("Patients can only join the waitlist for themselves")
    return await service.join_waitlist(data, actor)


@router.get(
    "/",
    response_model=WaitlistListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Waitlist"],
    summary="List waitlist",
)
async def list_waitlist(
    actor: StaffActor,
    service: WaitlistServiceDep,
    clinic_id: UUID = Query(...),
    status_filter: WaitlistStatus | None = Query(None, alias="status"),
) -> WaitlistListResponse:
    """
    List a clinic's waitlist in queue order.

    Args:
        actor: Staff actor
        service: Waitlist service
        clinic_id: Clinic ID
        status_filter: Filter by entry status

    Returns:
        Entries ordered by join time
    """
    items = await service.list_waitlist(clinic_id, status_filter)
    return WaitlistListResponse(total=len(items), items=items)


@router.post(
    "/offers/sweep",
    response_model=SweepResult,
    status_code=status.HTTP_200_OK,
    tags=["Waitlist"],
    summary="Expire lapsed offers",
)
async def sweep_expired_offers(
    actor: StaffActor,
    service: WaitlistServiceDep,
) -> SweepResult:
    """
    Expire lapsed offers and offer their slots to the next patients.

    Meant to be called periodically by an external scheduler.

    Returns:
        Number of offers expired
    """
    return SweepResult(processed=await service.sweep_expired_offers())


@router.get(
    "/{entry_id}",
    response_model=WaitlistEntry,
    status_code=status.HTTP_200_OK,
    tags=["Waitlist"],
    summary="Get waitlist entry",
)
async def get_waitlist_entry(
    entry_id: UUID,
    actor: CurrentActor,
    service: WaitlistServiceDep,
) -> WaitlistEntry:
    """
    Get a waitlist entry by ID.

    Args:
        entry_id: Waitlist entry ID
        actor: Authenticated actor
        service: Waitlist service

    Returns:
        Waitlist entry
    """
    entry = await service.get_entry(entry_id)
    if actor.actor_class == ActorClass.PATIENT and actor.id != str(entry.patient_id):
        raise ForbiddenException("Access denied to this waitlist entry")
    return entry


@router.post(
    "/{entry_id}/response",
    response_model=WaitlistEntry,
    status_code=status.HTTP_200_OK,
    tags=["Waitlist"],
    summary="Answer waitlist offer",
)
async def respond_to_offer(
    entry_id: UUID,
    data: OfferResponseRequest,
    actor: CurrentActor,
    service: WaitlistServiceDep,
) -> WaitlistEntry:
    """
    Accept or decline the slot offered to a waitlist entry.

    Args:
        entry_id: Waitlist entry ID
        data: Accept or decline
        actor: Authenticated actor
        service: Waitlist service

    Returns:
        Updated entry
    """
    return await service.respond_to_offer(entry_id, data.response, actor)


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Waitlist"],
    summary="Leave waitlist",
)
async def remove_waitlist_entry(
    entry_id: UUID,
    actor: CurrentActor,
    service: WaitlistServiceDep,
) -> None:
    """
    Remove a waiting entry from the waitlist.

    Args:
        entry_id: Waitlist entry ID
        actor: Authenticated actor
        service: Waitlist service
    """
    await service.remove_entry(entry_id, actor)
