"""FastAPI dependencies."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.events import EventBus
from clinic_scheduler.core.exceptions import ForbiddenException
from clinic_scheduler.core.redis_client import CacheManager, get_redis_client
from clinic_scheduler.core.security import decode_access_token
from clinic_scheduler.database import get_db
from clinic_scheduler.repositories.base import Storage
from clinic_scheduler.repositories.memory import MemoryStorage
from clinic_scheduler.repositories.postgres import PostgresStorage
from clinic_scheduler.schemas.actors import Actor, ActorRole
from clinic_scheduler.services.appointment_service import AppointmentService
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.confirmation_service import ConfirmationService
from clinic_scheduler.services.doctor_service import DoctorService
from clinic_scheduler.services.notification_service import NotificationService
from clinic_scheduler.services.report_service import ReportService
from clinic_scheduler.services.waitlist_matcher import SlotReleaseQueue, WaitlistMatcher
from clinic_scheduler.services.waitlist_service import WaitlistService

# Security
security = HTTPBearer()

# Process-wide singletons
_memory_storage: MemoryStorage | None = None
_event_bus = EventBus()
_system_clock = SystemClock()


def get_memory_storage() -> MemoryStorage:
    """Get the process-wide in-memory store."""
    global _memory_storage

    if _memory_storage is None:
        _memory_storage = MemoryStorage()
    return _memory_storage


async def get_storage(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AsyncGenerator[Storage, None]:
    """
    Storage for one request.

    PostgreSQL storage wraps the request's session; the memory backend is
    shared by every request of the process.
    """
    if get_settings().storage_backend == "memory":
        yield get_memory_storage()
    else:
        yield PostgresStorage(db)


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    return _event_bus


def get_clock() -> Clock:
    """Get the time source."""
    return _system_clock


def get_cache_manager() -> CacheManager | None:
    """Get a cache manager, or None when Redis is not configured."""
    client = get_redis_client()
    return CacheManager(client) if client is not None else None


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Extract the acting identity from the bearer token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Actor built from the sub and role claims

    Raises:
        HTTPException: If token is invalid, expired or lacks a known role
    """
    payload = decode_access_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor_id = payload.get("sub")
    if actor_id is None or not isinstance(actor_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = ActorRole(payload.get("role", ActorRole.PATIENT.value))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown actor role",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(id=actor_id, role=role)


async def require_staff(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """
    Require a staff or system actor.

    Raises:
        ForbiddenException: If the actor is a patient
    """
    if not (actor.is_staff or actor.role == ActorRole.SYSTEM):
        raise ForbiddenException("Staff access required")
    return actor


# Type aliases for dependency injection
StorageDep = Annotated[Storage, Depends(get_storage)]
ClockDep = Annotated[Clock, Depends(get_clock)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
CacheDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
StaffActor = Annotated[Actor, Depends(require_staff)]


def get_audit_service(storage: StorageDep, clock: ClockDep) -> AuditService:
    return AuditService(storage, clock)


def get_notification_service(storage: StorageDep, clock: ClockDep) -> NotificationService:
    return NotificationService(storage, clock)


def get_doctor_service(storage: StorageDep, cache: CacheDep, clock: ClockDep) -> DoctorService:
    return DoctorService(storage, cache, clock)


def get_slot_release_queue(
    storage: StorageDep,
    doctors: Annotated[DoctorService, Depends(get_doctor_service)],
    audit: Annotated[AuditService, Depends(get_audit_service)],
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
    events: EventBusDep,
    clock: ClockDep,
    settings: SettingsDep,
) -> SlotReleaseQueue:
    matcher = WaitlistMatcher(storage, doctors, audit, notifications, events, clock, settings)
    return SlotReleaseQueue(matcher)


def get_appointment_service(
    storage: StorageDep,
    audit: Annotated[AuditService, Depends(get_audit_service)],
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
    events: EventBusDep,
    slot_release: Annotated[SlotReleaseQueue, Depends(get_slot_release_queue)],
    clock: ClockDep,
    settings: SettingsDep,
) -> AppointmentService:
    return AppointmentService(
        storage, audit, notifications, events, slot_release, clock, settings
    )


def get_waitlist_service(
    storage: StorageDep,
    appointments: Annotated[AppointmentService, Depends(get_appointment_service)],
    audit: Annotated[AuditService, Depends(get_audit_service)],
    events: EventBusDep,
    slot_release: Annotated[SlotReleaseQueue, Depends(get_slot_release_queue)],
    clock: ClockDep,
    settings: SettingsDep,
) -> WaitlistService:
    return WaitlistService(storage, appointments, audit, events, slot_release, clock, settings)


def get_confirmation_service(
    appointments: Annotated[AppointmentService, Depends(get_appointment_service)],
    clock: ClockDep,
    settings: SettingsDep,
) -> ConfirmationService:
    return ConfirmationService(appointments, clock, settings)


def get_report_service(storage: StorageDep, settings: SettingsDep) -> ReportService:
    return ReportService(storage, settings)


AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
DoctorServiceDep = Annotated[DoctorService, Depends(get_doctor_service)]
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
WaitlistServiceDep = Annotated[WaitlistService, Depends(get_waitlist_service)]
ConfirmationServiceDep = Annotated[ConfirmationService, Depends(get_confirmation_service)]
ReportServiceDep = Annotated[ReportService, Depends(get_report_service)]
