import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()
os.environ.setdefault("STORAGE_BACKEND", "memory")

from clinic_scheduler.config import Settings, get_settings
from clinic_scheduler.core.clock import FixedClock
from clinic_scheduler.core.events import EventBus
from clinic_scheduler.core.security import create_access_token
from clinic_scheduler.dependencies import (
    get_cache_manager,
    get_clock,
    get_event_bus,
    get_storage,
)
from clinic_scheduler.main import app
from clinic_scheduler.repositories.memory import MemoryStorage
from clinic_scheduler.schemas.actors import Actor, ActorRole
from clinic_scheduler.schemas.appointments import Appointment, AppointmentCreate
from clinic_scheduler.schemas.doctors import Doctor, DoctorCreate
from clinic_scheduler.schemas.waitlist import DateRange, WaitlistEntry, WaitlistJoin
from clinic_scheduler.services.appointment_service import AppointmentService
from clinic_scheduler.services.audit_service import AuditService
from clinic_scheduler.services.confirmation_service import ConfirmationService
from clinic_scheduler.services.doctor_service import DoctorService
from clinic_scheduler.services.notification_service import NotificationService
from clinic_scheduler.services.report_service import ReportService
from clinic_scheduler.services.waitlist_matcher import SlotReleaseQueue, WaitlistMatcher
from clinic_scheduler.services.waitlist_service import WaitlistService

# Saturday morning at the start of the March booking window
NOW = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


def at(day: int, hour: int, minute: int = 0, month: int = 3) -> datetime:
    """An instant in 2025, UTC."""
    return datetime(2025, month, day, hour, minute, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    """Settings pinned to the default scheduling policy."""
    return get_settings().model_copy(
        update={
            "storage_backend": "memory",
            "offer_window_minutes": 15,
            "max_write_retries": 3,
            "confirmation_response_grace_hours": 12,
            "confirmation_lead_hours": 24,
            "clinic_timezone": "UTC",
        }
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def clinic_id() -> UUID:
    return uuid4()


@pytest.fixture
def staff() -> Actor:
    return Actor(id="secretary-1", role=ActorRole.SECRETARY)


@pytest.fixture
def audit_service(storage: MemoryStorage, clock: FixedClock) -> AuditService:
    return AuditService(storage, clock)


@pytest.fixture
def notification_service(storage: MemoryStorage, clock: FixedClock) -> NotificationService:
    return NotificationService(storage, clock)


@pytest.fixture
def doctor_service(storage: MemoryStorage, clock: FixedClock) -> DoctorService:
    return DoctorService(storage, None, clock)


@pytest.fixture
def matcher(
    storage: MemoryStorage,
    doctor_service: DoctorService,
    audit_service: AuditService,
    notification_service: NotificationService,
    events: EventBus,
    clock: FixedClock,
    settings: Settings,
) -> WaitlistMatcher:
    return WaitlistMatcher(
        storage, doctor_service, audit_service, notification_service, events, clock, settings
    )


@pytest.fixture
def slot_release(matcher: WaitlistMatcher) -> SlotReleaseQueue:
    return SlotReleaseQueue(matcher)


@pytest.fixture
def appointment_service(
    storage: MemoryStorage,
    audit_service: AuditService,
    notification_service: NotificationService,
    events: EventBus,
    slot_release: SlotReleaseQueue,
    clock: FixedClock,
    settings: Settings,
) -> AppointmentService:
    return AppointmentService(
        storage, audit_service, notification_service, events, slot_release, clock, settings
    )


@pytest.fixture
def waitlist_service(
    storage: MemoryStorage,
    appointment_service: AppointmentService,
    audit_service: AuditService,
    events: EventBus,
    slot_release: SlotReleaseQueue,
    clock: FixedClock,
    settings: Settings,
) -> WaitlistService:
    return WaitlistService(
        storage, appointment_service, audit_service, events, slot_release, clock, settings
    )


@pytest.fixture
def confirmation_service(
    appointment_service: AppointmentService,
    clock: FixedClock,
    settings: Settings,
) -> ConfirmationService:
    return ConfirmationService(appointment_service, clock, settings)


@pytest.fixture
def report_service(storage: MemoryStorage, settings: Settings) -> ReportService:
    return ReportService(storage, settings)


@pytest_asyncio.fixture
async def cardiologist(doctor_service: DoctorService, clinic_id: UUID) -> Doctor:
    """Dr. A, Cardiology."""
    return await doctor_service.create_doctor(
        DoctorCreate(clinic_id=clinic_id, name="Dr. A", specialties=["Cardiology"])
    )


@pytest_asyncio.fixture
async def dermatologist(doctor_service: DoctorService, clinic_id: UUID) -> Doctor:
    """Dr. B, Dermatology."""
    return await doctor_service.create_doctor(
        DoctorCreate(clinic_id=clinic_id, name="Dr. B", specialties=["Dermatology"])
    )


@pytest.fixture
def book(
    appointment_service: AppointmentService,
    clinic_id: UUID,
    staff: Actor,
) -> Callable[..., Awaitable[Appointment]]:
    """Book an appointment as staff."""

    async def _book(
        doctor: Doctor,
        start_at: datetime,
        duration_minutes: int = 30,
        patient_id: UUID | None = None,
    ) -> Appointment:
        return await appointment_service.create_appointment(
            AppointmentCreate(
                clinic_id=clinic_id,
                doctor_id=doctor.id,
                patient_id=patient_id or uuid4(),
                start_at=start_at,
                duration_minutes=duration_minutes,
            ),
            staff,
        )

    return _book


@pytest.fixture
def join(
    waitlist_service: WaitlistService,
    clinic_id: UUID,
    clock: FixedClock,
    staff: Actor,
) -> Callable[..., Awaitable[WaitlistEntry]]:
    """Join the waitlist, one minute after the previous join."""

    async def _join(
        specialty: str = "Cardiology",
        start: datetime | None = None,
        end: datetime | None = None,
        preferred_doctor_id: UUID | None = None,
        patient_id: UUID | None = None,
    ) -> WaitlistEntry:
        entry = await waitlist_service.join_waitlist(
            WaitlistJoin(
                clinic_id=clinic_id,
                patient_id=patient_id or uuid4(),
                specialty=specialty,
                preferred_doctor_id=preferred_doctor_id,
                preferred_date_range=DateRange(
                    start=(start or at(1, 0)).date(),
                    end=(end or at(31, 0)).date(),
                ),
            ),
            staff,
        )
        clock.advance(timedelta(minutes=1))
        return entry

    return _join


@pytest_asyncio.fixture
async def client(
    storage: MemoryStorage,
    clock: FixedClock,
    events: EventBus,
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by the in-memory store."""

    async def override_get_storage() -> AsyncGenerator[MemoryStorage, None]:
        yield storage

    app.dependency_overrides[get_storage] = override_get_storage
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_bus] = lambda: events
    app.dependency_overrides[get_cache_manager] = lambda: None
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def bearer(actor_id: str, role: str) -> dict:
    token = create_access_token(data={"sub": actor_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers() -> dict:
    """Authorization headers for a secretary."""
    return bearer("secretary-1", "secretary")


@pytest.fixture
def patient_id() -> UUID:
    return uuid4()


@pytest.fixture
def patient_headers(patient_id: UUID) -> dict:
    """Authorization headers for the patient identified by patient_id."""
    return bearer(str(patient_id), "patient")
