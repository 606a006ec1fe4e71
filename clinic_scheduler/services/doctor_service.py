"""Doctor roster service."""

from uuid import UUID, uuid4

from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.core.exceptions import NotFoundException
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.repositories.base import Storage
from clinic_scheduler.schemas.doctors import Doctor, DoctorCreate


class DoctorService:
    """Service for the doctor roster the waitlist matcher consults."""

    # Cache TTL in seconds
    DOCTOR_CACHE_TTL = 900  # 15 minutes for individual doctors
    DOCTOR_LIST_CACHE_TTL = 300  # 5 minutes for lists

    def __init__(
        self,
        storage: Storage,
        cache_manager: CacheManager | None = None,
        clock: Clock | None = None,
    ):
        """Initialize service with storage and optional cache manager."""
        self.storage = storage
        self.cache = cache_manager
        self.clock = clock or SystemClock()

    @staticmethod
    def _get_doctor_cache_key(doctor_id: UUID) -> str:
        """Generate cache key for doctor."""
        return f"doctor:{doctor_id}"

    @staticmethod
    def _get_doctor_list_cache_key(clinic_id: UUID) -> str:
        """Generate cache key for a clinic roster."""
        return f"doctor:list:{clinic_id}"

    async def create_doctor(self, data: DoctorCreate) -> Doctor:
        """Add a doctor to a clinic roster."""
        doctor = Doctor(
            id=uuid4(),
            clinic_id=data.clinic_id,
            name=data.name,
            specialties=data.specialties,
            created_at=self.clock.now(),
        )
        async with self.storage.atomic():
            await self.storage.doctors.add(doctor)

        # Invalidate cache
        if self.cache:
            self.cache.delete(self._get_doctor_list_cache_key(data.clinic_id))

        return doctor

    async def get_doctor_by_id(self, doctor_id: UUID) -> Doctor | None:
        """Get doctor by ID with caching."""
        # Try cache first
        if self.cache:
            cached = self.cache.get_json(self._get_doctor_cache_key(doctor_id))
            if cached:
                return Doctor.model_validate(cached)

        doctor = await self.storage.doctors.get(doctor_id)
        if doctor is None:
            return None

        # Cache result
        if self.cache:
            self.cache.set_json(
                self._get_doctor_cache_key(doctor_id),
                doctor.model_dump(mode="json"),
                ttl=self.DOCTOR_CACHE_TTL,
            )

        return doctor

    async def get_doctor(self, doctor_id: UUID) -> Doctor:
        """
        Get doctor by ID.

        Raises:
            NotFoundException: If doctor not found
        """
        doctor = await self.get_doctor_by_id(doctor_id)
        if doctor is None:
            raise NotFoundException("Doctor not found")
        return doctor

    async def list_doctors(self, clinic_id: UUID) -> list[Doctor]:
        """List a clinic roster with caching."""
        cache_key = self._get_doctor_list_cache_key(clinic_id)
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return [Doctor.model_validate(item) for item in cached]

        doctors = await self.storage.doctors.list_by_clinic(clinic_id)

        if self.cache:
            self.cache.set_json(
                cache_key,
                [d.model_dump(mode="json") for d in doctors],
                ttl=self.DOCTOR_LIST_CACHE_TTL,
            )

        return doctors

    async def get_specialties(self, doctor_id: UUID) -> list[str] | None:
        """Specialties of a doctor, or None if the doctor is unknown."""
        doctor = await self.get_doctor_by_id(doctor_id)
        return list(doctor.specialties) if doctor else None
