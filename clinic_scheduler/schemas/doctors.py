"""Doctor roster schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# Doctor Schemas
# ============================================================================


class DoctorCreate(BaseModel):
    """Schema for adding a doctor to a clinic roster."""

    clinic_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    specialties: list[str] = Field(..., min_length=1)

    @field_validator("specialties")
    @classmethod
    def strip_specialties(cls, v: list[str]) -> list[str]:
        """Drop blanks and surrounding whitespace."""
        cleaned = [s.strip() for s in v if s.strip()]
        if not cleaned:
            raise ValueError("At least one specialty is required")
        return cleaned


class Doctor(BaseModel):
    """Doctor roster record."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    clinic_id: UUID
    name: str
    specialties: list[str]
    active: bool = True
    created_at: datetime

    def has_specialty(self, specialty: str) -> bool:
        """Case-insensitive specialty membership."""
        wanted = specialty.strip().casefold()
        return any(s.casefold() == wanted for s in self.specialties)


class DoctorListResponse(BaseModel):
    """Schema for doctor list response."""

    total: int
    items: list[Doctor]
