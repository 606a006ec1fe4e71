"""Report schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class MonthlyReport(BaseModel):
    """Appointment metrics for one clinic and calendar month."""

    clinic_id: UUID
    year: int
    month: int = Field(..., ge=1, le=12)
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_kind: dict[str, int] = Field(default_factory=dict)
    by_doctor: dict[str, int] = Field(default_factory=dict)
    by_insurer: dict[str, int] = Field(default_factory=dict)
    no_show_rate: float = 0.0
