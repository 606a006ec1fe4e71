"""Audit log schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditLogEntry(BaseModel):
    """Immutable record of one mutating operation."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    clinic_id: UUID
    actor_id: str
    action: str
    entity_type: str
    entity_id: UUID
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    timestamp: datetime


class AuditLogListResponse(BaseModel):
    """Schema for audit log list response."""

    total: int
    items: list[AuditLogEntry]
