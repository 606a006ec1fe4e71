"""Audit recorder."""

from typing import Any
from uuid import UUID, uuid4

import structlog
from pydantic_core import to_jsonable_python

from clinic_scheduler.core.clock import Clock, SystemClock
from clinic_scheduler.repositories.base import Storage
from clinic_scheduler.schemas.actors import Actor
from clinic_scheduler.schemas.audit import AuditLogEntry

logger = structlog.get_logger(__name__)


class AuditService:
    """Appends immutable audit records for mutating operations."""

    def __init__(self, storage: Storage, clock: Clock | None = None):
        """Initialize service with storage and clock."""
        self.storage = storage
        self.clock = clock or SystemClock()

    async def record(
        self,
        clinic_id: UUID,
        actor: Actor,
        action: str,
        entity_type: str,
        entity_id: UUID,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditLogEntry | None:
        """
        Record an audit entry.

        Best effort: a failed write is logged and reported as None, the
        operation being audited goes on.

        Returns:
            The stored entry, or None if it could not be written
        """
        entry = AuditLogEntry(
            id=uuid4(),
            clinic_id=clinic_id,
            actor_id=actor.id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before=to_jsonable_python(before) if before is not None else None,
            after=to_jsonable_python(after) if after is not None else None,
            timestamp=self.clock.now(),
        )
        try:
            await self.storage.audit_logs.add(entry)
        except Exception as e:
            logger.error(
                "audit_record_failed",
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                error=str(e),
            )
            return None
        return entry

    async def list_entries(
        self,
        clinic_id: UUID,
        entity_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """List audit entries of a clinic, newest first."""
        return await self.storage.audit_logs.list_entries(clinic_id, entity_id, limit)
