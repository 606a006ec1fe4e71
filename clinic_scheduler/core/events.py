"""In-process change notifications.

Presentation layers subscribe here instead of holding live database listeners.
Events are published only after the unit of work that produced them commits.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Base change notification."""

    name: str
    clinic_id: UUID
    entity_id: UUID
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """Fan-out of domain events to async subscribers."""

    def __init__(self) -> None:
        self._handlers: list[tuple[str | None, EventHandler]] = []

    def subscribe(self, handler: EventHandler, event_name: str | None = None) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            handler: Coroutine function receiving the event
            event_name: Only deliver events with this name; None receives all

        Returns:
            Callable that removes the subscription
        """
        entry = (event_name, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event; a failing subscriber does not affect the others."""
        for event_name, handler in list(self._handlers):
            if event_name is not None and event_name != event.name:
                continue
            try:
                await handler(event)
            except Exception as e:
                logger.warning(
                    "event_handler_failed",
                    event_name=event.name,
                    entity_id=str(event.entity_id),
                    error=str(e),
                )
