"""Optimistic concurrency retry helper."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from clinic_scheduler.core.exceptions import ContentionException, StaleVersionError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_on_stale_version(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int,
    operation_name: str,
) -> T:
    """
    Run a read-modify-write unit, re-running it after version conflicts.

    Args:
        operation: Coroutine function doing a fresh read and a versioned write
        retries: Extra attempts after the first one
        operation_name: Name used in log events

    Returns:
        Result of the first attempt that commits

    Raises:
        ContentionException: Every attempt hit a version conflict
    """
    for attempt in range(retries + 1):
        try:
            return await operation()
        except StaleVersionError as e:
            logger.info(
                "write_retry",
                operation=operation_name,
                attempt=attempt + 1,
                entity_id=str(e.entity_id),
                expected_version=e.expected_version,
            )

    logger.warning("write_contention_exhausted", operation=operation_name, attempts=retries + 1)
    raise ContentionException()
