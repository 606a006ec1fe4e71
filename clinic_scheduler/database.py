"""Engine and session management for the PostgreSQL store.

Only used when STORAGE_BACKEND is "postgres". Commits are issued by
PostgresStorage.atomic, not by the session dependency.
"""

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinic_scheduler.config import settings

logger = structlog.get_logger(__name__)

# asyncpg driver URL
DATABASE_URL = settings.database_url.replace("postgresql://", "postgresql+asyncpg://")

engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=3600,
    connect_args={
        "server_settings": {
            "application_name": settings.app_name,
            # Bounds the wait on pg_advisory_xact_lock for busy schedules
            "lock_timeout": str(settings.db_lock_timeout_ms),
            "timezone": "UTC",
        },
    },
)

SessionFactory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency yielding one session per request.

    Anything left uncommitted when the request ends is rolled back.
    """
    async with SessionFactory() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


async def check_database_connection() -> bool:
    """Check that the store is reachable and the overlap extension is installed."""
    try:
        async with engine.connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM pg_extension WHERE extname = 'btree_gist'")
            )
            if result.scalar() is None:
                logger.warning("database_extension_missing", extension="btree_gist")
        return True
    except Exception as e:
        logger.warning("database_check_failed", error=str(e))
        return False
