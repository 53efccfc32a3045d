import logging
import time
from typing import AsyncIterator, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import settings

logger = logging.getLogger(__name__)


engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, future=True, pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


async def check_db_health() -> Tuple[bool, float, Optional[str]]:
    """Check database connection health.

    Returns:
        Tuple of (is_healthy, latency_ms, error_message)
    """
    start = time.time()
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            return (True, (time.time() - start) * 1000, None)
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return (False, (time.time() - start) * 1000, str(e))


async def dispose_engine() -> None:
    await engine.dispose()
