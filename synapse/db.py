# synapse/db.py
import logging
from typing import AsyncGenerator, Tuple

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from synapse.config import settings
from synapse.models import Base

logger = logging.getLogger(__name__)


def create_engine_and_sessionmaker(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Build an engine plus session factory pair. The API process uses the
    module-level pair below; Celery tasks build their own per event loop.
    """
    eng = create_async_engine(database_url, echo=False, future=True)
    return eng, async_sessionmaker(eng, expire_on_commit=False, class_=AsyncSession)


engine, AsyncSessionLocal = create_engine_and_sessionmaker(settings.database_url)


async def init_models(eng: AsyncEngine = None) -> None:
    """
    Development helper that creates tables from ORM metadata.
    In production, prefer Alembic migrations instead of create_all().
    """
    async with (eng or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/checked")


async def close_engine() -> None:
    """Call this on app shutdown to cleanly dispose connection pool."""
    await engine.dispose()
    logger.info("Database engine disposed")


# FastAPI dependencies
def get_sessionmaker() -> async_sessionmaker:
    return AsyncSessionLocal


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Use in FastAPI routes like:
        async def endpoint(session: AsyncSession = Depends(get_async_session)):
            ...
    Ensures session is closed and rolled back on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
