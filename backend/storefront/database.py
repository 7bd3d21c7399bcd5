"""
SQLAlchemy Async Database Configuration.
"""

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from storefront.config import get_settings
from storefront.models import Base  # noqa: F401  (registers every table for create_all)

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")


def _engine_options(url: str) -> dict:
    """Pool tuning only applies to server databases; SQLite uses its own pool."""
    if url.startswith("sqlite"):
        return {"echo": settings.DEBUG, "future": True}
    return {
        "echo": settings.DEBUG,
        "future": True,
        "pool_size": 20,
        "max_overflow": 40,
        "pool_timeout": 10,
        "pool_recycle": 900,
        "pool_pre_ping": True,
    }


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """Dependency for FastAPI routes to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def run_in_transaction(
    session: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """
    Unit of work: run ``work`` and commit, or roll everything back.

    Any reads already issued on ``session`` belong to the same transaction,
    so checks made before the writes are committed (or discarded) with them.
    """
    try:
        result = await work(session)
        await session.commit()
        return result
    except Exception:
        await session.rollback()
        raise
