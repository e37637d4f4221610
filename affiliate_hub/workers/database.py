"""
Worker-specific database utilities.

Creates fresh database connections for each Celery task execution
to avoid event loop closed issues with asyncio.run().
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from affiliate_hub.config import settings
from affiliate_hub.database import resolve_database_url


def create_worker_engine():
    """Create a fresh async engine for worker tasks."""
    url = resolve_database_url()
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.debug)
    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=settings.debug,
    )


@asynccontextmanager
async def get_worker_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session for worker tasks.

    Creates a fresh engine and session for each task to avoid
    event loop issues when using asyncio.run() in Celery tasks.
    """
    engine = create_worker_engine()
    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    await engine.dispose()
