"""Database engine and session configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

# Register all models with SQLAlchemy (required for relationship resolution)
import saft_admin.models  # noqa: F401
from saft_admin.config import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Async engine for ``database_url`` (defaults to ``settings.database_url``)."""
    return create_async_engine(
        database_url or settings.database_url,
        echo=False,  # SQL logging controlled via structlog configuration
        pool_pre_ping=True,  # Verify connections before use
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def task_db_session(database_url: str | None = None) -> AsyncGenerator[AsyncSession]:
    """Session for one CLI command or background task.

    Creates a fresh engine bound to the current event loop, yields a session,
    and disposes of the engine afterwards. Each ``asyncio.run()`` call creates
    a new event loop and pooled connections cannot outlive it.

    Usage:
        async with task_db_session() as session:
            await SequenceAllocator(session).allocate("orders")
    """
    engine = create_engine(database_url)
    session_maker = create_session_maker(engine)
    try:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
    finally:
        # Dispose engine to release all connections back to PostgreSQL
        await engine.dispose()
