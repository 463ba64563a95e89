"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Each request gets its own session and its own transaction.
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from invoicing.core.config import settings


# WHY: pool_pre_ping recycles stale connections instead of failing the
# first query after a database restart.
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

# WHY: expire_on_commit=False lets handlers keep using ORM objects after
# an explicit commit (the webhook path commits before acknowledging).
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    Commits when the request handler finishes without error and rolls
    back otherwise.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
