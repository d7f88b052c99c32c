"""
Engine, session factory and the transaction helper every ledger write uses.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from payup.app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

# Objects stay readable after commit so services can return them to the API layer
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request, closed when the response is sent."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block of ledger writes as one transaction.

    Commits when the block finishes and rolls back on any exception, so a
    failed operation leaves no partial rows behind. A rollback expires
    every object loaded in the session.
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
