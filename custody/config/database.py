"""
Database engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from custody.models.base import Base


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create engine for reconciliation passes.

    NullPool avoids sharing pooled connections across event loops
    (Dramatiq workers run one loop per thread).
    """
    return create_async_engine(
        database_url,
        echo=echo,
        poolclass=NullPool,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create ledger tables (local development and tests only)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
