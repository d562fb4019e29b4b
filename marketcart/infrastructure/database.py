"""Database configuration and session management.

Provides the async SQLAlchemy engine and session factory used by the
SQL catalog store.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# Base class for models
Base = declarative_base()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine.

    Args:
        database_url: SQLAlchemy URL with an async driver.
        echo: Log SQL statements.

    Returns:
        AsyncEngine instance.
    """
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on :data:`Base`."""
    # Model modules register themselves on Base when imported
    import marketcart.catalog.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
