"""
Database connection using SQLAlchemy's async engine.

Only DERIVED, authoritative state lives here:
- grade records and their trust debt cells (append-only)
- taxonomy records and the rebalance history
- the permission audit log

Presence matrices are rebuilt on every run and never stored.

Any async driver works. Local runs and tests use SQLite through aiosqlite;
production points DATABASE_URL at postgresql+asyncpg.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from intentguard.config import get_settings

settings = get_settings()

# Connection pool, reused across requests
engine = create_async_engine(settings.database_url, echo=settings.database_echo)

# expire_on_commit=False keeps objects usable after commit (needed for async)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncSession:
    """Dependency that yields a database session."""
    async with async_session() as session:
        yield session
