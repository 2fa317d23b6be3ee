"""
Site Intel — Async SQLAlchemy database setup.

SQLite (aiosqlite) by default; any ``postgresql+asyncpg://`` URL gets a
pooled engine instead.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from siteintel.config import settings

POSTGRES_POOL = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_recycle": 300,
}


def engine_options(database_url: str) -> dict:
    """Pool options for the URL's backend; SQLite uses SQLAlchemy's defaults."""
    if database_url.startswith("sqlite"):
        return {}
    return dict(POSTGRES_POOL)


engine = create_async_engine(settings.database_url, echo=False, **engine_options(settings.database_url))

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create the audit, report asset and usage tables if missing."""
    from siteintel import models  # noqa: F401  registers tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
