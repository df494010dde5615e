"""
Async SQLAlchemy engine + session factory for TiDB (MySQL-protocol).

TiDB is wire-compatible with MySQL 5.7, so we use the aiomysql driver.
The engine is created once at startup and reused across all requests.
Feed assembly only reads through the session; the graph mutation hooks and
the post view counter are the only writers.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from feed_engine.config import settings

logger = logging.getLogger(__name__)

# SQLite (local runs via DATABASE_URL) uses a static pool without sizing knobs
_pool_options = (
    {}
    if settings.tidb_url.startswith("sqlite")
    else {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": settings.feed_request_timeout,
    }
)

engine = create_async_engine(
    settings.tidb_url,
    pool_pre_ping=True,
    echo=False,
    **_pool_options,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables if they don't exist (idempotent)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
