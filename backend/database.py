"""
Async engine and sessions for the Order Desk store.

Three tables live here: orders, order_items and region_counters. The
region counter upsert needs a dialect with INSERT ... ON CONFLICT ...
RETURNING, so DATABASE_URL should point at SQLite (3.35+) or PostgreSQL.

Sessions are request-scoped (get_db); routes commit, services only flush.
"""
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits on a locked database before giving up.
# Concurrent order creations in one region all write the same counter row.
SQLITE_BUSY_TIMEOUT = 30


class Base(DeclarativeBase):
    pass


# ── Engine ──────────────────────────────────────────────────────────

def to_async_url(raw_url: str) -> str:
    """sqlite:///path → sqlite+aiosqlite:///path; other URLs pass through."""
    if raw_url.startswith("sqlite:///"):
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"timeout": SQLITE_BUSY_TIMEOUT}
    return {}


engine = create_async_engine(
    to_async_url(settings.database_url),
    echo=(settings.environment == "development"),
    connect_args=_connect_args(settings.database_url),
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Lifecycle ───────────────────────────────────────────────────────

async def init_db() -> None:
    """Create orders, order_items and region_counters if missing."""
    import db_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


async def dispose_db() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session. Uncommitted work is rolled back on close."""
    async with async_session() as session:
        yield session
