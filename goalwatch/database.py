"""Store connection for the tracker: one async engine, SQLite or PostgreSQL."""

import asyncio
import logging
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import InterfaceError, InvalidRequestError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# Registers the tables on SQLModel.metadata
from goalwatch import models  # noqa: F401

logger = logging.getLogger(__name__)

_ASYNC_DRIVERS = (
    ("sqlite://", "sqlite+aiosqlite://"),
    ("postgres://", "postgresql+asyncpg://"),
    ("postgresql://", "postgresql+asyncpg://"),
)

# Tracker writes are small and bursty (one cycle every few seconds)
_POSTGRES_POOL = {
    "pool_pre_ping": True,
    "pool_size": 3,
    "max_overflow": 5,
    "pool_recycle": 600,
    "pool_timeout": 15,
}

_RETRYABLE = (InterfaceError, OperationalError, InvalidRequestError)


def get_database_url(url: str) -> str:
    """Rewrite a plain DATABASE_URL to its async driver form."""
    for prefix, async_prefix in _ASYNC_DRIVERS:
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    url = get_database_url(database_url)

    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, **_POSTGRES_POOL)

    # One shared connection so in-memory databases survive across sessions
    engine = create_async_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # History rows reference matches; enforce it so eviction order matters
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by every component that touches the store."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info(f"[DB] Tables ready ({engine.dialect.name})")


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("[DB] Connections closed")


def get_pool_status(engine: AsyncEngine) -> dict:
    """Pool snapshot for /health."""
    if engine.dialect.name == "sqlite":
        return {"type": "sqlite", "pooled": False}

    pool = engine.pool
    size, overflow, busy = pool.size(), pool.overflow(), pool.checkedout()
    capacity = size + overflow
    return {
        "type": engine.dialect.name,
        "pool_size": size,
        "checked_in": pool.checkedin(),
        "checked_out": busy,
        "overflow": overflow,
        "utilization_pct": round(busy * 100 / capacity, 1) if capacity > 0 else 0,
    }


@asynccontextmanager
async def get_session_with_retry(
    session_factory: async_sessionmaker,
    max_retries: int = 3,
    retry_delay: float = 1.0,
):
    """Open a session whose connection is verified, backing off on connect errors.

    Only opening is retried. Errors raised while the caller uses the session
    propagate unchanged.
    """
    delay = retry_delay
    attempt = 1
    while True:
        session = session_factory()
        try:
            await session.connection()
            break
        except _RETRYABLE as e:
            await session.close()
            if attempt >= max_retries:
                logger.error(f"[DB] Could not open session after {attempt} attempts: {e}")
                raise
            logger.warning(f"[DB] Connect failed ({attempt}/{max_retries}): {e}; retrying in {delay}s")
            await asyncio.sleep(delay)
            delay *= 2
            attempt += 1

    try:
        yield session
    finally:
        await session.close()
