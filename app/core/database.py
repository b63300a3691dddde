"""Async SQLAlchemy engine, sessions and the database client.

Requests get their session from ``get_async_session``; work that runs outside
a request (the sign-in sweep, Temporal activities) opens one with
``session_scope``.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base of the compliance tables."""


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
    echo=settings.db.echo,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with async_session_maker() as session:
        yield session


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Session for background work; rolled back if the block raises."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


class DatabaseClient:
    """Connectivity checks and schema bootstrap for the PostgreSQL engine."""

    def __init__(self, engine: AsyncEngine, connect_timeout: float = 30):
        self.engine = engine
        self.connect_timeout = connect_timeout
        self._connected = False

    async def _ping(self) -> float:
        """Round trip of ``SELECT 1`` in milliseconds."""
        started = time.perf_counter()
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (time.perf_counter() - started) * 1000

    async def connect(self) -> None:
        """Fail fast when the database is unreachable within the timeout."""
        try:
            latency = await asyncio.wait_for(self._ping(), timeout=self.connect_timeout)
        except Exception:
            self._connected = False
            LOGGER.error(
                f"Database connection failed (timeout {self.connect_timeout}s)", exc_info=True
            )
            raise
        self._connected = True
        LOGGER.info(f"Database connection successful ({latency:.1f}ms)")

    async def disconnect(self) -> None:
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection pool disposed")

    async def create_tables(self) -> None:
        """Create missing tables; existing ones are left untouched."""
        # Register the models on Base.metadata
        from app.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Database tables created/verified successfully")

    async def health_check(self) -> dict:
        try:
            latency = await self._ping()
        except Exception as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}

        self._connected = True
        return {"status": "healthy", "connected": True, "latency_ms": round(latency, 1)}

    @property
    def is_connected(self) -> bool:
        return self._connected


db_client = DatabaseClient(engine, connect_timeout=settings.db_init_timeout)


async def init_database(create_tables: bool = False) -> None:
    await db_client.connect()
    if create_tables:
        await db_client.create_tables()


async def close_database() -> None:
    try:
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
