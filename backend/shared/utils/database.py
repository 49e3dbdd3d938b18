"""
Postgres access for the prediction store.

One async engine per process. Reads and writes go through separate session
helpers so that only write paths ever commit.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def engine_options(settings: Settings) -> dict[str, Any]:
    """Pool and driver options derived from settings."""
    timeout = settings.db_command_timeout
    return {
        "pool_size": settings.db_pool_min,
        "max_overflow": max(settings.db_pool_max - settings.db_pool_min, 0),
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "echo": settings.debug,
        "connect_args": {"timeout": timeout, "command_timeout": timeout},
    }


class DatabaseManager:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        if self.connected:
            return
        self._engine = create_async_engine(self._settings.database_url_str, **engine_options(self._settings))
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("database_connected", url=self._settings.database_url_safe_log)

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("database_disconnected")

    def _session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            raise RuntimeError("database is not connected")
        return self._sessions

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory()() as session:
            yield session

    @asynccontextmanager
    async def write_session(self) -> AsyncIterator[AsyncSession]:
        """Session committed on clean exit, rolled back when the block raises."""
        async with self._session_factory()() as session, session.begin():
            yield session

    async def create_schema(self) -> None:
        """Create predictions, collection_logs and verification_sources if missing."""
        from shared.models.orm import Base

        if self._engine is None:
            raise RuntimeError("database is not connected")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_ready", tables=sorted(Base.metadata.tables))

    async def ping(self) -> bool:
        """False when the database is unreachable or not connected."""
        try:
            async with self.read_session() as session:
                await session.execute(text("SELECT 1"))
        except (OSError, RuntimeError, SQLAlchemyError) as exc:
            logger.warning("database_ping_failed", error=str(exc))
            return False
        return True
