"""Mirror database engine and sessions.

Each write batch of a sync step runs in its own session from
``DatabaseConnectionManager.get_session``: committed when the block exits
normally, rolled back when it raises. Nothing holds a session across a
GitHub request.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import DatabaseConfig

logger = logging.getLogger(__name__)


class DatabaseConnectionManager:
    """Owns the async engine and hands out short-lived sessions."""

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        engine: AsyncEngine | None = None,
    ):
        self.config = config or DatabaseConfig()
        self._engine: AsyncEngine | None = engine
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """The engine, created on first use so construction never connects."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    def _create_engine(self) -> AsyncEngine:
        url = self.config.get_sqlalchemy_url()
        kwargs: dict[str, Any] = {"echo": self.config.echo_sql}
        if not self.config.is_sqlite:
            pool = self.config.pool
            kwargs.update(
                pool_size=pool.pool_size,
                max_overflow=pool.max_overflow,
                pool_pre_ping=pool.pool_pre_ping,
                pool_recycle=pool.pool_recycle,
                pool_timeout=pool.pool_timeout,
                connect_args={
                    "timeout": self.config.connect_timeout,
                    "command_timeout": self.config.command_timeout,
                },
            )

        engine = create_async_engine(url, **kwargs)

        @event.listens_for(engine.sync_engine, "invalidate")
        def on_invalidate(
            dbapi_connection: Any, connection_record: Any, exception: Exception | None
        ) -> None:
            logger.warning(
                "Database connection invalidated",
                extra={"error": str(exception) if exception else None},
            )

        logger.info(
            "Created database engine",
            extra={
                "pool_size": self.config.pool.pool_size,
                "max_overflow": self.config.pool.max_overflow,
            },
        )
        return engine

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed on exit and rolled back on error.

        Usage:
            async with connection_manager.get_session() as session:
                await SyncJobRepository(session).claim(lock_key)
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Whether the database answers a trivial query."""
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (SQLAlchemyError, OSError) as e:
            logger.error("Database health check failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            logger.info("Database engine disposed")
