"""
Test configuration and fixtures shared by the whole suite.

Provides an in-memory SQLite mirror with the full schema, a connection
manager bound to it, and the recording collaborators the sync engine needs.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from src.config.settings import SyncSettings
from src.database.config import DatabaseConfig
from src.database.connection import DatabaseConnectionManager
from src.models import Base
from tests.fixtures.mirror import RecordingRefresher, RecordingScheduler

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    In-memory database with every mirror table created.

    Why: Upserts, ledger transitions and counters are SQL behavior; they are
         only meaningfully tested against a real database
    What: One shared SQLite connection per test, schema from the models
    How: StaticPool keeps the in-memory database alive across sessions; the
         driver's implicit transactions are disabled so SAVEPOINTs nest
         correctly inside explicit BEGINs
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN")

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def connection_manager(engine: AsyncEngine) -> DatabaseConnectionManager:
    """Connection manager whose sessions commit into the in-memory database."""
    return DatabaseConnectionManager(config=DatabaseConfig(password="test"), engine=engine)


@pytest_asyncio.fixture
async def session(
    connection_manager: DatabaseConnectionManager,
) -> AsyncGenerator[AsyncSession, None]:
    """A session that commits when the test finishes."""
    async with connection_manager.get_session() as session:
        yield session


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def refresher() -> RecordingRefresher:
    return RecordingRefresher()


@pytest.fixture
def sync_settings() -> SyncSettings:
    """Settings with defaults, independent of SYNC_* variables in the environment."""
    return SyncSettings(
        stuck_job_minutes=30,
        restart_stuck_jobs=True,
        max_concurrent_per_installation=25,
        retry_backoff_floor_ms=30_000,
        retry_backoff_cap_ms=900_000,
        max_attempts=20,
        permission_staleness_hours=6,
        permission_sync_batch_size=10,
    )
