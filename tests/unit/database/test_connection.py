"""
Unit tests for mirror database settings and sessions.

Why: Every sync step commits through get_session; a session that commits
     after an error would leave half-written batches in the mirror
What: Tests URL assembly and validation, commit and rollback behavior and
      the health check
How: Uses DatabaseConfig directly and the shared in-memory SQLite manager
"""

import pytest
from pydantic import ValidationError
from sqlalchemy import text

from src.database import DatabaseConfig, DatabaseConnectionManager
from src.repositories import DeadLetterEntry, DeadLetterRepository


class TestDatabaseConfig:
    """Test URL handling."""

    def test_url_built_from_components(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DATABASE_DATABASE_URL", raising=False)

        config = DatabaseConfig(host="db", username="mirror", password="secret")

        assert config.get_sqlalchemy_url() == "postgresql+asyncpg://mirror:secret@db:5432/github_mirror"
        assert config.get_alembic_url() == "postgresql://mirror:secret@db:5432/github_mirror"

    def test_no_url_without_password(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DATABASE_PASSWORD", raising=False)
        monkeypatch.delenv("DATABASE_DATABASE_URL", raising=False)

        with pytest.raises(ValueError, match="No database URL"):
            DatabaseConfig().get_sqlalchemy_url()

    def test_sqlite_urls_need_no_host(self) -> None:
        config = DatabaseConfig(database_url="sqlite+aiosqlite:///mirror.db")

        assert config.is_sqlite
        assert config.get_alembic_url() == "sqlite:///mirror.db"

    def test_server_url_without_host_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(database_url="postgresql+asyncpg:///mirror")

    def test_pool_from_dict(self) -> None:
        config = DatabaseConfig(password="x", pool={"pool_size": 3})

        assert config.pool.pool_size == 3
        assert config.pool.max_overflow == 20


class TestGetSession:
    """Test session commit and rollback."""

    async def test_commits_on_success(self, connection_manager: DatabaseConnectionManager) -> None:
        async with connection_manager.get_session() as session:
            await DeadLetterRepository(session).record_batch(
                [DeadLetterEntry("d-1", "bad payload", "{}")], source="webhook"
            )

        async with connection_manager.get_session() as session:
            assert len(await DeadLetterRepository(session).list_recent()) == 1

    async def test_rolls_back_on_error(self, connection_manager: DatabaseConnectionManager) -> None:
        """
        Why: A failed batch must leave no partial rows behind
        What: Rows written before the exception are discarded
        How: Raises inside the session block after a write
        """
        with pytest.raises(RuntimeError):
            async with connection_manager.get_session() as session:
                await DeadLetterRepository(session).record_batch(
                    [DeadLetterEntry("d-1", "bad payload", "{}")], source="webhook"
                )
                raise RuntimeError("boom")

        async with connection_manager.get_session() as session:
            assert await DeadLetterRepository(session).list_recent() == []

    async def test_health_check(self, connection_manager: DatabaseConnectionManager) -> None:
        assert await connection_manager.health_check() is True

        async with connection_manager.get_session() as session:
            assert (await session.execute(text("SELECT 2"))).scalar() == 2
