"""
Alembic environment for the mirror schema.

The URL comes from ``DatabaseConfig`` (``DATABASE_*`` variables) unless
``MIRROR_MIGRATION_URL`` names one explicitly. PostgreSQL migrations run
through asyncpg; SQLite files run through the synchronous driver in batch
mode so ALTERs work.
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from src.database.config import get_database_config  # noqa: E402
from src.models import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def migration_url() -> str:
    """Synchronous-driver URL of the mirror database."""
    explicit = os.getenv("MIRROR_MIGRATION_URL")
    if explicit:
        return explicit.replace("+asyncpg", "").replace("+aiosqlite", "")
    return get_database_config().get_alembic_url()


def run_migrations_offline() -> None:
    """Emit SQL to the script output without connecting."""
    context.configure(
        url=migration_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


def engine_configuration(url: str) -> dict[str, str]:
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = url
    return configuration


async def run_async_migrations(url: str) -> None:
    connectable = async_engine_from_config(
        engine_configuration(url.replace("postgresql://", "postgresql+asyncpg://")),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_sync_migrations(url: str) -> None:
    connectable = engine_from_config(
        engine_configuration(url),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        do_run_migrations(connection)


def run_migrations_online() -> None:
    url = migration_url()
    if url.startswith("postgresql://"):
        asyncio.run(run_async_migrations(url))
    else:
        run_sync_migrations(url)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
