"""Write phase of the sync engine.

Every batch is split into chunks of ``WRITE_BATCH_SIZE`` records and each
chunk is written in its own session, so a chunk commits entirely or not at
all. No network call is ever made while one of these sessions is open.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.connection import DatabaseConnectionManager
from src.github.decoding import DecodeFailure
from src.repositories import (
    DeadLetterRepository,
    GitHubUserRepository,
    UpsertRepository,
    UpsertResult,
    chunked,
)

from .transforms import UserCollector, dead_letter_entries

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[AsyncSession], UpsertRepository[Any]]


class MirrorWriter:
    """Chunked, idempotent writes into the mirror tables."""

    def __init__(self, connection_manager: DatabaseConnectionManager):
        self.connection_manager = connection_manager

    async def upsert(
        self, repository_factory: RepositoryFactory, records: Sequence[dict[str, Any]]
    ) -> UpsertResult:
        """Upsert ``records`` chunk by chunk, one transaction per chunk."""
        total = UpsertResult()
        for chunk in chunked(records):
            async with self.connection_manager.get_session() as session:
                total += await repository_factory(session).upsert_many(chunk)
        return total

    async def insert_missing(
        self, repository_factory: RepositoryFactory, records: Sequence[dict[str, Any]]
    ) -> UpsertResult:
        """Insert only records not mirrored yet, one transaction per chunk."""
        total = UpsertResult()
        for chunk in chunked(records):
            async with self.connection_manager.get_session() as session:
                total += await repository_factory(session).insert_missing(chunk)
        return total

    async def write_users(self, users: UserCollector) -> UpsertResult:
        """Upsert every distinct user a step referenced."""
        return await self.upsert(GitHubUserRepository, users.records())

    async def dead_letter(
        self, failures: Sequence[DecodeFailure], delivery_prefix: str, source: str
    ) -> int:
        """Record decode failures; returns how many were written."""
        if not failures:
            return 0
        entries = dead_letter_entries(failures, delivery_prefix)
        async with self.connection_manager.get_session() as session:
            return await DeadLetterRepository(session).record_batch(entries, source)
