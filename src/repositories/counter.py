"""Per-repository counters with a bounded scan fallback."""

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import CheckRun, Issue, PullRequest, RepositoryCounter

from .base import BaseRepository

logger = logging.getLogger(__name__)

# Upper bound on rows examined when a counter has to be rebuilt by scanning
COUNT_SCAN_LIMIT = 10_000

COUNTER_FIELDS = ("open_pull_requests", "open_issues", "check_runs")


class RepositoryCounterRepository(BaseRepository[RepositoryCounter]):
    """Repository for RepositoryCounter operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, RepositoryCounter)

    async def apply_deltas(self, repository_id: int, delta: Mapping[str, int]) -> None:
        """Add ``delta`` to the counter row, seeding it by scan when missing.

        The scan runs after the triggering rows were flushed, so it already
        includes them and the delta is not added on top.
        """
        row = await self.get_one_by(repository_id=repository_id)
        if row is None:
            counts = await self.scan_counts(repository_id)
            await self.create(repository_id=repository_id, **counts)
            return

        for field, change in delta.items():
            if change:
                setattr(row, field, max(0, getattr(row, field) + change))
        await self.session.flush()

    async def get_counts(self, repository_id: int) -> dict[str, int]:
        """Counter values, falling back to a bounded scan when no row exists."""
        row = await self.get_one_by(repository_id=repository_id)
        if row is not None:
            return {field: getattr(row, field) for field in COUNTER_FIELDS}
        logger.info(f"No counter row for repository {repository_id}, scanning")
        return await self.scan_counts(repository_id)

    async def scan_counts(self, repository_id: int) -> dict[str, int]:
        """Count rows directly, examining at most COUNT_SCAN_LIMIT per table."""
        open_prs = (
            select(PullRequest.id)
            .where(PullRequest.repository_id == repository_id, PullRequest.state == "open")
            .limit(COUNT_SCAN_LIMIT)
        )
        open_issues = (
            select(Issue.id)
            .where(
                Issue.repository_id == repository_id,
                Issue.state == "open",
                Issue.is_pull_request.is_(False),
            )
            .limit(COUNT_SCAN_LIMIT)
        )
        check_runs = (
            select(CheckRun.id)
            .where(CheckRun.repository_id == repository_id)
            .limit(COUNT_SCAN_LIMIT)
        )
        return {
            "open_pull_requests": await self._count_subquery(open_prs),
            "open_issues": await self._count_subquery(open_issues),
            "check_runs": await self._count_subquery(check_runs),
        }

    async def reset(self, repository_id: int) -> dict[str, int]:
        """Rebuild the counter row from a scan."""
        counts = await self.scan_counts(repository_id)
        row = await self.get_one_by(repository_id=repository_id)
        if row is None:
            await self.create(repository_id=repository_id, **counts)
        else:
            await self.update(row, **counts)
        return counts

    async def _count_subquery(self, query: Select[Any]) -> int:
        subquery = query.subquery()
        return await self._execute_count_query(select(func.count()).select_from(subquery))
