"""PullRequest repository with domain-specific operations."""

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import PullRequest

from .upsert import UpsertRepository


class PullRequestRepository(UpsertRepository[PullRequest]):
    """Repository for PullRequest operations."""

    natural_key = ("repository_id", "number")
    guard_column = "github_updated_at"
    # Only the single-PR endpoint reports mergeability
    preserve_on_null = frozenset({"mergeable_state"})
    counter_columns = ("state",)
    tracks_counters = True

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, PullRequest)

    def counter_deltas(
        self, before: Mapping[str, Any] | None, row: PullRequest
    ) -> dict[str, int]:
        """Track open pull request transitions."""
        was_open = before is not None and before.get("state") == "open"
        return {"open_pull_requests": int(row.is_open) - int(was_open)}

    async def get_by_number(self, repository_id: int, number: int) -> PullRequest | None:
        """Get PR by repository and number."""
        return await self.get_one_by(repository_id=repository_id, number=number)

    async def exists(self, repository_id: int, number: int) -> bool:
        """Check whether a PR is already mirrored."""
        query = select(PullRequest.id).where(
            PullRequest.repository_id == repository_id, PullRequest.number == number
        )
        result = await self.session.execute(query)
        return result.first() is not None

    async def list_open_sync_targets(self, repository_id: int) -> list[tuple[int, str]]:
        """(number, head_sha) of open PRs with a known head commit."""
        query = (
            select(PullRequest.number, PullRequest.head_sha)
            .where(
                PullRequest.repository_id == repository_id,
                PullRequest.state == "open",
                PullRequest.head_sha != "",
            )
            .order_by(PullRequest.number)
        )
        result = await self.session.execute(query)
        return [(number, head_sha) for number, head_sha in result.all()]
