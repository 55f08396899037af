"""Issue and IssueComment repositories."""

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import Issue, IssueComment

from .upsert import UpsertRepository


class IssueRepository(UpsertRepository[Issue]):
    """Repository for Issue operations."""

    natural_key = ("repository_id", "number")
    guard_column = "github_updated_at"
    counter_columns = ("state", "is_pull_request")
    tracks_counters = True

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, Issue)

    def counter_deltas(self, before: Mapping[str, Any] | None, row: Issue) -> dict[str, int]:
        """Track open issue transitions; PR-backed issues are not counted."""
        was_open = (
            before is not None
            and before.get("state") == "open"
            and not before.get("is_pull_request")
        )
        now_open = row.is_open and not row.is_pull_request
        return {"open_issues": int(now_open) - int(was_open)}

    async def get_by_number(self, repository_id: int, number: int) -> Issue | None:
        """Get issue by repository and number."""
        return await self.get_one_by(repository_id=repository_id, number=number)

    async def exists(self, repository_id: int, number: int) -> bool:
        """Check whether an issue is already mirrored."""
        query = select(Issue.id).where(
            Issue.repository_id == repository_id, Issue.number == number
        )
        result = await self.session.execute(query)
        return result.first() is not None


class IssueCommentRepository(UpsertRepository[IssueComment]):
    """Comments are guarded by their own edit timestamp."""

    natural_key = ("repository_id", "github_comment_id")
    guard_column = "github_updated_at"

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, IssueComment)

    async def list_for_issue(self, repository_id: int, issue_number: int) -> list[IssueComment]:
        """Comments of one issue in creation order."""
        query = (
            self._build_base_query()
            .where(
                IssueComment.repository_id == repository_id,
                IssueComment.issue_number == issue_number,
            )
            .order_by(IssueComment.github_created_at)
        )
        return await self._execute_query(query)
