"""RepositoryPermission repository."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import OAuthAccount, RepositoryPermission

from .upsert import UpsertRepository, UpsertResult


class RepositoryPermissionRepository(UpsertRepository[RepositoryPermission]):
    """Permission rows are replaced wholesale by each permission sync."""

    natural_key = ("user_id", "repository_id")

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, RepositoryPermission)

    async def get_for(self, user_id: str, repository_id: int) -> RepositoryPermission | None:
        """Permission row of a user on a repository."""
        return await self.get_one_by(user_id=user_id, repository_id=repository_id)

    async def replace_for_user(
        self,
        user_id: str,
        rows: Sequence[Mapping[str, Any]],
        connected_repository_ids: set[int],
    ) -> tuple[UpsertResult, int]:
        """Upsert ``rows`` and delete the user's rows for connected repos not in them.

        Returns:
            The upsert summary and the number of deleted rows
        """
        result = await self.upsert_many(rows)

        keep = {row["repository_id"] for row in rows}
        stale = connected_repository_ids - keep
        deleted = 0
        if stale:
            outcome = await self.session.execute(
                delete(RepositoryPermission)
                .where(
                    RepositoryPermission.user_id == user_id,
                    RepositoryPermission.repository_id.in_(stale),
                )
                .execution_options(synchronize_session=False)
            )
            deleted = outcome.rowcount or 0
        return result, deleted

    async def list_stale_user_ids(self, cutoff: datetime, limit: int) -> list[str]:
        """Users with an OAuth account whose oldest permission row predates ``cutoff``.

        Users without any permission row count as stale. Oldest first.
        """
        oldest = func.min(RepositoryPermission.synced_at)
        query = (
            select(OAuthAccount.user_id, oldest)
            .outerjoin(
                RepositoryPermission,
                RepositoryPermission.user_id == OAuthAccount.user_id,
            )
            .group_by(OAuthAccount.user_id)
            .having(or_(oldest.is_(None), oldest < cutoff))
        )
        result = await self.session.execute(query)
        rows = sorted(
            result.all(),
            key=lambda row: (row[1] is not None, row[1] or cutoff, row[0]),
        )
        return [user_id for user_id, _ in rows[:limit]]
