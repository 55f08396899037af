"""Branch and Commit repositories."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import Branch, Commit

from .upsert import UpsertRepository


class BranchRepository(UpsertRepository[Branch]):
    """Branches are keyed by name and always patched."""

    natural_key = ("repository_id", "name")

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, Branch)

    async def get_by_name(self, repository_id: int, name: str) -> Branch | None:
        return await self.get_one_by(repository_id=repository_id, name=name)

    async def delete_by_name(self, repository_id: int, name: str) -> bool:
        """Remove a deleted branch; False if it was never mirrored."""
        branch = await self.get_by_name(repository_id, name)
        if branch is None:
            return False
        await self.delete(branch)
        return True


class CommitRepository(UpsertRepository[Commit]):
    """Commits keep previously known stats when a listing omits them."""

    natural_key = ("repository_id", "sha")
    preserve_on_null = frozenset(
        {"additions", "deletions", "changed_files", "author_user_id", "committer_user_id"}
    )

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, Commit)
