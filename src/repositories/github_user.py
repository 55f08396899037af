"""GitHubUser repository."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import GitHubUser

from .upsert import UpsertRepository


class GitHubUserRepository(UpsertRepository[GitHubUser]):
    """Users always take the latest observed profile."""

    natural_key = ("github_user_id",)

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, GitHubUser)

    async def get_by_login(self, login: str) -> GitHubUser | None:
        """Get user by login."""
        return await self.get_one_by(login=login)
