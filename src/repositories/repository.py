"""Repository and Installation repositories."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import Installation, Repository

from .base import BaseRepository


class RepositoryRepository(BaseRepository[Repository]):
    """Repository for Repository operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, Repository)

    async def get_by_github_id(self, github_repo_id: int) -> Repository | None:
        """Get repository by GitHub repository id."""
        return await self.get_one_by(github_repo_id=github_repo_id)

    async def get_by_full_name(self, full_name: str) -> Repository | None:
        """Get repository by ``owner/name``."""
        return await self.get_one_by(full_name=full_name)

    async def list_connected_ids(self, github_repo_ids: set[int]) -> set[int]:
        """Subset of ``github_repo_ids`` that are mirrored here."""
        if not github_repo_ids:
            return set()
        query = select(Repository.github_repo_id).where(
            Repository.github_repo_id.in_(github_repo_ids)
        )
        result = await self.session.execute(query)
        return set(result.scalars().all())

    async def list_all_ids(self) -> set[int]:
        """All mirrored repository ids."""
        result = await self.session.execute(select(Repository.github_repo_id))
        return set(result.scalars().all())


class InstallationRepository(BaseRepository[Installation]):
    """Repository for Installation operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, Installation)

    async def get_by_account_login(self, account_login: str) -> Installation | None:
        """Get installation by account login."""
        return await self.get_one_by(account_login=account_login)

    async def get_or_create(
        self, account_login: str, installation_id: int = 0, account_type: str = "User"
    ) -> Installation:
        """Find the installation for an account, creating it when missing."""
        installation = await self.get_by_account_login(account_login)
        if installation is not None:
            if installation_id > 0 and installation.installation_id != installation_id:
                installation = await self.update(installation, installation_id=installation_id)
            return installation
        return await self.create(
            account_login=account_login,
            installation_id=installation_id,
            account_type=account_type,
        )
