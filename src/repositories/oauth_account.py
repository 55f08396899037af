"""OAuthAccount repository and the database-backed credential store."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.connection import DatabaseConnectionManager
from src.github.auth import OAuthAccountStore, OAuthCredentials
from src.models import OAuthAccount

from .base import BaseRepository


class OAuthAccountRepository(BaseRepository[OAuthAccount]):
    """Repository for OAuthAccount operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, OAuthAccount)

    async def get_for_user(self, user_id: str) -> OAuthAccount | None:
        """Get the GitHub OAuth account of a user."""
        return await self.get_one_by(user_id=user_id)

    async def list_user_ids(self) -> list[str]:
        """Users holding a GitHub OAuth account."""
        result = await self.session.execute(
            select(OAuthAccount.user_id).order_by(OAuthAccount.user_id)
        )
        return list(result.scalars().all())


class DatabaseOAuthAccountStore(OAuthAccountStore):
    """OAuthAccountStore reading and writing the oauth_accounts table."""

    def __init__(self, connection_manager: DatabaseConnectionManager):
        self.connection_manager = connection_manager

    async def get_credentials(self, user_id: str) -> OAuthCredentials | None:
        """Load the GitHub OAuth credentials for a user."""
        async with self.connection_manager.get_session() as session:
            account = await OAuthAccountRepository(session).get_for_user(user_id)
            if account is None:
                return None
            return OAuthCredentials(
                user_id=account.user_id,
                access_token=account.access_token,
                refresh_token=account.refresh_token,
                access_token_expires_at=account.access_token_expires_at,
                refresh_token_expires_at=account.refresh_token_expires_at,
            )

    async def save_credentials(self, credentials: OAuthCredentials) -> None:
        """Persist refreshed credentials."""
        async with self.connection_manager.get_session() as session:
            repository = OAuthAccountRepository(session)
            account = await repository.get_for_user(credentials.user_id)
            values = {
                "access_token": credentials.access_token,
                "refresh_token": credentials.refresh_token,
                "access_token_expires_at": credentials.access_token_expires_at,
                "refresh_token_expires_at": credentials.refresh_token_expires_at,
            }
            if account is None:
                await repository.create(user_id=credentials.user_id, **values)
            else:
                await repository.update(account, **values)
