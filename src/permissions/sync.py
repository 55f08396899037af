"""Refreshes cached repository permissions from GitHub.

The network phase lists every repository the user can see; the write phase
then replaces the user's rows for mirrored repositories in one transaction.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.config.settings import SyncSettings
from src.database.connection import DatabaseConnectionManager
from src.github import (
    GitHubClient,
    GitHubError,
    OAuthTokenProvider,
    client_for_token,
    decode_lenient,
)
from src.github.schemas import UserRepository
from src.models import utcnow
from src.repositories import RepositoryPermissionRepository, RepositoryRepository

logger = logging.getLogger(__name__)

USER_REPOS_PATH = "/user/repos"
USER_REPOS_AFFILIATION = "owner,collaborator,organization_member"
PAGE_SIZE = 100


@dataclass
class PermissionSyncResult:
    """Summary of one user's permission refresh."""

    user_id: str
    synced_repo_count: int = 0
    upserted_repo_count: int = 0
    deleted_repo_count: int = 0
    skipped: bool = False


@dataclass
class StalePermissionSyncResult:
    attempted_users: int
    synced_users: int


class PermissionSynchronizer:
    """Keeps ``repository_permissions`` in line with GitHub."""

    def __init__(
        self,
        connection_manager: DatabaseConnectionManager,
        oauth: OAuthTokenProvider,
        settings: SyncSettings | None = None,
        client_factory: Callable[[str], GitHubClient] = client_for_token,
    ):
        self.connection_manager = connection_manager
        self.oauth = oauth
        self.settings = settings or SyncSettings()
        self.client_factory = client_factory

    async def sync_user_permissions(self, user_id: str) -> PermissionSyncResult:
        """Refresh one user's permission rows.

        Users without a usable GitHub token, and users whose listing fails,
        are reported as skipped and keep their existing rows.
        """
        try:
            token = await self.oauth.get_user_token(user_id)
            async with self.client_factory(token) as client:
                listed = await self._list_user_repositories(client)
        except GitHubError as e:
            logger.warning(f"Skipping permission sync for user {user_id}: {e}")
            return PermissionSyncResult(user_id=user_id, skipped=True)

        synced_at = utcnow()
        # Delete and upsert commit together with the session
        async with self.connection_manager.get_session() as session:
            connected = await RepositoryRepository(session).list_all_ids()
            rows = [
                _permission_row(user_id, repo, synced_at)
                for repo in listed
                if repo.id in connected
            ]
            result, deleted = await RepositoryPermissionRepository(session).replace_for_user(
                user_id, rows, connected
            )

        logger.info(
            f"Synced permissions for user {user_id}: {len(rows)} repositories, "
            f"{deleted} removed"
        )
        return PermissionSyncResult(
            user_id=user_id,
            synced_repo_count=len(rows),
            upserted_repo_count=result.upserted,
            deleted_repo_count=deleted,
        )

    async def sync_stale_permissions(
        self,
        now: datetime | None = None,
        max_users: int | None = None,
    ) -> StalePermissionSyncResult:
        """Refresh users whose oldest permission row is past the staleness window."""
        now = now or utcnow()
        cutoff = now - timedelta(hours=self.settings.permission_staleness_hours)
        limit = max_users or self.settings.permission_sync_batch_size

        async with self.connection_manager.get_session() as session:
            user_ids = await RepositoryPermissionRepository(session).list_stale_user_ids(
                cutoff, limit
            )

        synced = 0
        for user_id in user_ids:
            result = await self.sync_user_permissions(user_id)
            if not result.skipped:
                synced += 1

        if user_ids:
            logger.info(f"Refreshed stale permissions for {synced}/{len(user_ids)} users")
        return StalePermissionSyncResult(attempted_users=len(user_ids), synced_users=synced)

    async def _list_user_repositories(self, client: GitHubClient) -> list[UserRepository]:
        repositories: list[UserRepository] = []
        page = 1
        while True:
            response = await client.fetch_page(
                USER_REPOS_PATH,
                page=page,
                per_page=PAGE_SIZE,
                params={"affiliation": USER_REPOS_AFFILIATION},
            )
            decoded = decode_lenient(UserRepository, response.items)
            repositories.extend(decoded.items)
            if decoded.total < PAGE_SIZE:
                return repositories
            page += 1


def _permission_row(
    user_id: str, repo: UserRepository, synced_at: datetime
) -> dict[str, Any]:
    flags = repo.permissions
    return {
        "user_id": user_id,
        "repository_id": repo.id,
        "pull": bool(flags and flags.pull),
        "triage": bool(flags and flags.triage),
        "push": bool(flags and flags.push),
        "maintain": bool(flags and flags.maintain),
        "admin": bool(flags and flags.admin),
        "role_name": repo.role_name,
        "synced_at": synced_at,
    }
