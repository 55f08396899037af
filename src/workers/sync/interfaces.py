"""Collaborator interfaces of the sync engine and their default implementations.

The engine never talks to a task queue or a projection store directly; it
goes through ``Scheduler`` and ``ProjectionRefresher`` so either can be
swapped out (and faked in tests).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from src.github import GitHubClient, GitHubClientConfig, TokenResolver, client_for_token
from src.models import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoContext:
    """What a sync step needs to know about the repository it works on."""

    repository_id: int
    owner: str
    name: str
    installation_id: int = 0
    connected_by_user_id: str | None = None

    @classmethod
    def from_repository(cls, repository: Repository) -> "RepoContext":
        return cls(
            repository_id=repository.github_repo_id,
            owner=repository.owner_login,
            name=repository.name,
            installation_id=repository.installation_id,
            connected_by_user_id=repository.connected_by_user_id,
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def api_path(self) -> str:
        """REST prefix for this repository."""
        return f"/repos/{self.owner}/{self.name}"


class Scheduler(ABC):
    """Runs follow-up work outside the caller's flow."""

    @abstractmethod
    def schedule(self, name: str, work: Callable[[], Awaitable[Any]]) -> None:
        """Run ``work`` later; failures are reported by the scheduler."""
        pass


class ProjectionRefresher(ABC):
    """Rebuilds the derived views the dashboard reads."""

    @abstractmethod
    async def refresh_repository(self, repository_id: int) -> None:
        """Full rebuild of a repository's views after a bulk import."""
        pass

    @abstractmethod
    async def refresh_entity(
        self, repository_id: int, entity_type: str, number: int
    ) -> None:
        """Refresh the views touching one pull request or issue."""
        pass


class AsyncioScheduler(Scheduler):
    """In-process scheduler backed by asyncio tasks."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, name: str, work: Callable[[], Awaitable[Any]]) -> None:
        """Start ``work`` as a background task."""

        async def runner() -> Any:
            return await work()

        task = asyncio.create_task(runner(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Scheduled task {task.get_name()} failed: {error}",
                exc_info=error,
            )

    async def wait_idle(self) -> None:
        """Wait until no scheduled work remains, including work scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel everything still running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


class NoOpProjectionRefresher(ProjectionRefresher):
    """Projection refresher for when no projection store is configured."""

    async def refresh_repository(self, repository_id: int) -> None:
        """Rebuild repository views (no-op)."""
        logger.debug(f"Would rebuild projections for repository {repository_id}")

    async def refresh_entity(
        self, repository_id: int, entity_type: str, number: int
    ) -> None:
        """Refresh entity views (no-op)."""
        logger.debug(
            f"Would refresh {entity_type} #{number} projections "
            f"for repository {repository_id}"
        )


class GitHubClientProvider:
    """Builds API clients authenticated for a repository or installation."""

    def __init__(
        self,
        resolver: TokenResolver,
        config: GitHubClientConfig | None = None,
        client_factory: Callable[[str, GitHubClientConfig | None], GitHubClient] = (
            client_for_token
        ),
    ):
        self.resolver = resolver
        self.config = config
        self.client_factory = client_factory

    async def for_repository(self, ctx: RepoContext) -> GitHubClient:
        """Client using the connecting user's token, else the installation's.

        Raises:
            NoGitHubTokenError: If no token source is available
        """
        token = await self.resolver.resolve_repo_token(
            ctx.connected_by_user_id, ctx.installation_id
        )
        return self.client_factory(token, self.config)

    async def for_installation(self, installation_id: int) -> GitHubClient:
        """Client for system-initiated work such as webhooks."""
        token = await self.resolver.resolve_system_token(installation_id)
        return self.client_factory(token, self.config)
