"""Single-entity sync for webhooks and "view before bootstrap" requests.

The same record builders and writers as the bootstrap are used, with
batches of one, so an entity synced here is stored exactly as the bootstrap
would have stored it.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.connection import DatabaseConnectionManager
from src.github import GitHubClient, decode_lenient
from src.github.schemas import (
    CheckRun,
    Issue,
    IssueComment,
    PullRequestDetail,
    RepositoryInfo,
    Review,
    ReviewComment,
)
from src.models import Repository
from src.repositories import (
    CheckRunRepository,
    InstallationRepository,
    IssueCommentRepository,
    IssueRepository,
    PullRequestRepository,
    PullRequestReviewCommentRepository,
    PullRequestReviewRepository,
    RepositoryRepository,
)

from .exceptions import EntityNotFoundError, SyncError
from .interfaces import GitHubClientProvider, ProjectionRefresher, RepoContext, Scheduler
from .pr_files import PullRequestFileSync
from .transforms import (
    UserCollector,
    check_run_record,
    issue_comment_record,
    issue_record,
    pull_request_record,
    repository_record,
    review_comment_record,
    review_record,
)
from .writer import MirrorWriter

logger = logging.getLogger(__name__)

DEAD_LETTER_SOURCE = "on_demand"
PAGE_SIZE = 100


@dataclass
class OnDemandResult:
    synced: bool
    repository_id: int
    entity_type: str
    number: int


async def insert_repository(
    session: AsyncSession,
    info: RepositoryInfo,
    connected_by_user_id: str | None = None,
    account_type: str = "User",
    installation_id: int = 0,
) -> Repository:
    """Create the repository row, finding or creating its owner's installation."""
    installation = await InstallationRepository(session).get_or_create(
        info.owner.login, installation_id=installation_id, account_type=account_type
    )
    return await RepositoryRepository(session).create(
        **repository_record(info, installation.installation_id, connected_by_user_id)
    )


class OnDemandSync:
    """Syncs one pull request or issue, with its comments and reviews."""

    def __init__(
        self,
        connection_manager: DatabaseConnectionManager,
        clients: GitHubClientProvider,
        scheduler: Scheduler,
        refresher: ProjectionRefresher,
        writer: MirrorWriter | None = None,
    ):
        self.connection_manager = connection_manager
        self.clients = clients
        self.scheduler = scheduler
        self.refresher = refresher
        self.writer = writer or MirrorWriter(connection_manager)
        self.file_sync = PullRequestFileSync(clients, self.writer)

    async def find_context(self, owner: str, name: str) -> RepoContext | None:
        async with self.connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_full_name(
                f"{owner}/{name}"
            )
            return RepoContext.from_repository(repository) if repository else None

    async def is_present(self, ctx: RepoContext, entity_type: str, number: int) -> bool:
        """Whether the entity is already mirrored."""
        async with self.connection_manager.get_session() as session:
            if entity_type == "pull_request":
                return await PullRequestRepository(session).exists(ctx.repository_id, number)
            return await IssueRepository(session).exists(ctx.repository_id, number)

    async def ensure_repo(
        self, owner: str, name: str, client: GitHubClient, installation_id: int = 0
    ) -> RepoContext:
        """Context of a mirrored repository, creating its row from GitHub if needed.

        Raises:
            EntityNotFoundError: If GitHub does not know the repository
            SyncError: If GitHub returns a repository payload that does not decode
        """
        existing = await self.find_context(owner, name)
        if existing is not None:
            return existing

        full_name = f"{owner}/{name}"
        result = await client.fetch_json(f"/repos/{owner}/{name}")
        if not result.found:
            raise EntityNotFoundError("repository", full_name)
        info = await self._decode_single(
            RepositoryInfo, result.data, f"on-demand-repo:{full_name}"
        )

        async with self.connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(info.id)
            if repository is None:
                repository = await insert_repository(
                    session, info, installation_id=installation_id
                )
                logger.info(f"Registered repository {full_name} from an on-demand sync")
            return RepoContext.from_repository(repository)

    async def _open(
        self, owner: str, name: str, installation_id: int | None, system: bool
    ) -> tuple[RepoContext | None, GitHubClient]:
        """Client for a sync; system callers use the installation token when there is one."""
        ctx = await self.find_context(owner, name)
        if ctx is not None:
            if system and ctx.installation_id > 0:
                return ctx, await self.clients.for_installation(ctx.installation_id)
            return ctx, await self.clients.for_repository(ctx)
        if installation_id:
            return None, await self.clients.for_installation(installation_id)
        raise EntityNotFoundError("repository", f"{owner}/{name}")

    async def sync_pull_request(
        self,
        owner: str,
        name: str,
        number: int,
        force: bool = False,
        installation_id: int | None = None,
        system: bool = False,
    ) -> OnDemandResult:
        """Fetch and store a pull request with its discussion and checks.

        Without ``force``, a pull request already in the mirror is left
        untouched and ``synced`` is False. ``system`` marks webhook and cron
        callers, which read with the installation token.
        """
        ctx = await self.find_context(owner, name)
        if ctx is not None and not force and await self.is_present(ctx, "pull_request", number):
            return OnDemandResult(False, ctx.repository_id, "pull_request", number)

        ctx, client = await self._open(owner, name, installation_id, system)
        async with client:
            if ctx is None:
                ctx = await self.ensure_repo(owner, name, client, installation_id or 0)

            result = await client.fetch_json(f"{ctx.api_path}/pulls/{number}")
            if not result.found:
                raise EntityNotFoundError("pull_request", ctx.full_name, number)
            pr = await self._decode_single(
                PullRequestDetail,
                result.data,
                f"on-demand-pr:{ctx.repository_id}:{number}",
            )

            issue_comments = await self._list(
                client, f"{ctx.api_path}/issues/{number}/comments"
            )
            reviews = await self._list(client, f"{ctx.api_path}/pulls/{number}/reviews")
            review_comments = await self._list(
                client, f"{ctx.api_path}/pulls/{number}/comments"
            )
            check_runs: Any = []
            checks = await client.fetch_json(
                f"{ctx.api_path}/commits/{pr.head.sha}/check-runs",
                params={"per_page": PAGE_SIZE},
            )
            if checks.found:
                check_runs = (checks.data or {}).get("check_runs", [])

        prefix = f"on-demand-pr:{ctx.repository_id}:{number}"
        users = UserCollector()
        await self.writer.upsert(
            PullRequestRepository, [pull_request_record(ctx.repository_id, pr, users)]
        )
        await self._write_list(
            IssueComment,
            issue_comments,
            f"{prefix}:comments",
            IssueCommentRepository,
            lambda c: issue_comment_record(ctx.repository_id, number, c, users),
        )
        await self._write_list(
            Review,
            reviews,
            f"{prefix}:reviews",
            PullRequestReviewRepository,
            lambda r: review_record(ctx.repository_id, number, r, users),
        )
        await self._write_list(
            ReviewComment,
            review_comments,
            f"{prefix}:review-comments",
            PullRequestReviewCommentRepository,
            lambda c: review_comment_record(ctx.repository_id, number, c, users),
        )
        await self._write_list(
            CheckRun,
            check_runs,
            f"{prefix}:check-runs",
            CheckRunRepository,
            lambda run: check_run_record(ctx.repository_id, run),
        )
        await self.writer.write_users(users)

        await self.refresher.refresh_entity(ctx.repository_id, "pull_request", number)
        repo_ctx, head_sha = ctx, pr.head.sha
        self.scheduler.schedule(
            f"pr-files:{ctx.repository_id}:{number}",
            lambda: self.file_sync.sync(repo_ctx, number, head_sha),
        )
        logger.info(f"Synced pull request {ctx.full_name}#{number} on demand")
        return OnDemandResult(True, ctx.repository_id, "pull_request", number)

    async def sync_issue(
        self,
        owner: str,
        name: str,
        number: int,
        force: bool = False,
        installation_id: int | None = None,
        system: bool = False,
    ) -> OnDemandResult:
        """Fetch and store an issue with its comments."""
        ctx = await self.find_context(owner, name)
        if ctx is not None and not force and await self.is_present(ctx, "issue", number):
            return OnDemandResult(False, ctx.repository_id, "issue", number)

        ctx, client = await self._open(owner, name, installation_id, system)
        async with client:
            if ctx is None:
                ctx = await self.ensure_repo(owner, name, client, installation_id or 0)

            result = await client.fetch_json(f"{ctx.api_path}/issues/{number}")
            if not result.found:
                raise EntityNotFoundError("issue", ctx.full_name, number)
            issue = await self._decode_single(
                Issue, result.data, f"on-demand-issue:{ctx.repository_id}:{number}"
            )
            comments = await self._list(client, f"{ctx.api_path}/issues/{number}/comments")

        users = UserCollector()
        await self.writer.upsert(
            IssueRepository, [issue_record(ctx.repository_id, issue, users)]
        )
        await self._write_list(
            IssueComment,
            comments,
            f"on-demand-issue:{ctx.repository_id}:{number}:comments",
            IssueCommentRepository,
            lambda c: issue_comment_record(ctx.repository_id, number, c, users),
        )
        await self.writer.write_users(users)

        await self.refresher.refresh_entity(ctx.repository_id, "issue", number)
        logger.info(f"Synced issue {ctx.full_name}#{number} on demand")
        return OnDemandResult(True, ctx.repository_id, "issue", number)

    # Helpers

    async def _list(self, client: GitHubClient, path: str) -> Any:
        """First page of a sub-collection; a missing collection is empty."""
        result = await client.fetch_json(path, params={"per_page": PAGE_SIZE})
        return result.data if result.found else []

    async def _decode_single(self, schema: Any, raw: Any, delivery_prefix: str) -> Any:
        decoded = decode_lenient(schema, [raw])
        if decoded.skipped:
            await self.writer.dead_letter(decoded.skipped, delivery_prefix, DEAD_LETTER_SOURCE)
            raise SyncError(f"Malformed {schema.__name__} payload ({delivery_prefix})")
        return decoded.items[0]

    async def _write_list(
        self, schema: Any, raw: Any, delivery_prefix: str, repository_factory: Any, build: Any
    ) -> int:
        decoded = decode_lenient(schema, raw)
        await self.writer.dead_letter(decoded.skipped, delivery_prefix, DEAD_LETTER_SOURCE)
        records = [build(item) for item in decoded.items]
        await self.writer.upsert(repository_factory, records)
        return len(records)
