"""Durable bootstrap workflow driving the full import of a repository.

The ledger row is the workflow's only state. Each finished step (and each
finished chunk of a paged step) is recorded in ``SyncJob.journal`` before
the next one starts, so a job re-dispatched after a crash or a rate limit
skips what is already done and resumes paging from the stored cursor.
"""

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from src.config.settings import SyncSettings
from src.database.connection import DatabaseConnectionManager
from src.github import (
    GitHubClient,
    GitHubConnectionError,
    GitHubError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTimeoutError,
)
from src.models import SyncJobState, utcnow
from src.repositories import PullRequestRepository, RepositoryRepository, SyncJobRepository

from .bootstrap_steps import (
    ChunkResult,
    sync_branches,
    sync_check_runs,
    sync_commits,
    sync_issue_chunk,
    sync_pull_request_chunk,
    sync_workflow_runs,
)
from .exceptions import SyncJobNotFoundError
from .interfaces import GitHubClientProvider, ProjectionRefresher, RepoContext, Scheduler
from .pr_files import PullRequestFileSync
from .writer import MirrorWriter

logger = logging.getLogger(__name__)

PROGRESS_EVERY_CHUNKS = 5
CANCELED_MESSAGE = "Workflow canceled"

# Failures that outlive the client's own retries but clear up on their own.
# 404, validation and auth errors are not in here and fail the job.
RETRYABLE_ERRORS = (
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubConnectionError,
)

ChunkStep = Callable[[GitHubClient, MirrorWriter, RepoContext, int], Awaitable[ChunkResult]]


class JobSuperseded(Exception):
    """The ledger row left ``running`` while this worker was still on it."""

    pass


def compute_retry_delay_ms(
    attempt: int, floor_ms: int, cap_ms: int, retry_after_ms: int | None = None
) -> int:
    """Exponential back-off with a floor, honoring the server's reset hint."""
    exponential = min(cap_ms, floor_ms * 2 ** max(attempt, 0))
    return max(floor_ms, exponential, retry_after_ms or 0)


class BootstrapOrchestrator:
    """Runs, resumes and schedules repository bootstrap jobs."""

    def __init__(
        self,
        connection_manager: DatabaseConnectionManager,
        clients: GitHubClientProvider,
        scheduler: Scheduler,
        refresher: ProjectionRefresher,
        settings: SyncSettings | None = None,
    ):
        self.connection_manager = connection_manager
        self.clients = clients
        self.scheduler = scheduler
        self.refresher = refresher
        self.settings = settings or SyncSettings()
        self.writer = MirrorWriter(connection_manager)
        self.file_sync = PullRequestFileSync(clients, self.writer)

    # Dispatch

    def dispatch(self, lock_key: str) -> None:
        """Schedule ``start_bootstrap`` for a job."""
        self.scheduler.schedule(
            f"bootstrap:{lock_key}", lambda: self.start_bootstrap(lock_key)
        )

    async def start_bootstrap(self, lock_key: str) -> bool:
        """Claim and run a pending (or due retry) job.

        Leaves the job untouched when the installation is at its concurrency
        cap or the job is not claimable.

        Returns:
            True if this call ran the job
        """
        cap = self.settings.max_concurrent_per_installation
        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            job = await ledger.get_by_lock_key(lock_key)
            if job is None or job.state not in (SyncJobState.PENDING, SyncJobState.RETRY):
                logger.debug(f"Job {lock_key} is not claimable, skipping")
                return False

            running = await ledger.count_running_for_installation(job.installation_id, cap)
            if running >= cap:
                logger.info(
                    f"Installation {job.installation_id} at capacity ({running}/{cap}), "
                    f"leaving {lock_key} pending"
                )
                return False

            claimed = await ledger.claim(lock_key)

        if not claimed:
            logger.debug(f"Lost claim race for {lock_key}")
            return False

        await self.run(lock_key)
        return True

    async def drain_pending_for_installation(self, installation_id: int) -> int:
        """Dispatch pending jobs into the installation's free slots.

        Returns:
            Number of jobs dispatched
        """
        cap = self.settings.max_concurrent_per_installation
        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            available = cap - await ledger.count_running_for_installation(
                installation_id, cap
            )
            if available <= 0:
                return 0

            repositories = RepositoryRepository(session)
            chosen: list[str] = []
            for job in await ledger.list_pending_for_installation(
                installation_id, available * 3
            ):
                if job.repository_id is None:
                    continue
                if await repositories.get_by_github_id(job.repository_id) is None:
                    continue
                chosen.append(job.lock_key)
                if len(chosen) >= available:
                    break

        for lock_key in chosen:
            self.dispatch(lock_key)
        if chosen:
            logger.info(
                f"Dispatched {len(chosen)} pending job(s) for installation {installation_id}"
            )
        return len(chosen)

    async def redispatch_due_retries(self, now: datetime | None = None) -> int:
        """Dispatch retry jobs whose back-off has elapsed."""
        async with self.connection_manager.get_session() as session:
            due = await SyncJobRepository(session).list_due_retries(
                now or utcnow(), self.settings.due_retry_batch_size
            )
            lock_keys = [job.lock_key for job in due]

        for lock_key in lock_keys:
            self.dispatch(lock_key)
        return len(lock_keys)

    # Workflow

    async def run(self, lock_key: str) -> None:
        """Execute the steps of a claimed job and record the outcome.

        Raises:
            SyncJobNotFoundError: If the ledger row disappeared
        """
        async with self.connection_manager.get_session() as session:
            job = await SyncJobRepository(session).get_by_lock_key(lock_key)
            if job is None:
                raise SyncJobNotFoundError(f"No sync job for {lock_key}")
            installation_id = job.installation_id
            journal: dict[str, Any] = copy.deepcopy(job.journal or {})
            repository = (
                await RepositoryRepository(session).get_by_github_id(job.repository_id)
                if job.repository_id is not None
                else None
            )
            ctx = RepoContext.from_repository(repository) if repository else None

        if ctx is None:
            await self._finish(
                lock_key,
                SyncJobState.FAILED,
                f"Repository for {lock_key} is not mirrored",
            )
            await self.drain_pending_for_installation(installation_id)
            return

        try:
            logger.info(f"Bootstrap of {ctx.full_name} started", extra={"lock_key": lock_key})
            async with await self.clients.for_repository(ctx) as client:
                await self._run_steps(lock_key, client, ctx, journal)
        except JobSuperseded:
            logger.info(f"Job {lock_key} changed state underneath this run, stopping")
            return
        except RETRYABLE_ERRORS as e:
            await self._schedule_retry(lock_key, e)
        except asyncio.CancelledError:
            await self._finish(lock_key, SyncJobState.FAILED, CANCELED_MESSAGE)
            raise
        except Exception as e:
            logger.error(f"Bootstrap {lock_key} failed: {e}", exc_info=True)
            await self._finish(lock_key, SyncJobState.FAILED, str(e))
        else:
            await self._finish(lock_key, SyncJobState.DONE, None)
            await self.refresher.refresh_repository(ctx.repository_id)
            logger.info(f"Bootstrap of {ctx.full_name} completed", extra={"lock_key": lock_key})
        await self.drain_pending_for_installation(installation_id)

    async def _run_steps(
        self,
        lock_key: str,
        client: GitHubClient,
        ctx: RepoContext,
        journal: dict[str, Any],
    ) -> None:
        completed: dict[str, Any] = journal.setdefault("completed", {})

        async def simple_step(
            key: str, label: str, current: str, work: Callable[[], Awaitable[dict[str, Any]]]
        ) -> None:
            if key in completed:
                return
            await self._progress(lock_key, current)
            summary = await work()
            completed[key] = summary
            await self._save_journal(lock_key, journal)
            await self._progress(
                lock_key, None, completed_step=label, items=summary.get("count")
            )

        async def branches() -> dict[str, Any]:
            return {"count": await sync_branches(client, self.writer, ctx)}

        async def commits() -> dict[str, Any]:
            return {"count": await sync_commits(client, self.writer, ctx)}

        async def workflows() -> dict[str, Any]:
            summary = await sync_workflow_runs(client, self.writer, ctx)
            return {"runs": summary.runs, "jobs": summary.jobs}

        await simple_step("branches", "Branches", "Fetching branches", branches)
        await self._chunked_step(
            lock_key,
            client,
            ctx,
            journal,
            key="pull_requests",
            label="Pull requests",
            current="Fetching pull requests",
            chunk_step=sync_pull_request_chunk,
        )
        await self._chunked_step(
            lock_key,
            client,
            ctx,
            journal,
            key="issues",
            label="Issues",
            current="Fetching issues",
            chunk_step=sync_issue_chunk,
        )
        await simple_step("commits", "Commits", "Fetching commits", commits)

        async with self.connection_manager.get_session() as session:
            targets = await PullRequestRepository(session).list_open_sync_targets(
                ctx.repository_id
            )

        async def check_runs() -> dict[str, Any]:
            async def note(text: str) -> None:
                await self._progress(lock_key, text)

            return {"count": await sync_check_runs(client, self.writer, ctx, targets, note)}

        async def file_diffs() -> dict[str, Any]:
            for number, head_sha in targets:
                self._schedule_file_sync(ctx, number, head_sha)
            return {"scheduled": len(targets)}

        await simple_step("check_runs", "Check runs", "Analyzing check runs", check_runs)
        await simple_step("workflows", "Workflows", "Fetching workflow runs", workflows)
        if targets:
            await simple_step("file_diffs", "File diffs", "Scheduling file diffs", file_diffs)

    async def _chunked_step(
        self,
        lock_key: str,
        client: GitHubClient,
        ctx: RepoContext,
        journal: dict[str, Any],
        key: str,
        label: str,
        current: str,
        chunk_step: ChunkStep,
    ) -> None:
        completed: dict[str, Any] = journal["completed"]
        if key in completed:
            return

        cursors: dict[str, Any] = journal.setdefault("cursors", {})
        partial: dict[str, int] = journal.setdefault("partial", {})
        cursor: int | None = cursors.get(key, 1)
        total = partial.get(key, 0)
        chunks = 0
        await self._progress(lock_key, current)

        while cursor is not None:
            result = await chunk_step(client, self.writer, ctx, cursor)
            cursor = result.next_cursor
            total += result.count
            chunks += 1
            cursors[key] = cursor
            partial[key] = total
            await self._save_journal(lock_key, journal)
            await self._progress(lock_key, None if cursor is None else current, items=result.count)
            if cursor is not None and chunks % PROGRESS_EVERY_CHUNKS == 0:
                await self._progress(lock_key, f"{current} ({total} so far)")

        completed[key] = {"count": total}
        cursors.pop(key, None)
        partial.pop(key, None)
        await self._save_journal(lock_key, journal)
        await self._progress(lock_key, None, completed_step=label)

    def _schedule_file_sync(self, ctx: RepoContext, number: int, head_sha: str) -> None:
        self.scheduler.schedule(
            f"pr-files:{ctx.repository_id}:{number}",
            lambda: self.file_sync.sync(ctx, number, head_sha),
        )

    # Ledger bookkeeping

    async def _ensure_running(self, ledger: SyncJobRepository, lock_key: str) -> None:
        job = await ledger.get_by_lock_key(lock_key)
        if job is None or job.state is not SyncJobState.RUNNING:
            raise JobSuperseded(lock_key)

    async def _progress(
        self,
        lock_key: str,
        current_step: str | None,
        completed_step: str | None = None,
        items: int | None = None,
    ) -> None:
        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            await self._ensure_running(ledger, lock_key)
            await ledger.update_progress(
                lock_key, current_step, completed_step=completed_step, items_in_step=items
            )

    async def _save_journal(self, lock_key: str, journal: dict[str, Any]) -> None:
        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            await self._ensure_running(ledger, lock_key)
            await ledger.save_journal(lock_key, journal)

    async def _schedule_retry(self, lock_key: str, error: GitHubError) -> None:
        """Back the job off, or fail it once it has used up its attempts."""
        retry_after_ms = (
            error.retry_after_ms if isinstance(error, GitHubRateLimitError) else None
        )
        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            job = await ledger.get_by_lock_key(lock_key)
            if job is None or job.state is not SyncJobState.RUNNING:
                return
            attempts = job.attempt_count
            if attempts >= self.settings.max_attempts:
                await ledger.mark(
                    lock_key,
                    SyncJobState.FAILED,
                    f"Giving up after {attempts} attempts: {error}",
                )
                delay_ms = None
            else:
                delay_ms = compute_retry_delay_ms(
                    attempts,
                    self.settings.retry_backoff_floor_ms,
                    self.settings.retry_backoff_cap_ms,
                    retry_after_ms,
                )
                await ledger.schedule_retry(
                    lock_key, str(error), utcnow() + timedelta(milliseconds=delay_ms)
                )

        if delay_ms is None:
            logger.error(
                f"Bootstrap {lock_key} failed after {attempts} attempts: {error}",
                extra={"lock_key": lock_key},
            )
            return
        logger.warning(
            f"Bootstrap {lock_key} hit {type(error).__name__}, "
            f"retrying in {delay_ms / 1000:.0f}s",
            extra={"lock_key": lock_key, "delay_ms": delay_ms},
        )

    async def _finish(
        self,
        lock_key: str,
        state: SyncJobState,
        last_error: str | None,
    ) -> None:
        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            job = await ledger.get_by_lock_key(lock_key)
            if job is None or job.state is not SyncJobState.RUNNING:
                logger.info(f"Job {lock_key} no longer running, outcome not recorded")
                return
            await ledger.mark(lock_key, state, last_error)
            if state is SyncJobState.DONE:
                await ledger.update_progress(lock_key, None)
