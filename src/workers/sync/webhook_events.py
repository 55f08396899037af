"""Webhook events written straight from their payload.

Push, ref and check run deliveries already carry everything the mirror
stores for them, so no API call is made. Deliveries for repositories that
are not mirrored are skipped.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from src.database.connection import DatabaseConnectionManager
from src.github import decode_lenient
from src.github.schemas import CheckRun, PushCommit, WebhookEnvelope
from src.repositories import (
    BranchRepository,
    CheckRunRepository,
    CommitRepository,
    RepositoryRepository,
)

from .interfaces import ProjectionRefresher
from .transforms import UserCollector, check_run_record, push_commit_record
from .writer import MirrorWriter

logger = logging.getLogger(__name__)

DEAD_LETTER_SOURCE = "webhook"
BRANCH_REF_PREFIX = "refs/heads/"


@dataclass
class WebhookWriteResult:
    event: str
    repository_id: int
    written: int


class WebhookEventWriter:
    """Applies push, check_run, create and delete deliveries to the mirror."""

    def __init__(
        self,
        connection_manager: DatabaseConnectionManager,
        refresher: ProjectionRefresher,
        writer: MirrorWriter | None = None,
    ):
        self.connection_manager = connection_manager
        self.refresher = refresher
        self.writer = writer or MirrorWriter(connection_manager)
        self._handlers: dict[
            str, Callable[[int, WebhookEnvelope, str], Awaitable[int]]
        ] = {
            "push": self._push,
            "check_run": self._check_run,
            "create": self._create,
            "delete": self._delete,
        }

    @property
    def events(self) -> frozenset[str]:
        return frozenset(self._handlers)

    async def write(
        self, event: str, envelope: WebhookEnvelope, delivery_id: str
    ) -> WebhookWriteResult | None:
        """Write one delivery and refresh the repository's projections.

        Returns:
            None when the repository is not mirrored
        """
        async with self.connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(
                envelope.repository.id
            )
            repository_id = repository.github_repo_id if repository else None

        if repository_id is None:
            logger.info(
                f"Skipping {event} for {envelope.repository.full_name}, not mirrored",
                extra={"delivery_id": delivery_id},
            )
            return None

        written = await self._handlers[event](repository_id, envelope, delivery_id)
        await self.refresher.refresh_repository(repository_id)
        logger.debug(f"Applied {event} delivery {delivery_id}: {written} row(s)")
        return WebhookWriteResult(event, repository_id, written)

    async def _push(self, repository_id: int, envelope: WebhookEnvelope, delivery_id: str) -> int:
        """Move the branch head and add the pushed commits; tags are ignored."""
        ref, after = envelope.ref, envelope.after
        if not ref or not after or not ref.startswith(BRANCH_REF_PREFIX):
            return 0
        branch = ref.removeprefix(BRANCH_REF_PREFIX)

        if envelope.deleted:
            return await self._delete_branch(repository_id, branch)

        # protected is left out so a patch keeps the listed value
        await self.writer.upsert(
            BranchRepository,
            [{"repository_id": repository_id, "name": branch, "head_sha": after}],
        )

        decoded = decode_lenient(PushCommit, envelope.commits)
        await self.writer.dead_letter(
            decoded.skipped, f"{delivery_id}:commits", DEAD_LETTER_SOURCE
        )
        commits = await self.writer.insert_missing(
            CommitRepository,
            [push_commit_record(repository_id, commit) for commit in decoded.items],
        )

        users = UserCollector()
        users.collect(envelope.sender)
        await self.writer.write_users(users)
        return 1 + commits.inserted

    async def _check_run(
        self, repository_id: int, envelope: WebhookEnvelope, delivery_id: str
    ) -> int:
        decoded = decode_lenient(CheckRun, [envelope.check_run])
        await self.writer.dead_letter(
            decoded.skipped, f"{delivery_id}:check_run", DEAD_LETTER_SOURCE
        )
        result = await self.writer.upsert(
            CheckRunRepository, [check_run_record(repository_id, run) for run in decoded.items]
        )
        return result.upserted

    async def _create(self, repository_id: int, envelope: WebhookEnvelope, delivery_id: str) -> int:
        """Record a new branch; its head arrives with the next push."""
        if envelope.ref_type != "branch" or not envelope.ref:
            return 0
        result = await self.writer.insert_missing(
            BranchRepository,
            [{"repository_id": repository_id, "name": envelope.ref, "head_sha": ""}],
        )
        return result.inserted

    async def _delete(self, repository_id: int, envelope: WebhookEnvelope, delivery_id: str) -> int:
        if envelope.ref_type != "branch" or not envelope.ref:
            return 0
        return await self._delete_branch(repository_id, envelope.ref)

    async def _delete_branch(self, repository_id: int, name: str) -> int:
        async with self.connection_manager.get_session() as session:
            deleted = await BranchRepository(session).delete_by_name(repository_id, name)
        return 1 if deleted else 0
