"""Inbound trigger surface of the sync engine.

Connect, webhook, entity-view and admin requests all arrive here and are
turned into ledger rows, bootstrap dispatches or on-demand syncs.
"""

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from src.database.connection import DatabaseConnectionManager
from src.github.decoding import truncate_raw
from src.github.schemas import RepositoryInfo, WebhookEnvelope
from src.models import DeadLetter, PermissionLevel, SyncTriggerReason, bootstrap_lock_key
from src.permissions import PermissionSynchronizer, verify_repo_permission
from src.repositories import (
    DeadLetterEntry,
    DeadLetterRepository,
    RepositoryRepository,
    SyncJobRepository,
)

from .bootstrap_workflow import BootstrapOrchestrator
from .exceptions import InvalidRepoFormatError, RepoAlreadyConnectedError, SyncJobNotFoundError
from .on_demand import OnDemandResult, OnDemandSync, insert_repository
from .recovery import StuckJob, StuckJobRecovery
from .webhook_events import WebhookEventWriter, WebhookWriteResult

logger = logging.getLogger(__name__)

PULL_REQUEST_EVENTS = frozenset(
    {"pull_request", "pull_request_review", "pull_request_review_comment"}
)
ISSUE_EVENTS = frozenset({"issues", "issue_comment"})


@dataclass
class ConnectResult:
    repository_id: int
    lock_key: str
    bootstrap_scheduled: bool


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split ``owner/name``.

    Raises:
        InvalidRepoFormatError: Unless there is exactly one slash with text on both sides
    """
    owner, sep, name = full_name.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise InvalidRepoFormatError(full_name)
    return owner, name


class SyncTriggers:
    """Entry points used by the web tier, the webhook receiver and admins."""

    def __init__(
        self,
        connection_manager: DatabaseConnectionManager,
        orchestrator: BootstrapOrchestrator,
        on_demand: OnDemandSync,
        recovery: StuckJobRecovery,
        permissions: PermissionSynchronizer | None = None,
        event_writer: WebhookEventWriter | None = None,
    ):
        self.connection_manager = connection_manager
        self.orchestrator = orchestrator
        self.on_demand = on_demand
        self.recovery = recovery
        self.permissions = permissions
        self.event_writer = event_writer or WebhookEventWriter(
            connection_manager, orchestrator.refresher, orchestrator.writer
        )

    async def connect_repo(
        self,
        info: RepositoryInfo,
        connected_by_user_id: str | None,
        owner_type: str = "User",
    ) -> ConnectResult:
        """Register a repository and start its bootstrap.

        The ledger row is only created when its lock key is absent, and the
        bootstrap is only dispatched when a user or an App installation can
        supply a token.

        Raises:
            InvalidRepoFormatError: If ``info.full_name`` is not ``owner/name``
            RepoAlreadyConnectedError: If the repository is already mirrored
        """
        split_full_name(info.full_name)

        async with self.connection_manager.get_session() as session:
            repositories = RepositoryRepository(session)
            if await repositories.get_by_github_id(info.id) is not None:
                raise RepoAlreadyConnectedError(info.full_name)

            repository = await insert_repository(
                session, info, connected_by_user_id, account_type=owner_type
            )
            lock_key = bootstrap_lock_key(repository.installation_id, info.id)
            _, created = await SyncJobRepository(session).create_if_absent(
                lock_key, repository.installation_id, info.id
            )
            can_dispatch = created and (
                connected_by_user_id is not None or repository.installation_id > 0
            )

        if can_dispatch:
            self.orchestrator.dispatch(lock_key)
        permissions = self.permissions
        if connected_by_user_id is not None and permissions is not None:
            user_id = connected_by_user_id
            self.orchestrator.scheduler.schedule(
                f"permissions:{user_id}",
                lambda: permissions.sync_user_permissions(user_id),
            )

        logger.info(
            f"Connected repository {info.full_name}",
            extra={"lock_key": lock_key, "bootstrap_scheduled": can_dispatch},
        )
        return ConnectResult(info.id, lock_key, can_dispatch)

    async def handle_webhook(
        self, event: str, payload: dict[str, Any], delivery_id: str
    ) -> OnDemandResult | WebhookWriteResult | None:
        """Route a webhook delivery.

        Pull request and issue events become forced on-demand syncs read
        with the installation token. Push, check_run, create and delete are
        written from the payload itself.

        Returns None for events that are not routed and for malformed
        deliveries, which are dead-lettered.
        """
        try:
            envelope = WebhookEnvelope.model_validate(payload)
        except ValidationError as e:
            await self._dead_letter_webhook(delivery_id, f"Invalid {event} envelope: {e}", payload)
            return None

        repo = envelope.repository
        installation_id = envelope.installation.id if envelope.installation else None
        owner, name = repo.owner.login, repo.name

        if event in PULL_REQUEST_EVENTS:
            if envelope.pull_request is None:
                await self._dead_letter_webhook(
                    delivery_id, f"{event} delivery without pull_request", payload
                )
                return None
            return await self.on_demand.sync_pull_request(
                owner,
                name,
                envelope.pull_request.number,
                force=True,
                installation_id=installation_id,
                system=True,
            )

        if event in ISSUE_EVENTS:
            if envelope.issue is None:
                await self._dead_letter_webhook(
                    delivery_id, f"{event} delivery without issue", payload
                )
                return None
            if envelope.issue.pull_request is not None:
                return await self.on_demand.sync_pull_request(
                    owner,
                    name,
                    envelope.issue.number,
                    force=True,
                    installation_id=installation_id,
                    system=True,
                )
            return await self.on_demand.sync_issue(
                owner,
                name,
                envelope.issue.number,
                force=True,
                installation_id=installation_id,
                system=True,
            )

        if event in self.event_writer.events:
            return await self.event_writer.write(event, envelope, delivery_id)

        logger.warning(f"Ignoring webhook event {event} ({delivery_id})")
        return None

    async def request_entity_view(
        self,
        owner: str,
        name: str,
        entity_type: str,
        number: int,
        user_id: str | None = None,
    ) -> bool:
        """Check the mirror now and sync in the background if the entity is missing.

        The caller needs pull access to the mirrored repository; anonymous
        callers get it on public repositories only.

        Returns:
            True if the entity is already present

        Raises:
            NotAuthenticatedError: If an anonymous caller asks for a private repository
            InsufficientPermissionError: If the user cannot read the repository
            RepoNotFoundError: If the repository is not mirrored
        """
        async with self.connection_manager.get_session() as session:
            await verify_repo_permission(
                session,
                user_id,
                PermissionLevel.PULL,
                full_name=f"{owner}/{name}",
                require_authenticated=False,
            )

        ctx = await self.on_demand.find_context(owner, name)
        if ctx is not None and await self.on_demand.is_present(ctx, entity_type, number):
            return True

        if entity_type == "pull_request":

            async def work() -> OnDemandResult:
                return await self.on_demand.sync_pull_request(owner, name, number)

        else:

            async def work() -> OnDemandResult:
                return await self.on_demand.sync_issue(owner, name, number)

        self.orchestrator.scheduler.schedule(
            f"on-demand:{owner}/{name}:{entity_type}:{number}", work
        )
        return False

    async def request_resync(self, repository_id: int, user_id: str | None) -> str:
        """Reset the repository's bootstrap job and dispatch it again.

        Only repository admins may restart an import.

        Raises:
            SyncJobNotFoundError: If the repository is not mirrored
            NotAuthenticatedError: If there is no user
            InsufficientPermissionError: If the user is not an admin
        """
        async with self.connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(repository_id)
            if repository is None:
                raise SyncJobNotFoundError(f"Repository {repository_id} is not mirrored")
            await verify_repo_permission(
                session, user_id, PermissionLevel.ADMIN, repository_id=repository_id
            )
            lock_key = bootstrap_lock_key(repository.installation_id, repository_id)
            ledger = SyncJobRepository(session)
            if await ledger.reset_to_pending(lock_key) is None:
                await ledger.create_if_absent(
                    lock_key,
                    repository.installation_id,
                    repository_id,
                    trigger_reason=SyncTriggerReason.MANUAL,
                )

        self.orchestrator.dispatch(lock_key)
        logger.info(
            f"Resync requested for repository {repository_id} by {user_id}",
            extra={"lock_key": lock_key},
        )
        return lock_key

    async def patch_repo_connected_user(
        self, repository_id: int, user_id: str, requested_by: str | None
    ) -> bool:
        """Backfill the connecting user of a repository; False if it is not mirrored.

        Raises:
            NotAuthenticatedError: If ``requested_by`` is None
            InsufficientPermissionError: If ``requested_by`` is not a repository admin
        """
        async with self.connection_manager.get_session() as session:
            repositories = RepositoryRepository(session)
            repository = await repositories.get_by_github_id(repository_id)
            if repository is None:
                return False
            await verify_repo_permission(
                session, requested_by, PermissionLevel.ADMIN, repository_id=repository_id
            )
            await repositories.update(repository, connected_by_user_id=user_id)
            return True

    async def list_dead_letters(
        self, source: str | None = None, limit: int = 50
    ) -> list[DeadLetter]:
        async with self.connection_manager.get_session() as session:
            return await DeadLetterRepository(session).list_recent(source, limit)

    async def list_stuck_jobs(self, threshold_minutes: int | None = None) -> list[StuckJob]:
        return await self.recovery.list_stuck_jobs(threshold_minutes)

    async def _dead_letter_webhook(
        self, delivery_id: str, reason: str, payload: Any
    ) -> None:
        entry = DeadLetterEntry(
            delivery_id=delivery_id, reason=reason[:2000], payload_json=truncate_raw(payload)
        )
        async with self.connection_manager.get_session() as session:
            await DeadLetterRepository(session).record_batch([entry], "webhook")
