"""
Unit tests for the sync trigger surface.

Why: Every way a sync starts (connect, webhook, page view, admin action)
     goes through SyncTriggers; routing mistakes here silently drop syncs
What: Tests repository connection, webhook routing and dead-lettering,
      entity view requests and the admin operations
How: Uses a real orchestrator and ledger on in-memory SQLite, with the
     on-demand sync and permission synchronizer replaced by mocks
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config.settings import SyncSettings
from src.database.connection import DatabaseConnectionManager
from src.github.schemas import CheckRun, Commit, RepositoryInfo
from src.models import SyncJobState, SyncTriggerReason, bootstrap_lock_key, utcnow
from src.permissions import (
    InsufficientPermissionError,
    NotAuthenticatedError,
    PermissionSynchronizer,
    RepoNotFoundError,
)
from src.repositories import (
    BranchRepository,
    CheckRunRepository,
    CommitRepository,
    GitHubUserRepository,
    InstallationRepository,
    RepositoryRepository,
)
from src.workers.sync import (
    BootstrapOrchestrator,
    InvalidRepoFormatError,
    OnDemandResult,
    OnDemandSync,
    RepoAlreadyConnectedError,
    RepoContext,
    StuckJobRecovery,
    SyncJobNotFoundError,
    SyncTriggers,
    WebhookWriteResult,
    split_full_name,
)
from src.workers.sync.transforms import UserCollector, check_run_record, commit_record
from tests.fixtures import github_payloads as gh
from tests.fixtures.mirror import (
    RecordingRefresher,
    RecordingScheduler,
    grant_permission,
    insert_job,
    insert_repository,
    load_job,
    static_client_provider,
)

LOCK_KEY = bootstrap_lock_key(0, gh.REPO_ID)


@pytest.fixture
def on_demand() -> MagicMock:
    on_demand = MagicMock(spec=OnDemandSync)
    on_demand.sync_pull_request = AsyncMock(
        return_value=OnDemandResult(True, gh.REPO_ID, "pull_request", 7)
    )
    on_demand.sync_issue = AsyncMock(return_value=OnDemandResult(True, gh.REPO_ID, "issue", 3))
    on_demand.find_context = AsyncMock(return_value=None)
    on_demand.is_present = AsyncMock(return_value=False)
    return on_demand


@pytest.fixture
def permissions() -> MagicMock:
    permissions = MagicMock(spec=PermissionSynchronizer)
    permissions.sync_user_permissions = AsyncMock()
    return permissions


@pytest.fixture
def triggers(
    connection_manager: DatabaseConnectionManager,
    scheduler: RecordingScheduler,
    refresher: RecordingRefresher,
    sync_settings: SyncSettings,
    on_demand: MagicMock,
    permissions: MagicMock,
) -> SyncTriggers:
    orchestrator = BootstrapOrchestrator(
        connection_manager, static_client_provider(), scheduler, refresher, sync_settings
    )
    recovery = StuckJobRecovery(connection_manager, orchestrator, sync_settings)
    return SyncTriggers(connection_manager, orchestrator, on_demand, recovery, permissions)


def repo_info(**overrides: object) -> RepositoryInfo:
    return RepositoryInfo.model_validate(gh.repository_info(**overrides))


class TestSplitFullName:
    def test_valid(self) -> None:
        assert split_full_name("octo/widgets") == ("octo", "widgets")

    @pytest.mark.parametrize("full_name", ["widgets", "/widgets", "octo/", "a/b/c", ""])
    def test_invalid(self, full_name: str) -> None:
        with pytest.raises(InvalidRepoFormatError):
            split_full_name(full_name)


class TestConnectRepo:
    """Test repository connection."""

    async def test_creates_repository_and_dispatches_bootstrap(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
        permissions: MagicMock,
    ) -> None:
        """
        Why: Connecting is the start of every mirror
        What: The repository and a pending ledger row are created, the
              bootstrap is dispatched and the user's permissions refreshed
        How: Connects with a user id and runs the scheduled permission sync
        """
        result = await triggers.connect_repo(repo_info(), "user-1")

        assert result.bootstrap_scheduled is True
        assert result.lock_key == LOCK_KEY
        assert scheduler.names == [f"bootstrap:{LOCK_KEY}", "permissions:user-1"]
        job = await load_job(connection_manager, LOCK_KEY)
        assert job.state is SyncJobState.PENDING
        async with connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(gh.REPO_ID)
        assert repository is not None
        assert repository.connected_by_user_id == "user-1"

        scheduler.scheduled.pop(0)
        await scheduler.run_next()
        permissions.sync_user_permissions.assert_awaited_once_with("user-1")

    async def test_duplicate_connection_is_rejected(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)

        with pytest.raises(RepoAlreadyConnectedError):
            await triggers.connect_repo(repo_info(), "user-1")

    async def test_bad_full_name_is_rejected(self, triggers: SyncTriggers) -> None:
        with pytest.raises(InvalidRepoFormatError):
            await triggers.connect_repo(repo_info(full_name="widgets"), "user-1")

    async def test_no_token_source_means_no_dispatch(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
    ) -> None:
        result = await triggers.connect_repo(repo_info(), None)

        assert result.bootstrap_scheduled is False
        assert scheduler.scheduled == []
        job = await load_job(connection_manager, LOCK_KEY)
        assert job.state is SyncJobState.PENDING

    async def test_installation_supplies_the_token(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
    ) -> None:
        async with connection_manager.get_session() as session:
            await InstallationRepository(session).get_or_create(
                gh.OWNER, installation_id=555, account_type="Organization"
            )

        result = await triggers.connect_repo(repo_info(), None, owner_type="Organization")

        assert result.lock_key == bootstrap_lock_key(555, gh.REPO_ID)
        assert scheduler.names == [f"bootstrap:{result.lock_key}"]


class TestHandleWebhook:
    """Test webhook routing."""

    async def test_pull_request_event(self, triggers: SyncTriggers, on_demand: MagicMock) -> None:
        result = await triggers.handle_webhook(
            "pull_request", gh.webhook_payload(pull_request_number=7), "delivery-1"
        )

        assert result is not None and result.synced is True
        on_demand.sync_pull_request.assert_awaited_once_with(
            gh.OWNER, gh.REPO, 7, force=True, installation_id=555, system=True
        )

    async def test_comment_on_pull_request_routes_to_pull_request(
        self, triggers: SyncTriggers, on_demand: MagicMock
    ) -> None:
        payload = gh.webhook_payload(issue_number=7, issue_is_pull_request=True)

        await triggers.handle_webhook("issue_comment", payload, "delivery-2")

        on_demand.sync_pull_request.assert_awaited_once_with(
            gh.OWNER, gh.REPO, 7, force=True, installation_id=555, system=True
        )
        on_demand.sync_issue.assert_not_awaited()

    async def test_issue_event_without_installation(
        self, triggers: SyncTriggers, on_demand: MagicMock
    ) -> None:
        payload = gh.webhook_payload(issue_number=3, installation_id=None)

        await triggers.handle_webhook("issues", payload, "delivery-3")

        on_demand.sync_issue.assert_awaited_once_with(
            gh.OWNER, gh.REPO, 3, force=True, installation_id=None, system=True
        )

    async def test_invalid_envelope_is_dead_lettered(
        self, triggers: SyncTriggers, on_demand: MagicMock
    ) -> None:
        """
        Why: A delivery we cannot parse must leave a trace for operators
        What: The payload is stored under the webhook source and nothing syncs
        How: Sends a payload without a repository
        """
        result = await triggers.handle_webhook("pull_request", {"action": "opened"}, "delivery-4")

        assert result is None
        dead = await triggers.list_dead_letters(source="webhook")
        assert [d.delivery_id for d in dead] == ["delivery-4"]
        assert dead[0].reason.startswith("Invalid pull_request envelope")
        on_demand.sync_pull_request.assert_not_awaited()

    async def test_pull_request_event_without_pull_request(
        self, triggers: SyncTriggers, on_demand: MagicMock
    ) -> None:
        result = await triggers.handle_webhook(
            "pull_request_review", gh.webhook_payload(), "delivery-5"
        )

        assert result is None
        dead = await triggers.list_dead_letters()
        assert dead[0].reason == "pull_request_review delivery without pull_request"

    async def test_unrouted_event_is_ignored(
        self, triggers: SyncTriggers, on_demand: MagicMock
    ) -> None:
        assert await triggers.handle_webhook("star", gh.webhook_payload(), "delivery-6") is None
        assert await triggers.list_dead_letters() == []
        on_demand.sync_issue.assert_not_awaited()


class TestWebhookEventWrites:
    """Test push, ref and check run deliveries written from the payload."""

    async def test_push_moves_branch_and_adds_commits(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        refresher: RecordingRefresher,
        on_demand: MagicMock,
    ) -> None:
        """
        Why: Branch heads and new commits would otherwise only change at the
             next bootstrap
        What: The branch head moves, unseen commits are inserted, the pusher
              is stored and projections are rebuilt; GitHub is not called
        How: Seeds main at the old head and delivers a push with one new
             commit and one already mirrored
        """
        await insert_repository(connection_manager)
        async with connection_manager.get_session() as session:
            await BranchRepository(session).upsert_many(
                [{"repository_id": gh.REPO_ID, "name": "main", "head_sha": gh.HEAD_SHA, "protected": True}]
            )
            await CommitRepository(session).upsert_many(
                [
                    commit_record(
                        gh.REPO_ID, Commit.model_validate(gh.commit("e" * 40)), UserCollector()
                    )
                ]
            )
        payload = gh.push_payload(
            commits=[gh.push_commit("d" * 40), gh.push_commit("e" * 40, "Rewritten")]
        )

        result = await triggers.handle_webhook("push", payload, "delivery-push")

        assert isinstance(result, WebhookWriteResult)
        assert (result.event, result.repository_id, result.written) == ("push", gh.REPO_ID, 2)
        async with connection_manager.get_session() as session:
            branch = await BranchRepository(session).get_by_name(gh.REPO_ID, "main")
            new_commit = await CommitRepository(session).get_one_by(sha="d" * 40)
            old_commit = await CommitRepository(session).get_one_by(sha="e" * 40)
            pusher = await GitHubUserRepository(session).get_one_by(github_user_id=3)

        assert branch is not None
        assert branch.head_sha == "d" * 40
        assert branch.protected is True
        assert new_commit is not None
        assert new_commit.message_headline == "Tighten the widget"
        assert new_commit.author_user_id is None
        assert old_commit is not None
        assert old_commit.message_headline == "Fix the widget"
        assert old_commit.author_user_id == 1
        assert pusher is not None and pusher.login == "pusher"
        assert refresher.repositories == [gh.REPO_ID]
        on_demand.sync_pull_request.assert_not_awaited()

    async def test_push_of_deleted_branch_removes_it(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)
        async with connection_manager.get_session() as session:
            await BranchRepository(session).upsert_many(
                [{"repository_id": gh.REPO_ID, "name": "feature", "head_sha": gh.HEAD_SHA, "protected": False}]
            )

        result = await triggers.handle_webhook(
            "push",
            gh.push_payload(ref="refs/heads/feature", after="0" * 40, commits=[], deleted=True),
            "delivery-push-delete",
        )

        assert result is not None and result.written == 1
        async with connection_manager.get_session() as session:
            assert await BranchRepository(session).get_by_name(gh.REPO_ID, "feature") is None

    async def test_tag_push_is_ignored(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)

        result = await triggers.handle_webhook(
            "push", gh.push_payload(ref="refs/tags/v1.0"), "delivery-tag"
        )

        assert result is not None and result.written == 0
        async with connection_manager.get_session() as session:
            assert await BranchRepository(session).count_all() == 0
            assert await CommitRepository(session).count_all() == 0

    async def test_malformed_push_commit_is_dead_lettered(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)
        payload = gh.push_payload(commits=[{"message": "no id"}, gh.push_commit("d" * 40)])

        await triggers.handle_webhook("push", payload, "delivery-7")

        dead = await triggers.list_dead_letters(source="webhook")
        assert [d.delivery_id for d in dead] == ["delivery-7:commits:idx0"]
        async with connection_manager.get_session() as session:
            assert await CommitRepository(session).count_all() == 1

    async def test_check_run_is_upserted(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)
        async with connection_manager.get_session() as session:
            await CheckRunRepository(session).upsert_many(
                [check_run_record(gh.REPO_ID, CheckRun.model_validate(gh.check_run(1, conclusion=None)))]
            )

        result = await triggers.handle_webhook(
            "check_run", gh.check_run_payload(gh.check_run(1)), "delivery-check"
        )

        assert result is not None and result.written == 1
        async with connection_manager.get_session() as session:
            runs = await CheckRunRepository(session).list_for_head_sha(gh.REPO_ID, gh.HEAD_SHA)

        assert [(run.status, run.conclusion) for run in runs] == [("completed", "success")]

    async def test_malformed_check_run_is_dead_lettered(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)

        result = await triggers.handle_webhook(
            "check_run", gh.check_run_payload({"id": 1}), "delivery-check-bad"
        )

        assert result is not None and result.written == 0
        dead = await triggers.list_dead_letters(source="webhook")
        assert [d.delivery_id for d in dead] == ["delivery-check-bad:check_run:idx0"]

    async def test_create_branch_keeps_existing_head(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        """
        Why: A create delivery carries no commit, so it must not blank a
             head a push already recorded
        What: New branches get an empty head; known branches are untouched;
              tags are ignored
        How: Delivers create for a new branch, a known branch and a tag
        """
        await insert_repository(connection_manager)
        async with connection_manager.get_session() as session:
            await BranchRepository(session).upsert_many(
                [{"repository_id": gh.REPO_ID, "name": "known", "head_sha": gh.HEAD_SHA, "protected": False}]
            )

        created = await triggers.handle_webhook("create", gh.ref_payload("fresh"), "d-1")
        known = await triggers.handle_webhook("create", gh.ref_payload("known"), "d-2")
        tag = await triggers.handle_webhook("create", gh.ref_payload("v1", "tag"), "d-3")

        assert [r.written if r else None for r in (created, known, tag)] == [1, 0, 0]
        async with connection_manager.get_session() as session:
            branches = BranchRepository(session)
            fresh = await branches.get_by_name(gh.REPO_ID, "fresh")
            existing = await branches.get_by_name(gh.REPO_ID, "known")
            assert await branches.count_all() == 2

        assert fresh is not None and fresh.head_sha == ""
        assert existing is not None and existing.head_sha == gh.HEAD_SHA

    async def test_delete_branch(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)
        async with connection_manager.get_session() as session:
            await BranchRepository(session).upsert_many(
                [{"repository_id": gh.REPO_ID, "name": "old", "head_sha": gh.HEAD_SHA, "protected": False}]
            )

        deleted = await triggers.handle_webhook("delete", gh.ref_payload("old"), "d-4")
        again = await triggers.handle_webhook("delete", gh.ref_payload("old"), "d-5")

        assert deleted is not None and deleted.written == 1
        assert again is not None and again.written == 0

    async def test_unmirrored_repository_is_skipped(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        refresher: RecordingRefresher,
    ) -> None:
        result = await triggers.handle_webhook("push", gh.push_payload(), "delivery-8")

        assert result is None
        assert refresher.repositories == []
        async with connection_manager.get_session() as session:
            assert await BranchRepository(session).count_all() == 0


class TestRequestEntityView:
    """Test view-before-bootstrap requests and their access check."""

    async def test_present_entity(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        on_demand: MagicMock,
    ) -> None:
        await insert_repository(connection_manager)
        on_demand.find_context.return_value = RepoContext(gh.REPO_ID, gh.OWNER, gh.REPO)
        on_demand.is_present.return_value = True

        assert await triggers.request_entity_view(gh.OWNER, gh.REPO, "issue", 3) is True

    async def test_missing_entity_schedules_sync(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        on_demand: MagicMock,
        scheduler: RecordingScheduler,
    ) -> None:
        await insert_repository(connection_manager)

        present = await triggers.request_entity_view(gh.OWNER, gh.REPO, "pull_request", 7)

        assert present is False
        assert scheduler.names == ["on-demand:octo/widgets:pull_request:7"]
        await scheduler.run_all()
        on_demand.sync_pull_request.assert_awaited_once_with(gh.OWNER, gh.REPO, 7)

    async def test_anonymous_caller_denied_on_private_repo(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        on_demand: MagicMock,
        scheduler: RecordingScheduler,
    ) -> None:
        """
        Why: A page view must not leak or fetch entities of a private
             repository for someone who cannot read it
        What: The request is denied before the mirror or GitHub is touched
        How: Asks for a pull request of a private repository with no user
        """
        await insert_repository(connection_manager, private=True)

        with pytest.raises(NotAuthenticatedError):
            await triggers.request_entity_view(gh.OWNER, gh.REPO, "pull_request", 1)

        assert scheduler.scheduled == []
        on_demand.find_context.assert_not_awaited()
        on_demand.sync_pull_request.assert_not_awaited()

    async def test_user_without_permission_denied_on_private_repo(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
    ) -> None:
        await insert_repository(connection_manager, private=True)

        with pytest.raises(InsufficientPermissionError):
            await triggers.request_entity_view(
                gh.OWNER, gh.REPO, "issue", 3, user_id="stranger"
            )

        assert scheduler.scheduled == []

    async def test_reader_allowed_on_private_repo(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
    ) -> None:
        await insert_repository(connection_manager, private=True)
        await grant_permission(connection_manager, "reader")

        present = await triggers.request_entity_view(
            gh.OWNER, gh.REPO, "issue", 3, user_id="reader"
        )

        assert present is False
        assert scheduler.names == ["on-demand:octo/widgets:issue:3"]

    async def test_unmirrored_repository(
        self, triggers: SyncTriggers, scheduler: RecordingScheduler
    ) -> None:
        with pytest.raises(RepoNotFoundError):
            await triggers.request_entity_view("someone", "unknown", "issue", 1, user_id="u")

        assert scheduler.scheduled == []


class TestAdminOperations:
    """Test resync, connected-user patching and listings."""

    async def test_resync_resets_existing_job(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
    ) -> None:
        await insert_repository(connection_manager)
        await grant_permission(connection_manager, "admin-1", level="admin")
        await insert_job(connection_manager, state=SyncJobState.FAILED, last_error="boom")

        lock_key = await triggers.request_resync(gh.REPO_ID, "admin-1")

        assert lock_key == LOCK_KEY
        job = await load_job(connection_manager, LOCK_KEY)
        assert job.state is SyncJobState.PENDING
        assert job.last_error is None
        assert scheduler.names == [f"bootstrap:{LOCK_KEY}"]

    async def test_resync_creates_missing_job(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager)
        await grant_permission(connection_manager, "admin-1", level="admin")

        await triggers.request_resync(gh.REPO_ID, "admin-1")

        job = await load_job(connection_manager, LOCK_KEY)
        assert job.trigger_reason is SyncTriggerReason.MANUAL

    async def test_resync_unknown_repository(self, triggers: SyncTriggers) -> None:
        with pytest.raises(SyncJobNotFoundError):
            await triggers.request_resync(999, "admin-1")

    @pytest.mark.parametrize(
        ("user_id", "level", "error"),
        [
            (None, None, NotAuthenticatedError),
            ("writer", "push", InsufficientPermissionError),
        ],
    )
    async def test_resync_requires_admin(
        self,
        connection_manager: DatabaseConnectionManager,
        triggers: SyncTriggers,
        scheduler: RecordingScheduler,
        user_id: str | None,
        level: str | None,
        error: type[Exception],
    ) -> None:
        """
        Why: Restarting an import discards progress and spends the
             installation's rate limit
        What: Anonymous callers and non-admins are refused and the ledger
              row keeps its state
        How: Requests a resync of a failed job as each kind of caller
        """
        await insert_repository(connection_manager)
        if user_id is not None and level is not None:
            await grant_permission(connection_manager, user_id, level=level)
        await insert_job(connection_manager, state=SyncJobState.FAILED, last_error="boom")

        with pytest.raises(error):
            await triggers.request_resync(gh.REPO_ID, user_id)

        job = await load_job(connection_manager, LOCK_KEY)
        assert job.state is SyncJobState.FAILED
        assert scheduler.scheduled == []

    async def test_patch_connected_user(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager, connected_by_user_id=None)
        await grant_permission(connection_manager, "admin-1", level="admin")

        assert await triggers.patch_repo_connected_user(gh.REPO_ID, "user-9", "admin-1") is True
        assert await triggers.patch_repo_connected_user(999, "user-9", "admin-1") is False
        async with connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(gh.REPO_ID)
        assert repository is not None
        assert repository.connected_by_user_id == "user-9"

    async def test_patch_connected_user_requires_admin(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_repository(connection_manager, connected_by_user_id=None, private=True)
        await grant_permission(connection_manager, "reader")

        with pytest.raises(InsufficientPermissionError):
            await triggers.patch_repo_connected_user(gh.REPO_ID, "reader", "reader")

        async with connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(gh.REPO_ID)
        assert repository is not None
        assert repository.connected_by_user_id is None

    async def test_list_stuck_jobs(
        self, connection_manager: DatabaseConnectionManager, triggers: SyncTriggers
    ) -> None:
        await insert_job(
            connection_manager,
            state=SyncJobState.RUNNING,
            updated_at=utcnow() - timedelta(hours=1),
        )

        stuck = await triggers.list_stuck_jobs()

        assert [job.lock_key for job in stuck] == [LOCK_KEY]
