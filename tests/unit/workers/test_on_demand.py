"""
Unit tests for on-demand entity sync.

Why: Webhooks and page views pull single entities ahead of (or after) the
     bootstrap; they must store them exactly as the bootstrap would and must
     not call GitHub for entities already mirrored
What: Tests the presence short-circuit, forced pull request and issue syncs,
      repository registration, missing entities and malformed payloads
How: Mocks GitHub with aioresponses, records refreshes and scheduled work,
     and writes to in-memory SQLite
"""

from typing import Any

import pytest
from aioresponses import aioresponses
from sqlalchemy import inspect

from src.database.connection import DatabaseConnectionManager
from src.github.schemas import PullRequestSimple
from src.models import PullRequest
from src.repositories import (
    CheckRunRepository,
    DeadLetterRepository,
    InstallationRepository,
    IssueCommentRepository,
    IssueRepository,
    PullRequestRepository,
    PullRequestReviewCommentRepository,
    PullRequestReviewRepository,
    RepositoryRepository,
)
from src.workers.sync import (
    EntityNotFoundError,
    GitHubClientProvider,
    MirrorWriter,
    OnDemandSync,
    RepoContext,
    SyncError,
)
from src.workers.sync.bootstrap_steps import sync_pull_request_chunk
from src.workers.sync.transforms import UserCollector, pull_request_record
from tests.fixtures import github_payloads as gh
from tests.fixtures.mirror import (
    RecordingRefresher,
    RecordingScheduler,
    insert_repository,
    page_url,
    repo_url,
    static_client_provider,
)


@pytest.fixture
def on_demand(
    connection_manager: DatabaseConnectionManager,
    scheduler: RecordingScheduler,
    refresher: RecordingRefresher,
) -> OnDemandSync:
    return OnDemandSync(connection_manager, static_client_provider(), scheduler, refresher)


def mock_pull_request_7(mocked: aioresponses, pr: dict | None = None) -> None:
    mocked.get(repo_url("/pulls/7"), payload=pr or gh.pull_request(7, mergeable_state="clean"))
    mocked.get(repo_url("/issues/7/comments"), payload=[gh.issue_comment(1)])
    mocked.get(repo_url("/pulls/7/reviews"), payload=[gh.review(1)])
    mocked.get(repo_url("/pulls/7/comments"), payload=[gh.review_comment(1)])
    mocked.get(
        repo_url(f"/commits/{gh.HEAD_SHA}/check-runs"),
        payload={"check_runs": [gh.check_run(1)]},
    )


class TestSyncPullRequest:
    """Test single pull request syncs."""

    async def test_present_entity_short_circuits(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
        refresher: RecordingRefresher,
    ) -> None:
        """
        Why: Page views would otherwise hit GitHub on every request
        What: A mirrored pull request is reported without any API call
        How: Seeds the row, syncs without force under an empty aioresponses
        """
        await insert_repository(connection_manager)
        pr = PullRequestSimple.model_validate(gh.pull_request(7))
        async with connection_manager.get_session() as session:
            await PullRequestRepository(session).upsert_many(
                [pull_request_record(gh.REPO_ID, pr, UserCollector())]
            )

        with aioresponses() as mocked:
            result = await on_demand.sync_pull_request(gh.OWNER, gh.REPO, 7)

        assert result.synced is False
        assert mocked.requests == {}
        assert refresher.entities == []

    async def test_forced_sync_writes_pull_request_and_discussion(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
        scheduler: RecordingScheduler,
        refresher: RecordingRefresher,
    ) -> None:
        await insert_repository(connection_manager)

        with aioresponses() as mocked:
            mock_pull_request_7(mocked)
            result = await on_demand.sync_pull_request(gh.OWNER, gh.REPO, 7, force=True)

        assert result.synced is True
        assert (result.repository_id, result.entity_type, result.number) == (
            gh.REPO_ID,
            "pull_request",
            7,
        )
        async with connection_manager.get_session() as session:
            stored = await PullRequestRepository(session).get_by_number(gh.REPO_ID, 7)
            assert await IssueCommentRepository(session).count_all() == 1
            assert await PullRequestReviewRepository(session).count_all() == 1
            assert await PullRequestReviewCommentRepository(session).count_all() == 1
            assert await CheckRunRepository(session).count_all() == 1

        assert stored is not None
        assert stored.mergeable_state == "clean"
        assert stored.label_names == ["bug"]
        assert refresher.entities == [(gh.REPO_ID, "pull_request", 7)]
        assert scheduler.names == [f"pr-files:{gh.REPO_ID}:7"]

    async def test_malformed_list_items_are_dead_lettered(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
    ) -> None:
        await insert_repository(connection_manager)

        with aioresponses() as mocked:
            mocked.get(repo_url("/pulls/7"), payload=gh.pull_request(7))
            mocked.get(
                repo_url("/issues/7/comments"),
                payload=[gh.issue_comment(1), {"id": "not-a-number"}],
            )
            mocked.get(repo_url("/pulls/7/reviews"), payload=[])
            mocked.get(repo_url("/pulls/7/comments"), status=404, payload={"message": "Not Found"})
            mocked.get(repo_url(f"/commits/{gh.HEAD_SHA}/check-runs"), status=404, payload={})
            result = await on_demand.sync_pull_request(gh.OWNER, gh.REPO, 7, force=True)

        assert result.synced is True
        async with connection_manager.get_session() as session:
            assert await IssueCommentRepository(session).count_all() == 1
            dead = await DeadLetterRepository(session).list_recent(source="on_demand")

        assert [d.delivery_id for d in dead] == [f"on-demand-pr:{gh.REPO_ID}:7:comments:idx1"]

    async def test_malformed_pull_request_raises(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
    ) -> None:
        await insert_repository(connection_manager)

        with aioresponses() as mocked:
            mocked.get(repo_url("/pulls/7"), payload={"id": 1, "number": 7})
            with pytest.raises(SyncError, match="Malformed PullRequestDetail"):
                await on_demand.sync_pull_request(gh.OWNER, gh.REPO, 7, force=True)

        async with connection_manager.get_session() as session:
            dead = await DeadLetterRepository(session).list_recent(source="on_demand")
            assert await PullRequestRepository(session).count_all() == 0

        assert len(dead) == 1
        assert dead[0].reason.startswith("Schema parse error at index 0")

    async def test_missing_pull_request_raises(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
    ) -> None:
        await insert_repository(connection_manager)

        with aioresponses() as mocked:
            mocked.get(repo_url("/pulls/404"), status=404, payload={"message": "Not Found"})
            with pytest.raises(EntityNotFoundError) as exc_info:
                await on_demand.sync_pull_request(gh.OWNER, gh.REPO, 404)

        assert exc_info.value.number == 404
        assert exc_info.value.entity_type == "pull_request"

    async def test_unknown_repository_without_installation(
        self, on_demand: OnDemandSync
    ) -> None:
        with aioresponses() as mocked:
            with pytest.raises(EntityNotFoundError):
                await on_demand.sync_pull_request("someone", "unknown", 1)

        assert mocked.requests == {}


class TestSyncIssue:
    """Test single issue syncs and repository registration."""

    async def test_registers_repository_from_installation(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
        refresher: RecordingRefresher,
    ) -> None:
        """
        Why: Webhooks can arrive for repositories nobody connected yet
        What: The repository row and its installation are created from GitHub
              before the issue is written
        How: Syncs an issue with an installation id and no repository row
        """
        with aioresponses() as mocked:
            mocked.get(repo_url(), payload=gh.repository_info())
            mocked.get(repo_url("/issues/3"), payload=gh.issue(3))
            mocked.get(repo_url("/issues/3/comments"), payload=[])
            result = await on_demand.sync_issue(gh.OWNER, gh.REPO, 3, installation_id=555)

        assert result.synced is True
        async with connection_manager.get_session() as session:
            repository = await RepositoryRepository(session).get_by_github_id(gh.REPO_ID)
            installation = await InstallationRepository(session).get_by_account_login(gh.OWNER)
            issue = await IssueRepository(session).get_by_number(gh.REPO_ID, 3)

        assert repository is not None
        assert repository.installation_id == 555
        assert repository.connected_by_user_id is None
        assert installation is not None and installation.installation_id == 555
        assert issue is not None
        assert issue.label_names == ["question", "help wanted"]
        assert refresher.entities == [(gh.REPO_ID, "issue", 3)]

    async def test_unknown_repository_on_github(self, on_demand: OnDemandSync) -> None:
        with aioresponses() as mocked:
            mocked.get(repo_url(), status=404, payload={"message": "Not Found"})
            with pytest.raises(EntityNotFoundError, match="repository"):
                await on_demand.sync_issue(gh.OWNER, gh.REPO, 3, installation_id=555)


class TestTokenSelection:
    """Test which token an on-demand sync reads with."""

    @pytest.fixture
    def provider(self) -> GitHubClientProvider:
        return static_client_provider()

    @pytest.fixture
    def token_on_demand(
        self,
        connection_manager: DatabaseConnectionManager,
        scheduler: RecordingScheduler,
        refresher: RecordingRefresher,
        provider: GitHubClientProvider,
    ) -> OnDemandSync:
        return OnDemandSync(connection_manager, provider, scheduler, refresher)

    async def test_system_sync_uses_installation_token(
        self,
        connection_manager: DatabaseConnectionManager,
        token_on_demand: OnDemandSync,
        provider: GitHubClientProvider,
    ) -> None:
        """
        Why: Webhook work must not spend or depend on the connecting user's
             OAuth token when the App is installed
        What: A system sync of a mirrored repository resolves the
              installation token, never the user's
        How: Seeds a repository with both token sources and syncs an issue
             with system=True
        """
        await insert_repository(connection_manager, installation_id=42)

        with aioresponses() as mocked:
            mocked.get(repo_url("/issues/3"), payload=gh.issue(3))
            mocked.get(repo_url("/issues/3/comments"), payload=[])
            await token_on_demand.sync_issue(gh.OWNER, gh.REPO, 3, force=True, system=True)

        provider.resolver.resolve_system_token.assert_awaited_once_with(42)
        provider.resolver.resolve_repo_token.assert_not_awaited()

    async def test_user_sync_uses_repository_token(
        self,
        connection_manager: DatabaseConnectionManager,
        token_on_demand: OnDemandSync,
        provider: GitHubClientProvider,
    ) -> None:
        await insert_repository(connection_manager, installation_id=42)

        with aioresponses() as mocked:
            mocked.get(repo_url("/issues/3"), payload=gh.issue(3))
            mocked.get(repo_url("/issues/3/comments"), payload=[])
            await token_on_demand.sync_issue(gh.OWNER, gh.REPO, 3, force=True)

        provider.resolver.resolve_repo_token.assert_awaited_once_with("user-1", 42)
        provider.resolver.resolve_system_token.assert_not_awaited()

    async def test_system_sync_without_installation_falls_back(
        self,
        connection_manager: DatabaseConnectionManager,
        token_on_demand: OnDemandSync,
        provider: GitHubClientProvider,
    ) -> None:
        await insert_repository(connection_manager, installation_id=0)

        with aioresponses() as mocked:
            mocked.get(repo_url("/issues/3"), payload=gh.issue(3))
            mocked.get(repo_url("/issues/3/comments"), payload=[])
            await token_on_demand.sync_issue(gh.OWNER, gh.REPO, 3, force=True, system=True)

        provider.resolver.resolve_repo_token.assert_awaited_once_with("user-1", 0)
        provider.resolver.resolve_system_token.assert_not_awaited()


class TestBootstrapParity:
    """Test that on-demand and bootstrap writes agree."""

    async def test_pull_request_row_matches_bootstrap(
        self,
        connection_manager: DatabaseConnectionManager,
        on_demand: OnDemandSync,
    ) -> None:
        """
        Why: Readers cannot tell how a row got into the mirror, so both
             paths must store the same values
        What: Re-syncing a bootstrapped pull request on demand changes no
              column except the detail-only mergeable_state
        How: Bootstraps PR #1 from the list endpoint, snapshots the row,
             forces an on-demand sync of the same payload and compares
        """
        await insert_repository(connection_manager)
        ctx = RepoContext(gh.REPO_ID, gh.OWNER, gh.REPO, connected_by_user_id="user-1")
        client = await static_client_provider().for_repository(ctx)
        ignored = {"id", "created_at", "updated_at", "mergeable_state"}

        def snapshot(row: PullRequest | None) -> dict[str, Any]:
            assert row is not None
            return {
                attr.key: getattr(row, attr.key)
                for attr in inspect(row).mapper.column_attrs
                if attr.key not in ignored
            }

        with aioresponses() as mocked:
            mocked.get(page_url("/pulls"), payload=[gh.pull_request(1)])
            async with client:
                await sync_pull_request_chunk(
                    client, MirrorWriter(connection_manager), ctx, 1
                )
        async with connection_manager.get_session() as session:
            bootstrapped = snapshot(
                await PullRequestRepository(session).get_by_number(gh.REPO_ID, 1)
            )

        with aioresponses() as mocked:
            mocked.get(repo_url("/pulls/1"), payload=gh.pull_request(1, mergeable_state="clean"))
            mocked.get(repo_url("/issues/1/comments"), payload=[])
            mocked.get(repo_url("/pulls/1/reviews"), payload=[])
            mocked.get(repo_url("/pulls/1/comments"), payload=[])
            mocked.get(
                repo_url(f"/commits/{gh.HEAD_SHA}/check-runs"), payload={"check_runs": []}
            )
            await on_demand.sync_pull_request(gh.OWNER, gh.REPO, 1, force=True)

        async with connection_manager.get_session() as session:
            synced = await PullRequestRepository(session).get_by_number(gh.REPO_ID, 1)
            assert await PullRequestRepository(session).count_all() == 1

        assert synced is not None
        assert synced.mergeable_state == "clean"
        assert snapshot(synced) == bootstrapped
