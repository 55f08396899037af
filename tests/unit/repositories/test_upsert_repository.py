"""
Unit tests for keyed upserts.

Why: Bootstrap, webhooks and on-demand syncs write the same rows in any
     order; idempotence and the out-of-order guard keep the mirror correct
What: Tests inserts, patches, guard skips, ties, preserve-on-null columns
      and the counters maintained alongside entity writes
How: Runs PullRequestRepository and IssueRepository against in-memory SQLite
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.connection import DatabaseConnectionManager
from src.repositories import (
    IssueRepository,
    PullRequestRepository,
    RepositoryCounterRepository,
    UpsertResult,
    chunked,
)

REPO_ID = 101
T0 = datetime(2026, 10, 1, 10, 0, tzinfo=UTC)


def pr_record(
    number: int,
    updated_at: datetime = T0,
    state: str = "open",
    title: str | None = None,
    mergeable_state: str | None = None,
) -> dict[str, Any]:
    return {
        "repository_id": REPO_ID,
        "github_pr_id": 5000 + number,
        "number": number,
        "state": state,
        "draft": False,
        "title": title or f"Change #{number}",
        "body": None,
        "author_user_id": 1,
        "assignee_user_ids": [],
        "requested_reviewer_user_ids": [],
        "label_names": [],
        "base_ref_name": "main",
        "head_ref_name": f"feature-{number}",
        "head_sha": "a" * 40,
        "mergeable_state": mergeable_state,
        "merged_at": None,
        "closed_at": None,
        "github_updated_at": updated_at,
    }


def issue_record(number: int, state: str = "open", is_pull_request: bool = False) -> dict[str, Any]:
    return {
        "repository_id": REPO_ID,
        "github_issue_id": 7000 + number,
        "number": number,
        "state": state,
        "title": f"Issue #{number}",
        "body": None,
        "author_user_id": None,
        "assignee_user_ids": [],
        "label_names": [],
        "comment_count": 0,
        "is_pull_request": is_pull_request,
        "closed_at": None,
        "github_updated_at": T0,
    }


async def upsert_prs(
    connection_manager: DatabaseConnectionManager, *records: dict[str, Any]
) -> UpsertResult:
    async with connection_manager.get_session() as session:
        return await PullRequestRepository(session).upsert_many(list(records))


async def load_pr(connection_manager: DatabaseConnectionManager, number: int) -> Any:
    async with connection_manager.get_session() as session:
        return await PullRequestRepository(session).get_by_number(REPO_ID, number)


async def open_pr_count(connection_manager: DatabaseConnectionManager) -> int:
    async with connection_manager.get_session() as session:
        counts = await RepositoryCounterRepository(session).get_counts(REPO_ID)
        return counts["open_pull_requests"]


class TestChunked:
    def test_splits_into_batches_of_fifty(self) -> None:
        sizes = [len(chunk) for chunk in chunked(list(range(120)))]

        assert sizes == [50, 50, 20]

    def test_empty_input(self) -> None:
        assert list(chunked([])) == []


class TestUpsertMany:
    """Test the insert/patch/skip protocol."""

    async def test_empty_batch_is_a_no_op(self, session: AsyncSession) -> None:
        result = await PullRequestRepository(session).upsert_many([])

        assert result == UpsertResult()

    async def test_insert_then_identical_upsert_is_idempotent(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        """
        Why: A re-dispatched job replays pages it already wrote
        What: The second identical batch patches instead of duplicating
        How: Upserts the same records twice and counts rows
        """
        first = await upsert_prs(connection_manager, pr_record(1), pr_record(2))
        second = await upsert_prs(connection_manager, pr_record(1), pr_record(2))

        assert (first.inserted, first.updated) == (2, 0)
        assert (second.inserted, second.updated, second.skipped) == (0, 2, 0)
        async with connection_manager.get_session() as session:
            assert await PullRequestRepository(session).count_all() == 2

    async def test_older_snapshot_is_skipped(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        """
        Why: A slow bootstrap page must not overwrite a newer webhook write
        What: An incoming record older than the stored one is not applied
        How: Writes a newer title first, then an older snapshot
        """
        await upsert_prs(
            connection_manager, pr_record(1, T0 + timedelta(minutes=5), title="Newer")
        )

        result = await upsert_prs(connection_manager, pr_record(1, T0, title="Older"))

        assert result.skipped == 1
        assert result.upserted == 0
        stored = await load_pr(connection_manager, 1)
        assert stored.title == "Newer"

    async def test_equal_timestamp_goes_to_the_later_write(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        await upsert_prs(connection_manager, pr_record(1, T0, title="First"))

        result = await upsert_prs(connection_manager, pr_record(1, T0, title="Second"))

        assert result.updated == 1
        assert (await load_pr(connection_manager, 1)).title == "Second"

    async def test_newer_snapshot_patches(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        await upsert_prs(connection_manager, pr_record(1, T0))

        await upsert_prs(
            connection_manager, pr_record(1, T0 + timedelta(hours=1), state="closed")
        )

        stored = await load_pr(connection_manager, 1)
        assert stored.state == "closed"
        assert stored.github_updated_at == T0 + timedelta(hours=1)

    async def test_mergeable_state_survives_list_payloads(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        """
        Why: Only the single-PR endpoint reports mergeability
        What: A later list-endpoint write (mergeable_state None) keeps the value
        How: Writes a detail record, then a newer record without the field
        """
        await upsert_prs(connection_manager, pr_record(1, T0, mergeable_state="clean"))

        await upsert_prs(connection_manager, pr_record(1, T0 + timedelta(minutes=1)))

        assert (await load_pr(connection_manager, 1)).mergeable_state == "clean"

    async def test_duplicate_keys_in_one_batch(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        result = await upsert_prs(
            connection_manager,
            pr_record(1, T0, title="a"),
            pr_record(1, T0 + timedelta(minutes=1), title="b"),
        )

        assert (result.inserted, result.updated) == (1, 1)
        assert (await load_pr(connection_manager, 1)).title == "b"

    async def test_insert_missing_leaves_stored_rows_alone(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        """
        Why: Partial payloads such as pushed commits must not replace what a
             full listing already stored
        What: Absent keys are inserted and stored keys are counted as skipped
        How: Stores PR #1, then inserts a newer #1 and a new #2
        """
        await upsert_prs(connection_manager, pr_record(1, title="Listed"))

        async with connection_manager.get_session() as session:
            result = await PullRequestRepository(session).insert_missing(
                [pr_record(1, T0 + timedelta(minutes=1), title="Partial"), pr_record(2)]
            )

        assert (result.inserted, result.updated, result.skipped) == (1, 0, 1)
        async with connection_manager.get_session() as session:
            stored = await PullRequestRepository(session).get_by_number(REPO_ID, 1)
            assert await PullRequestRepository(session).count_all() == 2
        assert stored is not None
        assert stored.title == "Listed"
        assert await open_pr_count(connection_manager) == 2


class TestCounterMaintenance:
    """Test counters kept next to entity writes."""

    async def test_first_write_seeds_counter_by_scan(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        await upsert_prs(
            connection_manager, pr_record(1), pr_record(2), pr_record(3, state="closed")
        )

        assert await open_pr_count(connection_manager) == 2

    async def test_state_transitions_adjust_counter(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        """
        Why: Dashboards read counters instead of scanning
        What: Closing one PR and opening another keeps the count exact
        How: Applies successive upserts and reads the counter row
        """
        await upsert_prs(connection_manager, pr_record(1), pr_record(2))

        await upsert_prs(connection_manager, pr_record(1, T0 + timedelta(minutes=1), state="closed"))
        assert await open_pr_count(connection_manager) == 1

        await upsert_prs(connection_manager, pr_record(3))
        assert await open_pr_count(connection_manager) == 2

    async def test_guard_skips_do_not_move_counter(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        await upsert_prs(connection_manager, pr_record(1, T0 + timedelta(minutes=5)))

        await upsert_prs(connection_manager, pr_record(1, T0, state="closed"))

        assert await open_pr_count(connection_manager) == 1

    async def test_pull_request_backed_issues_are_not_counted(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        async with connection_manager.get_session() as session:
            await IssueRepository(session).upsert_many(
                [issue_record(1), issue_record(2, is_pull_request=True), issue_record(3, "closed")]
            )

        async with connection_manager.get_session() as session:
            counts = await RepositoryCounterRepository(session).get_counts(REPO_ID)

        assert counts["open_issues"] == 1

    async def test_reset_rebuilds_from_rows(
        self, connection_manager: DatabaseConnectionManager
    ) -> None:
        await upsert_prs(connection_manager, pr_record(1), pr_record(2))
        async with connection_manager.get_session() as session:
            counters = RepositoryCounterRepository(session)
            row = await counters.get_one_by(repository_id=REPO_ID)
            await counters.update(row, open_pull_requests=40)

        async with connection_manager.get_session() as session:
            counts = await RepositoryCounterRepository(session).reset(REPO_ID)

        assert counts["open_pull_requests"] == 2
