"""Individual steps of a repository bootstrap.

Each step fetches from GitHub, then writes through ``MirrorWriter`` and
returns a small summary (counts and cursors, never records) that the
orchestrator keeps in the job journal. Pull requests and issues are
streamed page by page: every page is written before the next is fetched.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from src.github import GitHubClient, decode_lenient
from src.github.schemas import (
    Branch,
    CheckRun,
    Commit,
    Issue,
    PullRequestSimple,
    WorkflowJob,
    WorkflowRun,
)
from src.repositories import (
    BranchRepository,
    CheckRunRepository,
    CommitRepository,
    IssueRepository,
    PullRequestRepository,
    WorkflowJobRepository,
    WorkflowRunRepository,
)

from .interfaces import RepoContext
from .transforms import (
    UserCollector,
    branch_record,
    check_run_record,
    commit_record,
    issue_record,
    pull_request_record,
    workflow_job_record,
    workflow_run_record,
)
from .writer import MirrorWriter

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
PAGES_PER_CHUNK = 10
CHECK_RUN_SHA_CHUNK = 100
MAX_RUNS_WITH_JOBS = 20
DEAD_LETTER_SOURCE = "bootstrap"

ProgressCallback = Callable[[str], Awaitable[None]]


@dataclass
class ChunkResult:
    """Outcome of one chunk of a paged step.

    ``next_cursor`` is the page to resume from, or None once the collection
    is exhausted.
    """

    count: int
    next_cursor: int | None


@dataclass
class WorkflowSummary:
    runs: int
    jobs: int


async def sync_branches(client: GitHubClient, writer: MirrorWriter, ctx: RepoContext) -> int:
    """First page of branches."""
    response = await client.fetch_page(f"{ctx.api_path}/branches", page=1, per_page=PAGE_SIZE)
    decoded = decode_lenient(Branch, response.items)
    await writer.dead_letter(
        decoded.skipped, f"bootstrap-branch:{ctx.repository_id}:page1", DEAD_LETTER_SOURCE
    )
    records = [branch_record(ctx.repository_id, branch) for branch in decoded.items]
    await writer.upsert(BranchRepository, records)
    return len(records)


async def sync_pull_request_chunk(
    client: GitHubClient,
    writer: MirrorWriter,
    ctx: RepoContext,
    start_page: int,
) -> ChunkResult:
    """Fetch and write up to PAGES_PER_CHUNK pages of pull requests."""
    users = UserCollector()
    count = 0
    next_cursor: int | None = None

    for page in range(start_page, start_page + PAGES_PER_CHUNK):
        response = await client.fetch_page(
            f"{ctx.api_path}/pulls", page=page, per_page=PAGE_SIZE, params={"state": "all"}
        )
        decoded = decode_lenient(PullRequestSimple, response.items)
        await writer.dead_letter(
            decoded.skipped,
            f"bootstrap-pr:{ctx.repository_id}:page{page}",
            DEAD_LETTER_SOURCE,
        )
        records = [pull_request_record(ctx.repository_id, pr, users) for pr in decoded.items]
        await writer.upsert(PullRequestRepository, records)
        count += len(records)

        if decoded.total != PAGE_SIZE:
            next_cursor = None
            break
        next_cursor = page + 1

    await writer.write_users(users)
    return ChunkResult(count=count, next_cursor=next_cursor)


async def sync_issue_chunk(
    client: GitHubClient,
    writer: MirrorWriter,
    ctx: RepoContext,
    start_page: int,
) -> ChunkResult:
    """Fetch and write up to PAGES_PER_CHUNK pages of issues.

    The issues endpoint also lists pull requests; those are dropped here
    because the pull request step already wrote them.
    """
    users = UserCollector()
    count = 0
    next_cursor: int | None = None

    for page in range(start_page, start_page + PAGES_PER_CHUNK):
        response = await client.fetch_page(
            f"{ctx.api_path}/issues", page=page, per_page=PAGE_SIZE, params={"state": "all"}
        )
        decoded = decode_lenient(Issue, response.items)
        await writer.dead_letter(
            decoded.skipped,
            f"bootstrap-issue:{ctx.repository_id}:page{page}",
            DEAD_LETTER_SOURCE,
        )
        records = [
            issue_record(ctx.repository_id, issue, users)
            for issue in decoded.items
            if issue.pull_request is None
        ]
        await writer.upsert(IssueRepository, records)
        count += len(records)

        if decoded.total != PAGE_SIZE:
            next_cursor = None
            break
        next_cursor = page + 1

    await writer.write_users(users)
    return ChunkResult(count=count, next_cursor=next_cursor)


async def sync_commits(client: GitHubClient, writer: MirrorWriter, ctx: RepoContext) -> int:
    """First page of commits; an empty repository (409) has none."""
    result = await client.fetch_json(
        f"{ctx.api_path}/commits",
        params={"per_page": PAGE_SIZE},
        allowed_statuses=(404, 409),
    )
    if not result.found:
        logger.info(f"No commits for {ctx.full_name} (HTTP {result.status})")
        return 0

    decoded = decode_lenient(Commit, result.data)
    await writer.dead_letter(
        decoded.skipped, f"bootstrap-commit:{ctx.repository_id}:page1", DEAD_LETTER_SOURCE
    )
    users = UserCollector()
    records = [commit_record(ctx.repository_id, commit, users) for commit in decoded.items]
    await writer.upsert(CommitRepository, records)
    await writer.write_users(users)
    return len(records)


async def sync_check_runs(
    client: GitHubClient,
    writer: MirrorWriter,
    ctx: RepoContext,
    targets: list[tuple[int, str]],
    on_progress: ProgressCallback | None = None,
) -> int:
    """Check runs for the head commits of the given open pull requests."""
    head_shas = list(dict.fromkeys(sha for _, sha in targets if sha))
    total = 0
    chunk_index = 0

    for start in range(0, len(head_shas), CHECK_RUN_SHA_CHUNK):
        for sha in head_shas[start : start + CHECK_RUN_SHA_CHUNK]:
            result = await client.fetch_json(
                f"{ctx.api_path}/commits/{sha}/check-runs",
                params={"per_page": PAGE_SIZE},
            )
            if not result.found:
                continue
            raw = (result.data or {}).get("check_runs", [])
            decoded = decode_lenient(CheckRun, raw)
            await writer.dead_letter(
                decoded.skipped,
                f"bootstrap-check-run:{ctx.repository_id}:{sha}",
                DEAD_LETTER_SOURCE,
            )
            records = [check_run_record(ctx.repository_id, run) for run in decoded.items]
            await writer.upsert(CheckRunRepository, records)
            total += len(records)

        chunk_index += 1
        done = min(start + CHECK_RUN_SHA_CHUNK, len(head_shas))
        if on_progress is not None and chunk_index % 5 == 0:
            await on_progress(
                f"Analyzing check runs ({total} found, {done}/{len(head_shas)} PRs)"
            )

    return total


async def sync_workflow_runs(
    client: GitHubClient, writer: MirrorWriter, ctx: RepoContext
) -> WorkflowSummary:
    """Latest workflow runs, plus jobs for the most recent active or finished ones."""
    result = await client.fetch_json(
        f"{ctx.api_path}/actions/runs", params={"per_page": PAGE_SIZE}
    )
    if not result.found:
        return WorkflowSummary(runs=0, jobs=0)

    raw_runs = (result.data or {}).get("workflow_runs", [])
    decoded = decode_lenient(WorkflowRun, raw_runs)
    await writer.dead_letter(
        decoded.skipped, f"bootstrap-workflow-run:{ctx.repository_id}", DEAD_LETTER_SOURCE
    )
    users = UserCollector()
    run_records = [workflow_run_record(ctx.repository_id, run, users) for run in decoded.items]
    await writer.upsert(WorkflowRunRepository, run_records)
    await writer.write_users(users)

    job_candidates = [
        run
        for run in decoded.items
        if run.status in ("in_progress", "queued") or run.conclusion is not None
    ][:MAX_RUNS_WITH_JOBS]

    jobs = 0
    for run in job_candidates:
        jobs_result = await client.fetch_json(
            f"{ctx.api_path}/actions/runs/{run.id}/jobs", params={"per_page": PAGE_SIZE}
        )
        if not jobs_result.found:
            continue
        decoded_jobs = decode_lenient(WorkflowJob, (jobs_result.data or {}).get("jobs", []))
        await writer.dead_letter(
            decoded_jobs.skipped,
            f"bootstrap-workflow-job:{ctx.repository_id}:run{run.id}",
            DEAD_LETTER_SOURCE,
        )
        records = [workflow_job_record(ctx.repository_id, job) for job in decoded_jobs.items]
        await writer.upsert(WorkflowJobRepository, records)
        jobs += len(records)

    return WorkflowSummary(runs=len(run_records), jobs=jobs)
