"""Map decoded GitHub payloads to writer records.

Bootstrap and on-demand sync both build their records here, so the same
remote entity is stored in the same shape whichever path wrote it.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from src.github.decoding import DecodeFailure
from src.github.schemas import (
    Branch,
    CheckRun,
    Commit,
    CommitUser,
    Issue,
    IssueComment,
    PullRequestDetail,
    PullRequestFile,
    PullRequestSimple,
    PushCommit,
    RepositoryInfo,
    Review,
    ReviewComment,
    SimpleUser,
    WorkflowJob,
    WorkflowRun,
)
from src.models import PullRequestFileStatus
from src.repositories import DeadLetterEntry

Record = dict[str, Any]


class UserCollector:
    """Deduplicates users referenced by a batch of records.

    Each step invocation owns its collector; ``records()`` yields every
    distinct user once, however many records referenced it.
    """

    def __init__(self) -> None:
        self._users: dict[int, Record] = {}

    def __len__(self) -> int:
        return len(self._users)

    def collect(self, user: SimpleUser | CommitUser | None) -> int | None:
        """Remember ``user`` and return its GitHub id (None if it has none)."""
        if user is None or user.id is None or not user.login:
            return None
        self._users[user.id] = {
            "github_user_id": user.id,
            "login": user.login,
            "avatar_url": user.avatar_url,
            "site_admin": user.site_admin,
            "type": user.type or "User",
        }
        return user.id

    def collect_all(self, users: Iterable[SimpleUser] | None) -> list[int]:
        ids = (self.collect(user) for user in users or ())
        return [user_id for user_id in ids if user_id is not None]

    def records(self) -> list[Record]:
        return list(self._users.values())


def dead_letter_entries(
    failures: Sequence[DecodeFailure], delivery_prefix: str
) -> list[DeadLetterEntry]:
    """One dead letter per failed element, ids suffixed with ``:idx{i}``."""
    return [
        DeadLetterEntry(
            delivery_id=f"{delivery_prefix}:idx{failure.index}",
            reason=failure.error,
            payload_json=failure.raw,
        )
        for failure in failures
    ]


def branch_record(repository_id: int, branch: Branch) -> Record:
    return {
        "repository_id": repository_id,
        "name": branch.name,
        "head_sha": branch.commit.sha,
        "protected": branch.protected,
    }


def pull_request_record(
    repository_id: int,
    pr: PullRequestSimple,
    users: UserCollector,
) -> Record:
    """Writer record for a pull request from either the list or detail endpoint."""
    return {
        "repository_id": repository_id,
        "github_pr_id": pr.id,
        "number": pr.number,
        "state": pr.state,
        "draft": bool(pr.draft),
        "title": pr.title,
        "body": pr.body,
        "author_user_id": users.collect(pr.user),
        "assignee_user_ids": users.collect_all(pr.assignees),
        "requested_reviewer_user_ids": users.collect_all(pr.requested_reviewers),
        "label_names": [label.name for label in pr.labels],
        "base_ref_name": pr.base.ref,
        "head_ref_name": pr.head.ref,
        "head_sha": pr.head.sha,
        "mergeable_state": (
            pr.mergeable_state if isinstance(pr, PullRequestDetail) else None
        ),
        "merged_at": pr.merged_at,
        "closed_at": pr.closed_at,
        "github_updated_at": pr.updated_at,
    }


def issue_record(repository_id: int, issue: Issue, users: UserCollector) -> Record:
    """Writer record for an issue; PR-backed issues are flagged, not dropped."""
    return {
        "repository_id": repository_id,
        "github_issue_id": issue.id,
        "number": issue.number,
        "state": issue.state,
        "title": issue.title,
        "body": issue.body,
        "author_user_id": users.collect(issue.user),
        "assignee_user_ids": users.collect_all(issue.assignees),
        "label_names": [
            label if isinstance(label, str) else label.name for label in issue.labels
        ],
        "comment_count": issue.comments,
        "is_pull_request": issue.pull_request is not None,
        "closed_at": issue.closed_at,
        "github_updated_at": issue.updated_at,
    }


def commit_record(repository_id: int, commit: Commit, users: UserCollector) -> Record:
    """Listing payloads carry no stats, so additions/deletions stay unknown."""
    message = commit.commit.message or ""
    return {
        "repository_id": repository_id,
        "sha": commit.sha,
        "author_user_id": users.collect(commit.author),
        "committer_user_id": users.collect(commit.committer),
        "message_headline": message.split("\n", 1)[0][:1024],
        "authored_at": commit.commit.author.date if commit.commit.author else None,
        "committed_at": commit.commit.committer.date if commit.commit.committer else None,
        "additions": None,
        "deletions": None,
        "changed_files": None,
    }


def push_commit_record(repository_id: int, commit: PushCommit) -> Record:
    """Push deliveries carry no user ids or stats; the push time stands in for both dates."""
    return {
        "repository_id": repository_id,
        "sha": commit.id,
        "author_user_id": None,
        "committer_user_id": None,
        "message_headline": commit.message.split("\n", 1)[0][:1024],
        "authored_at": commit.timestamp,
        "committed_at": commit.timestamp,
        "additions": None,
        "deletions": None,
        "changed_files": None,
    }


def check_run_record(repository_id: int, check_run: CheckRun) -> Record:
    return {
        "repository_id": repository_id,
        "github_check_run_id": check_run.id,
        "name": check_run.name,
        "head_sha": check_run.head_sha,
        "status": check_run.status,
        "conclusion": check_run.conclusion,
        "started_at": check_run.started_at,
        "completed_at": check_run.completed_at,
    }


def workflow_run_record(
    repository_id: int, run: WorkflowRun, users: UserCollector
) -> Record:
    return {
        "repository_id": repository_id,
        "github_run_id": run.id,
        "workflow_id": run.workflow_id,
        "workflow_name": run.name,
        "run_number": run.run_number,
        "run_attempt": run.run_attempt or 1,
        "event": run.event,
        "status": run.status,
        "conclusion": run.conclusion,
        "head_branch": run.head_branch,
        "head_sha": run.head_sha,
        "actor_user_id": users.collect(run.actor),
        "html_url": run.html_url,
        "run_created_at": run.created_at,
        "run_updated_at": run.updated_at,
    }


def workflow_job_record(repository_id: int, job: WorkflowJob) -> Record:
    return {
        "repository_id": repository_id,
        "github_job_id": job.id,
        "github_run_id": job.run_id,
        "name": job.name,
        "status": job.status,
        "conclusion": job.conclusion,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "runner_name": job.runner_name,
        "steps_json": job.steps,
    }


def issue_comment_record(
    repository_id: int, issue_number: int, comment: IssueComment, users: UserCollector
) -> Record:
    return {
        "repository_id": repository_id,
        "issue_number": issue_number,
        "github_comment_id": comment.id,
        "author_user_id": users.collect(comment.user),
        "body": comment.body,
        "github_created_at": comment.created_at,
        "github_updated_at": comment.updated_at,
    }


def review_record(
    repository_id: int, number: int, review: Review, users: UserCollector
) -> Record:
    return {
        "repository_id": repository_id,
        "pull_request_number": number,
        "github_review_id": review.id,
        "author_user_id": users.collect(review.user),
        "state": review.state,
        "body": review.body,
        "submitted_at": review.submitted_at,
        "commit_sha": review.commit_id,
    }


def review_comment_record(
    repository_id: int, number: int, comment: ReviewComment, users: UserCollector
) -> Record:
    return {
        "repository_id": repository_id,
        "pull_request_number": number,
        "github_review_comment_id": comment.id,
        "github_review_id": comment.pull_request_review_id,
        "in_reply_to_github_review_comment_id": comment.in_reply_to_id,
        "author_user_id": users.collect(comment.user),
        "body": comment.body,
        "path": comment.path,
        "line": comment.line,
        "original_line": comment.original_line,
        "start_line": comment.start_line,
        "side": comment.side,
        "start_side": comment.start_side,
        "commit_sha": comment.commit_id,
        "original_commit_sha": comment.original_commit_id,
        "html_url": comment.html_url,
        "github_created_at": comment.created_at,
        "github_updated_at": comment.updated_at,
    }


def pull_request_file_record(
    repository_id: int,
    number: int,
    head_sha: str,
    file: PullRequestFile,
    patch: str | None,
) -> Record:
    return {
        "repository_id": repository_id,
        "pull_request_number": number,
        "head_sha": head_sha,
        "filename": file.filename,
        "status": PullRequestFileStatus.normalize(file.status).value,
        "additions": file.additions,
        "deletions": file.deletions,
        "changes": file.changes,
        "patch": patch,
        "previous_filename": file.previous_filename,
    }


def repository_record(
    info: RepositoryInfo, installation_id: int, connected_by_user_id: str | None
) -> Record:
    """Columns for a newly connected repository."""
    return {
        "github_repo_id": info.id,
        "installation_id": installation_id,
        "owner_login": info.owner.login,
        "name": info.name,
        "full_name": info.full_name,
        "private": info.private,
        "visibility": info.visibility or ("private" if info.private else "public"),
        "default_branch": info.default_branch,
        "archived": info.archived,
        "disabled": info.disabled,
        "connected_by_user_id": connected_by_user_id,
        "stargazers_count": info.stargazers_count,
        "github_updated_at": info.updated_at,
        "pushed_at": info.pushed_at,
    }
