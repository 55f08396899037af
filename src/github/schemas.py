"""Boundary schemas for GitHub REST payloads.

Only the fields the mirror stores are declared; everything else GitHub sends
is ignored. Required fields are the ones without which a record cannot be
written, so a payload missing them is dead-lettered instead of stored.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GitHubSchema(BaseModel):
    """Base for all boundary schemas."""

    model_config = ConfigDict(extra="ignore")


class SimpleUser(GitHubSchema):
    id: int
    login: str
    avatar_url: str | None = None
    site_admin: bool = False
    type: str | None = None


class Label(GitHubSchema):
    name: str


class GitRef(GitHubSchema):
    ref: str
    sha: str


class PullRequestSimple(GitHubSchema):
    """Pull request as returned by the list endpoint."""

    id: int
    number: int
    state: str
    title: str
    body: str | None = None
    draft: bool | None = None
    user: SimpleUser | None = None
    assignees: list[SimpleUser] | None = None
    requested_reviewers: list[SimpleUser] | None = None
    labels: list[Label] = Field(default_factory=list)
    head: GitRef
    base: GitRef
    merged_at: datetime | None = None
    closed_at: datetime | None = None
    updated_at: datetime


class PullRequestDetail(PullRequestSimple):
    """Pull request as returned by the single-item endpoint."""

    mergeable_state: str | None = None


class Issue(GitHubSchema):
    id: int
    number: int
    state: str
    title: str
    body: str | None = None
    user: SimpleUser | None = None
    assignees: list[SimpleUser] | None = None
    # Labels come back either as names or as objects
    labels: list[str | Label] = Field(default_factory=list)
    comments: int = 0
    pull_request: dict[str, Any] | None = None
    closed_at: datetime | None = None
    updated_at: datetime


class BranchCommit(GitHubSchema):
    sha: str


class Branch(GitHubSchema):
    name: str
    commit: BranchCommit
    protected: bool = False


class CommitSignature(GitHubSchema):
    date: datetime | None = None


class CommitDetail(GitHubSchema):
    message: str = ""
    author: CommitSignature | None = None
    committer: CommitSignature | None = None


class CommitUser(GitHubSchema):
    """Commit author/committer; GitHub sends ``{}`` for unlinked emails."""

    id: int | None = None
    login: str | None = None
    avatar_url: str | None = None
    site_admin: bool = False
    type: str | None = None


class Commit(GitHubSchema):
    sha: str
    commit: CommitDetail
    author: CommitUser | None = None
    committer: CommitUser | None = None


class CheckRun(GitHubSchema):
    id: int
    name: str
    head_sha: str
    status: str
    conclusion: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class WorkflowRun(GitHubSchema):
    id: int
    workflow_id: int
    name: str | None = None
    run_number: int
    run_attempt: int | None = None
    event: str
    status: str | None = None
    conclusion: str | None = None
    head_branch: str | None = None
    head_sha: str
    actor: SimpleUser | None = None
    html_url: str | None = None
    created_at: datetime
    updated_at: datetime


class WorkflowJob(GitHubSchema):
    id: int
    run_id: int
    name: str
    status: str
    conclusion: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    runner_name: str | None = None
    steps: list[dict[str, Any]] | None = None


class IssueComment(GitHubSchema):
    id: int
    body: str | None = None
    user: SimpleUser | None = None
    created_at: datetime
    updated_at: datetime


class Review(GitHubSchema):
    id: int
    user: SimpleUser | None = None
    body: str | None = None
    state: str
    submitted_at: datetime | None = None
    commit_id: str | None = None


class ReviewComment(GitHubSchema):
    id: int
    pull_request_review_id: int | None = None
    in_reply_to_id: int | None = None
    user: SimpleUser | None = None
    body: str = ""
    path: str
    line: int | None = None
    original_line: int | None = None
    start_line: int | None = None
    side: str | None = None
    start_side: str | None = None
    commit_id: str | None = None
    original_commit_id: str | None = None
    html_url: str | None = None
    created_at: datetime
    updated_at: datetime


class PullRequestFile(GitHubSchema):
    filename: str
    status: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None
    previous_filename: str | None = None


class RepositoryPermissions(GitHubSchema):
    pull: bool = False
    triage: bool = False
    push: bool = False
    maintain: bool = False
    admin: bool = False


class UserRepository(GitHubSchema):
    """Repository entry from ``/user/repos`` with the caller's permissions."""

    id: int
    full_name: str
    private: bool = False
    permissions: RepositoryPermissions | None = None
    role_name: str | None = None


class RepositoryInfo(GitHubSchema):
    """Repository as returned by ``GET /repos/{owner}/{repo}``."""

    id: int
    name: str
    full_name: str
    owner: SimpleUser
    private: bool = False
    visibility: str | None = None
    default_branch: str | None = None
    archived: bool = False
    disabled: bool = False
    stargazers_count: int = 0
    updated_at: datetime | None = None
    pushed_at: datetime | None = None


class WebhookRepository(GitHubSchema):
    id: int
    name: str
    full_name: str
    owner: SimpleUser


class WebhookInstallation(GitHubSchema):
    id: int


class WebhookNumbered(GitHubSchema):
    number: int
    pull_request: dict[str, Any] | None = None


class PushCommit(GitHubSchema):
    """Commit listed in a push delivery; authors come as name/email only."""

    id: str
    message: str = ""
    timestamp: datetime | None = None


class WebhookEnvelope(GitHubSchema):
    """Fields of a webhook delivery the router needs."""

    action: str | None = None
    repository: WebhookRepository
    installation: WebhookInstallation | None = None
    pull_request: WebhookNumbered | None = None
    issue: WebhookNumbered | None = None
    # push, create and delete
    ref: str | None = None
    ref_type: str | None = None
    after: str | None = None
    deleted: bool = False
    commits: list[Any] = Field(default_factory=list)
    sender: SimpleUser | None = None
    # Raw check run; the event writer decodes it
    check_run: Any = None
