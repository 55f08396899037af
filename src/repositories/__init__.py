"""Repository implementations for data access layer."""

from .base import BaseRepository
from .branch import BranchRepository, CommitRepository
from .check_run import CheckRunRepository
from .counter import RepositoryCounterRepository
from .dead_letter import DeadLetterEntry, DeadLetterRepository
from .github_user import GitHubUserRepository
from .issue import IssueCommentRepository, IssueRepository
from .oauth_account import DatabaseOAuthAccountStore, OAuthAccountRepository
from .permission import RepositoryPermissionRepository
from .pull_request import PullRequestRepository
from .pull_request_file import PullRequestFileRepository
from .repository import InstallationRepository, RepositoryRepository
from .review import PullRequestReviewCommentRepository, PullRequestReviewRepository
from .sync_job import SyncJobRepository
from .upsert import UpsertRepository, UpsertResult, chunked
from .workflow import WorkflowJobRepository, WorkflowRunRepository

__all__ = [
    "BaseRepository",
    "BranchRepository",
    "CheckRunRepository",
    "CommitRepository",
    "DatabaseOAuthAccountStore",
    "DeadLetterEntry",
    "DeadLetterRepository",
    "GitHubUserRepository",
    "InstallationRepository",
    "IssueCommentRepository",
    "IssueRepository",
    "OAuthAccountRepository",
    "PullRequestFileRepository",
    "PullRequestRepository",
    "PullRequestReviewCommentRepository",
    "PullRequestReviewRepository",
    "RepositoryCounterRepository",
    "RepositoryPermissionRepository",
    "RepositoryRepository",
    "SyncJobRepository",
    "UpsertRepository",
    "UpsertResult",
    "WorkflowJobRepository",
    "WorkflowRunRepository",
    "chunked",
]
