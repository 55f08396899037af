"""SQLAlchemy models for the GitHub mirror."""

from .base import Base, BaseModel, JSONType, UTCDateTime, utcnow
from .branch import Branch, Commit
from .check_run import CheckRun
from .dead_letter import DeadLetter, RepositoryCounter
from .enums import (
    PermissionLevel,
    PullRequestFileStatus,
    SyncJobState,
    SyncJobType,
    SyncScopeType,
    SyncTriggerReason,
)
from .github_user import GitHubUser
from .issue import Issue, IssueComment
from .permission import OAuthAccount, RepositoryPermission
from .pull_request import PullRequest
from .pull_request_file import PullRequestFile
from .repository import Installation, Repository
from .review import PullRequestReview, PullRequestReviewComment
from .sync_job import SyncJob, bootstrap_lock_key
from .workflow import WorkflowJob, WorkflowRun

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "JSONType",
    "UTCDateTime",
    "utcnow",
    # Enums
    "PermissionLevel",
    "PullRequestFileStatus",
    "SyncJobState",
    "SyncJobType",
    "SyncScopeType",
    "SyncTriggerReason",
    # Ledger
    "SyncJob",
    "bootstrap_lock_key",
    # Mirror entities
    "Branch",
    "CheckRun",
    "Commit",
    "GitHubUser",
    "Installation",
    "Issue",
    "IssueComment",
    "PullRequest",
    "PullRequestFile",
    "PullRequestReview",
    "PullRequestReviewComment",
    "Repository",
    "WorkflowJob",
    "WorkflowRun",
    # Bookkeeping
    "DeadLetter",
    "OAuthAccount",
    "RepositoryCounter",
    "RepositoryPermission",
]
