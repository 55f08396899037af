"""Repository permission evaluation and synchronization."""

from .access import resolve_repo_access, verify_repo_permission
from .evaluator import DecisionReason, PermissionDecision, evaluate
from .exceptions import (
    InsufficientPermissionError,
    InvalidPayloadError,
    NotAuthenticatedError,
    PermissionDeniedError,
    RepoNotFoundError,
)
from .sync import PermissionSynchronizer, PermissionSyncResult, StalePermissionSyncResult

__all__ = [
    "DecisionReason",
    "InsufficientPermissionError",
    "InvalidPayloadError",
    "NotAuthenticatedError",
    "PermissionDecision",
    "PermissionDeniedError",
    "PermissionSyncResult",
    "PermissionSynchronizer",
    "RepoNotFoundError",
    "StalePermissionSyncResult",
    "evaluate",
    "resolve_repo_access",
    "verify_repo_permission",
]
