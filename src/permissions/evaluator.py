"""The single repository permission evaluator.

Read paths and write paths both call ``evaluate``; they differ only in the
required level they pass in.
"""

from dataclasses import dataclass
from enum import Enum

from src.models import PermissionLevel, RepositoryPermission


class DecisionReason(str, Enum):
    """Why access was granted or denied."""

    ALLOWED = "allowed"
    NOT_AUTHENTICATED = "not_authenticated"
    INSUFFICIENT_PERMISSION = "insufficient_permission"


@dataclass(frozen=True)
class PermissionDecision:
    """Outcome of one evaluation."""

    is_allowed: bool
    reason: DecisionReason
    required: PermissionLevel
    actual: PermissionLevel | None
    repository_id: int
    user_id: str | None


def evaluate(
    user_id: str | None,
    repository_id: int,
    is_private: bool,
    required: PermissionLevel,
    permission: RepositoryPermission | None = None,
    require_authenticated: bool = False,
) -> PermissionDecision:
    """Decide whether ``user_id`` holds ``required`` on a repository.

    Args:
        user_id: Application user id, or None for anonymous access
        repository_id: GitHub repository id
        is_private: Repository visibility
        required: Minimum level needed
        permission: Cached permission row of the user on the repository
        require_authenticated: Deny anonymous callers even on public repos

    Returns:
        PermissionDecision with the highest level the caller holds
    """

    def decide(reason: DecisionReason, actual: PermissionLevel | None) -> PermissionDecision:
        return PermissionDecision(
            is_allowed=reason is DecisionReason.ALLOWED,
            reason=reason,
            required=required,
            actual=actual,
            repository_id=repository_id,
            user_id=user_id,
        )

    public_pull_ok = not is_private and PermissionLevel.PULL.satisfies(required)

    if user_id is None:
        if require_authenticated or not public_pull_ok:
            return decide(DecisionReason.NOT_AUTHENTICATED, None)
        return decide(DecisionReason.ALLOWED, PermissionLevel.PULL)

    if permission is not None:
        actual = permission.highest_level
        if actual is not None and actual.satisfies(required):
            return decide(DecisionReason.ALLOWED, actual)
        return decide(DecisionReason.INSUFFICIENT_PERMISSION, actual)

    # No row yet: public repositories grant implicit read access
    if public_pull_ok:
        return decide(DecisionReason.ALLOWED, PermissionLevel.PULL)
    return decide(DecisionReason.INSUFFICIENT_PERMISSION, None)
