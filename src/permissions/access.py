"""Query-time and write-time access checks backed by the evaluator."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import PermissionLevel, Repository
from src.repositories import RepositoryPermissionRepository, RepositoryRepository

from .evaluator import DecisionReason, PermissionDecision, evaluate
from .exceptions import (
    InsufficientPermissionError,
    InvalidPayloadError,
    NotAuthenticatedError,
    RepoNotFoundError,
)

logger = logging.getLogger(__name__)


async def _load_repository(
    session: AsyncSession, repository_id: int | None, full_name: str | None
) -> Repository:
    repositories = RepositoryRepository(session)
    if repository_id is not None:
        repository = await repositories.get_by_github_id(repository_id)
    elif full_name:
        if full_name.count("/") != 1:
            raise InvalidPayloadError(f"Invalid repository name '{full_name}'")
        repository = await repositories.get_by_full_name(full_name)
    else:
        raise InvalidPayloadError("A repository id or full name is required")

    if repository is None:
        raise RepoNotFoundError(
            f"Repository {repository_id or full_name} is not mirrored",
            repository_id=repository_id,
        )
    return repository


async def resolve_repo_access(
    session: AsyncSession,
    user_id: str | None,
    required: PermissionLevel,
    repository_id: int | None = None,
    full_name: str | None = None,
    require_authenticated: bool = False,
) -> PermissionDecision:
    """Evaluate access to a mirrored repository.

    Raises:
        RepoNotFoundError: If the repository is not mirrored
        InvalidPayloadError: If neither a valid id nor name is given
    """
    repository = await _load_repository(session, repository_id, full_name)

    permission = None
    if user_id is not None:
        permission = await RepositoryPermissionRepository(session).get_for(
            user_id, repository.github_repo_id
        )

    return evaluate(
        user_id=user_id,
        repository_id=repository.github_repo_id,
        is_private=repository.private,
        required=required,
        permission=permission,
        require_authenticated=require_authenticated,
    )


async def verify_repo_permission(
    session: AsyncSession,
    user_id: str | None,
    required: PermissionLevel,
    repository_id: int | None = None,
    full_name: str | None = None,
    require_authenticated: bool = True,
) -> PermissionDecision:
    """Authorize a request, raising a typed error on denial.

    Writes always require a signed-in user. Reads pass
    ``require_authenticated=False`` so anonymous callers keep pull access
    to public repositories.

    Raises:
        NotAuthenticatedError: If there is no user
        InsufficientPermissionError: If the user's level is too low
        RepoNotFoundError: If the repository is not mirrored
    """
    decision = await resolve_repo_access(
        session,
        user_id,
        required,
        repository_id=repository_id,
        full_name=full_name,
        require_authenticated=require_authenticated,
    )
    if decision.is_allowed:
        return decision

    logger.info(
        f"Denied {required.value} on repository {decision.repository_id} "
        f"for user {user_id}: {decision.reason.value}"
    )
    error_class = (
        NotAuthenticatedError
        if decision.reason is DecisionReason.NOT_AUTHENTICATED
        else InsufficientPermissionError
    )
    actual = decision.actual.value if decision.actual else "none"
    raise error_class(
        f"Requires {required.value}, has {actual}",
        repository_id=decision.repository_id,
        user_id=user_id,
        required=required,
        actual=decision.actual,
    )
