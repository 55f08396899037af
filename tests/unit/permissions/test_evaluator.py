"""
Unit tests for the repository permission evaluator.

Why: Reads and writes share one evaluator, so every branch here is an access
     rule of the mirror
What: Tests anonymous access, cached permission rows, implicit public read
      and the authenticated-only mode
How: Calls evaluate with unsaved RepositoryPermission instances
"""

import pytest

from src.models import PermissionLevel, RepositoryPermission
from src.permissions import DecisionReason, evaluate

REPO_ID = 101


def permission(**flags: bool) -> RepositoryPermission:
    values = {"pull": False, "triage": False, "push": False, "maintain": False, "admin": False}
    values.update(flags)
    return RepositoryPermission(user_id="user-1", repository_id=REPO_ID, **values)


class TestAnonymousAccess:
    """Test callers without a user id."""

    def test_public_repo_allows_pull(self) -> None:
        decision = evaluate(None, REPO_ID, is_private=False, required=PermissionLevel.PULL)

        assert decision.is_allowed is True
        assert decision.actual is PermissionLevel.PULL
        assert decision.user_id is None

    @pytest.mark.parametrize("required", [PermissionLevel.TRIAGE, PermissionLevel.PUSH])
    def test_public_repo_denies_writes(self, required: PermissionLevel) -> None:
        decision = evaluate(None, REPO_ID, is_private=False, required=required)

        assert decision.is_allowed is False
        assert decision.reason is DecisionReason.NOT_AUTHENTICATED

    def test_private_repo_denies_pull(self) -> None:
        decision = evaluate(None, REPO_ID, is_private=True, required=PermissionLevel.PULL)

        assert decision.reason is DecisionReason.NOT_AUTHENTICATED
        assert decision.actual is None

    def test_require_authenticated_denies_public_pull(self) -> None:
        decision = evaluate(
            None,
            REPO_ID,
            is_private=False,
            required=PermissionLevel.PULL,
            require_authenticated=True,
        )

        assert decision.is_allowed is False
        assert decision.reason is DecisionReason.NOT_AUTHENTICATED


class TestCachedPermission:
    """Test users with a permission row."""

    def test_highest_flag_decides(self) -> None:
        """
        Why: GitHub reports independent flags; only the highest one matters
        What: A maintain row satisfies push but not admin
        How: Evaluates the same row against two required levels
        """
        row = permission(pull=True, triage=True, push=True, maintain=True)

        allowed = evaluate("user-1", REPO_ID, True, PermissionLevel.PUSH, row)
        denied = evaluate("user-1", REPO_ID, True, PermissionLevel.ADMIN, row)

        assert allowed.is_allowed is True
        assert allowed.actual is PermissionLevel.MAINTAIN
        assert denied.is_allowed is False
        assert denied.reason is DecisionReason.INSUFFICIENT_PERMISSION
        assert denied.actual is PermissionLevel.MAINTAIN

    def test_row_without_flags_denies_even_public_pull(self) -> None:
        decision = evaluate("user-1", REPO_ID, False, PermissionLevel.PULL, permission())

        assert decision.is_allowed is False
        assert decision.actual is None

    def test_admin_satisfies_everything(self) -> None:
        row = permission(admin=True)

        for level in PermissionLevel:
            assert evaluate("user-1", REPO_ID, True, level, row).is_allowed is True


class TestMissingPermission:
    """Test signed-in users without a row."""

    def test_public_repo_grants_implicit_pull(self) -> None:
        decision = evaluate("user-1", REPO_ID, False, PermissionLevel.PULL)

        assert decision.is_allowed is True
        assert decision.actual is PermissionLevel.PULL

    def test_public_repo_does_not_grant_push(self) -> None:
        decision = evaluate("user-1", REPO_ID, False, PermissionLevel.PUSH)

        assert decision.reason is DecisionReason.INSUFFICIENT_PERMISSION

    def test_private_repo_is_denied(self) -> None:
        decision = evaluate("user-1", REPO_ID, True, PermissionLevel.PULL)

        assert decision.is_allowed is False
        assert decision.reason is DecisionReason.INSUFFICIENT_PERMISSION
        assert decision.required is PermissionLevel.PULL
