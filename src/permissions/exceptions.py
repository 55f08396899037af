"""Authorization errors carrying a typed denial reason."""

from src.models import PermissionLevel


class PermissionDeniedError(Exception):
    """Base exception for denied repository access."""

    reason = "denied"

    def __init__(
        self,
        message: str,
        repository_id: int | None = None,
        user_id: str | None = None,
        required: PermissionLevel | None = None,
        actual: PermissionLevel | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.repository_id = repository_id
        self.user_id = user_id
        self.required = required
        self.actual = actual

    def __str__(self) -> str:
        return f"{self.reason}: {self.message}"


class NotAuthenticatedError(PermissionDeniedError):
    """Raised when a signed-in user is required but none is present."""

    reason = "not_authenticated"


class InsufficientPermissionError(PermissionDeniedError):
    """Raised when the user's permission is below the required level."""

    reason = "insufficient_permission"


class RepoNotFoundError(PermissionDeniedError):
    """Raised when the repository is not mirrored."""

    reason = "repo_not_found"


class InvalidPayloadError(PermissionDeniedError):
    """Raised when a request cannot be authorized because it is malformed."""

    reason = "invalid_payload"
