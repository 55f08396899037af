"""GitHub API client package."""

from .auth import (
    AuthProvider,
    AuthToken,
    GitHubAppAuth,
    OAuthAccountStore,
    OAuthCredentials,
    OAuthTokenProvider,
    TokenAuth,
    TokenResolver,
)
from .client import (
    FetchResult,
    GitHubClient,
    GitHubClientConfig,
    GitHubResponse,
    client_for_token,
)
from .decoding import DecodeFailure, LenientResult, decode_lenient
from .exceptions import (
    GitHubAppConfigMissingError,
    GitHubAppTokenError,
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
    NoGitHubTokenError,
)
from .pagination import LinkHeader, PaginatedResponse
from .rate_limiting import (
    CircuitBreaker,
    RateLimitInfo,
    RateLimitManager,
    compute_retry_after_ms,
    is_rate_limited,
)

__all__ = [
    "AuthProvider",
    "AuthToken",
    "CircuitBreaker",
    "DecodeFailure",
    "FetchResult",
    "GitHubAppAuth",
    "GitHubAppConfigMissingError",
    "GitHubAppTokenError",
    "GitHubAuthenticationError",
    "GitHubClient",
    "GitHubClientConfig",
    "GitHubConnectionError",
    "GitHubError",
    "GitHubGraphQLError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubResponse",
    "GitHubServerError",
    "GitHubTimeoutError",
    "GitHubValidationError",
    "LenientResult",
    "LinkHeader",
    "NoGitHubTokenError",
    "OAuthAccountStore",
    "OAuthCredentials",
    "OAuthTokenProvider",
    "PaginatedResponse",
    "RateLimitInfo",
    "RateLimitManager",
    "TokenAuth",
    "TokenResolver",
    "client_for_token",
    "compute_retry_after_ms",
    "decode_lenient",
    "is_rate_limited",
]
