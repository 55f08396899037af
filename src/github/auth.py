"""GitHub authentication handlers.

Two kinds of credentials reach the API client:

* per-user OAuth tokens, stored with a refresh token and refreshed shortly
  before they expire;
* per-installation GitHub App tokens, minted by exchanging an RS256 App JWT
  and cached until just before their one hour TTL runs out.

``TokenResolver`` picks between them for a repository.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import aiohttp
import jwt

from .exceptions import (
    GitHubAppConfigMissingError,
    GitHubAppTokenError,
    GitHubAuthenticationError,
    NoGitHubTokenError,
)

logger = logging.getLogger(__name__)

TOKEN_REFRESH_BUFFER = timedelta(minutes=5)
GITHUB_OAUTH_TOKEN_URL = "https://github.com/login/oauth/access_token"


@dataclass
class AuthToken:
    """Authentication token with metadata."""

    token: str
    token_type: str = "Bearer"
    expires_at: int | None = None

    @property
    def is_expired(self) -> bool:
        """Check if token is expired."""
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at

    def to_header(self) -> dict[str, str]:
        """Convert to authorization header."""
        return {"Authorization": f"{self.token_type} {self.token}"}


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def get_token(self) -> AuthToken:
        """Get authentication token."""
        pass

    @abstractmethod
    async def refresh_token(self) -> AuthToken:
        """Refresh authentication token."""
        pass


class TokenAuth(AuthProvider):
    """Already-resolved bearer token."""

    def __init__(self, token: str, token_type: str = "Bearer"):
        """Initialize token authentication.

        Args:
            token: Authentication token
            token_type: Authorization scheme
        """
        if not token:
            raise GitHubAuthenticationError("Token is required")
        self._token = AuthToken(token=token, token_type=token_type)

    async def get_token(self) -> AuthToken:
        """Get authentication token."""
        return self._token

    async def refresh_token(self) -> AuthToken:
        """Resolved tokens don't refresh."""
        return self._token


class GitHubAppAuth:
    """Mints App JWTs and exchanges them for installation access tokens."""

    def __init__(
        self,
        app_id: str | None,
        private_key: str | None,
        base_url: str = "https://api.github.com",
        refresh_buffer: timedelta = TOKEN_REFRESH_BUFFER,
    ):
        """Initialize GitHub App authentication.

        Args:
            app_id: GitHub App ID
            private_key: PEM private key for JWT signing
            base_url: REST API base URL
            refresh_buffer: Re-mint tokens this long before they expire
        """
        self.app_id = app_id
        self.private_key = private_key
        self.base_url = base_url.rstrip("/")
        self.refresh_buffer = refresh_buffer
        self._tokens: dict[int, AuthToken] = {}

    def _generate_jwt(self) -> str:
        """Generate JWT for GitHub App authentication."""
        if not self.app_id or not self.private_key:
            raise GitHubAppConfigMissingError(
                "GitHub App id and private key must be configured"
            )

        now = int(time.time())
        payload = {
            "iat": now - 60,  # Issued at time (60 seconds in the past)
            "exp": now + 600,  # JWT expiration (10 minutes)
            "iss": self.app_id,
        }

        try:
            token = jwt.encode(payload, self.private_key, algorithm="RS256")
            return token if isinstance(token, str) else token.decode("utf-8")
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise GitHubAuthenticationError(f"Failed to generate JWT: {e}") from e

    def _is_fresh(self, token: AuthToken) -> bool:
        if token.expires_at is None:
            return True
        return time.time() < token.expires_at - self.refresh_buffer.total_seconds()

    async def get_installation_token(
        self,
        installation_id: int,
        session: aiohttp.ClientSession | None = None,
    ) -> AuthToken:
        """Return a cached installation token, minting a new one when stale.

        Args:
            installation_id: GitHub App installation ID
            session: Optional HTTP session to reuse

        Returns:
            Installation access token

        Raises:
            GitHubAppConfigMissingError: If app credentials are missing
            GitHubAppTokenError: If GitHub rejects the exchange
        """
        cached = self._tokens.get(installation_id)
        if cached and self._is_fresh(cached):
            return cached

        app_jwt = self._generate_jwt()
        url = f"{self.base_url}/app/installations/{installation_id}/access_tokens"
        headers = {
            "Authorization": f"Bearer {app_jwt}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        owns_session = session is None
        http = session or aiohttp.ClientSession()
        try:
            async with http.post(url, headers=headers) as response:
                if response.status not in (200, 201):
                    body = await response.text()
                    raise GitHubAppTokenError(
                        f"Installation token exchange failed for {installation_id}: "
                        f"HTTP {response.status} {body[:200]}",
                        response.status,
                    )
                data: dict[str, Any] = await response.json()
        except aiohttp.ClientError as e:
            raise GitHubAppTokenError(
                f"Installation token exchange failed for {installation_id}: {e}"
            ) from e
        finally:
            if owns_session:
                await http.close()

        token_value = data.get("token")
        if not isinstance(token_value, str) or not token_value:
            raise GitHubAppTokenError(
                f"Installation token response for {installation_id} had no token"
            )

        expires_at = _parse_expiry(data.get("expires_at"))
        token = AuthToken(
            token=token_value,
            token_type="Bearer",  # nosec B106
            expires_at=int(expires_at.timestamp()) if expires_at else None,
        )
        self._tokens[installation_id] = token
        logger.debug(f"Minted installation token for installation {installation_id}")
        return token




@dataclass
class OAuthCredentials:
    """Stored GitHub OAuth credentials for one user."""

    user_id: str
    access_token: str | None
    refresh_token: str | None = None
    access_token_expires_at: datetime | None = None
    refresh_token_expires_at: datetime | None = None


class OAuthAccountStore(ABC):
    """Storage for per-user GitHub OAuth credentials."""

    @abstractmethod
    async def get_credentials(self, user_id: str) -> OAuthCredentials | None:
        """Load the GitHub OAuth credentials for a user."""
        pass

    @abstractmethod
    async def save_credentials(self, credentials: OAuthCredentials) -> None:
        """Persist refreshed credentials."""
        pass


class OAuthTokenProvider:
    """Returns a valid OAuth access token for a user, refreshing when near expiry."""

    def __init__(
        self,
        store: OAuthAccountStore,
        client_id: str | None,
        client_secret: str | None,
        token_url: str = GITHUB_OAUTH_TOKEN_URL,
        refresh_buffer: timedelta = TOKEN_REFRESH_BUFFER,
    ):
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.refresh_buffer = refresh_buffer

    async def get_user_token(self, user_id: str) -> str:
        """Get a usable access token for ``user_id``.

        Raises:
            NoGitHubTokenError: If the user has no usable token
        """
        credentials = await self.store.get_credentials(user_id)
        if credentials is None or not credentials.access_token:
            raise NoGitHubTokenError(f"No GitHub OAuth token for user {user_id}")

        now = datetime.now(UTC)
        expires_at = credentials.access_token_expires_at
        if expires_at is None or now < expires_at - self.refresh_buffer:
            return credentials.access_token

        expired = now >= expires_at
        if not credentials.refresh_token:
            if expired:
                raise NoGitHubTokenError(
                    f"GitHub OAuth token for user {user_id} expired and cannot be refreshed"
                )
            return credentials.access_token

        refreshed = await self._refresh(credentials, now)
        if refreshed is not None:
            await self.store.save_credentials(refreshed)
            return refreshed.access_token or credentials.access_token

        if not expired:
            logger.warning(
                f"OAuth refresh failed for user {user_id}, using current token"
            )
            return credentials.access_token

        raise NoGitHubTokenError(
            f"GitHub OAuth token for user {user_id} expired and refresh failed"
        )

    async def _refresh(
        self, credentials: OAuthCredentials, now: datetime
    ) -> OAuthCredentials | None:
        if not self.client_id or not self.client_secret:
            logger.warning("GitHub OAuth client credentials are not configured")
            return None

        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": credentials.refresh_token or "",
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                ) as response:
                    if response.status != 200:
                        logger.warning(
                            f"OAuth refresh returned HTTP {response.status} "
                            f"for user {credentials.user_id}"
                        )
                        return None
                    data: dict[str, Any] = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.warning(f"OAuth refresh failed for user {credentials.user_id}: {e}")
            return None

        access_token = data.get("access_token")
        if "error" in data or not isinstance(access_token, str):
            logger.warning(
                f"OAuth refresh rejected for user {credentials.user_id}: "
                f"{data.get('error_description') or data.get('error')}"
            )
            return None

        expires_in = data.get("expires_in")
        refresh_expires_in = data.get("refresh_token_expires_in")
        return OAuthCredentials(
            user_id=credentials.user_id,
            access_token=access_token,
            refresh_token=data.get("refresh_token") or credentials.refresh_token,
            access_token_expires_at=(
                now + timedelta(seconds=int(expires_in)) if expires_in else None
            ),
            refresh_token_expires_at=(
                now + timedelta(seconds=int(refresh_expires_in))
                if refresh_expires_in
                else credentials.refresh_token_expires_at
            ),
        )


class TokenResolver:
    """Chooses the token used to talk to GitHub on behalf of a repository."""

    def __init__(self, oauth: OAuthTokenProvider | None, app: GitHubAppAuth | None):
        self.oauth = oauth
        self.app = app

    async def resolve_repo_token(
        self, connected_by_user_id: str | None, installation_id: int
    ) -> str:
        """Prefer the connecting user's OAuth token, then the installation token.

        Raises:
            NoGitHubTokenError: If neither source yields a token
        """
        if connected_by_user_id and self.oauth is not None:
            try:
                return await self.oauth.get_user_token(connected_by_user_id)
            except NoGitHubTokenError:
                if installation_id <= 0:
                    raise
                logger.info(
                    f"No OAuth token for {connected_by_user_id}, "
                    f"falling back to installation {installation_id}"
                )

        return await self.resolve_system_token(installation_id)

    async def resolve_system_token(self, installation_id: int) -> str:
        """Installation token for system-initiated work (webhooks, sweeps)."""
        if installation_id > 0 and self.app is not None:
            token = await self.app.get_installation_token(installation_id)
            return token.token
        raise NoGitHubTokenError(
            f"No GitHub token available for installation {installation_id}"
        )


def _parse_expiry(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
