"""GitHub API client with authentication, rate limiting, and pagination."""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Collection
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from .auth import AuthProvider, TokenAuth
from .exceptions import (
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
)
from .pagination import MAX_PER_PAGE, PaginatedResponse
from .rate_limiting import (
    CircuitBreaker,
    RateLimitManager,
    is_rate_limited,
    rate_limit_error,
)

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
JSON_ACCEPT = "application/vnd.github+json"
DIFF_ACCEPT = "application/vnd.github.diff"
MAX_LOG_CHARS = 200_000


@dataclass
class GitHubClientConfig:
    """Configuration for GitHub client."""

    base_url: str = "https://api.github.com"
    timeout: int = 30
    max_retries: int = 3
    retry_backoff_factor: float = 2.0
    rate_limit_buffer: int = 0
    user_agent: str = "github-mirror-sync/1.0"
    max_concurrent_requests: int = 10


@dataclass
class GitHubResponse:
    """Fully read HTTP response."""

    status: int
    headers: dict[str, str]
    body: str

    def json(self) -> Any:
        """Decode the body as JSON; empty bodies decode to None."""
        if not self.body.strip():
            return None
        return json.loads(self.body)


@dataclass
class FetchResult:
    """Outcome of a JSON read where 404 is an expected answer."""

    found: bool
    status: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)


class GitHubClient:
    """Async GitHub REST/GraphQL client."""

    def __init__(
        self,
        auth: AuthProvider,
        config: GitHubClientConfig | None = None,
    ) -> None:
        """Initialize GitHub client.

        Args:
            auth: Authentication provider
            config: Client configuration
        """
        self.auth = auth
        self.config = config or GitHubClientConfig()
        self.rate_limiter = RateLimitManager(buffer=self.config.rate_limit_buffer)
        self.circuit_breaker = CircuitBreaker()

        # HTTP session will be initialized on first use
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._request_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def __aenter__(self) -> "GitHubClient":
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is initialized."""
        if self._session is None or self._session.closed:
            async with self._session_lock:
                if self._session is None or self._session.closed:
                    timeout = aiohttp.ClientTimeout(total=self.config.timeout)
                    connector = aiohttp.TCPConnector(limit=100, limit_per_host=30)

                    self._session = aiohttp.ClientSession(
                        timeout=timeout,
                        connector=connector,
                        headers={
                            "User-Agent": self.config.user_agent,
                            "Accept": JSON_ACCEPT,
                            "X-GitHub-Api-Version": GITHUB_API_VERSION,
                        },
                    )

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _generate_correlation_id(self) -> str:
        """Generate correlation ID for request tracking."""
        return str(uuid.uuid4())[:8]

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _make_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        correlation_id: str | None = None,
        allowed_statuses: Collection[int] = (),
    ) -> GitHubResponse:
        """Make HTTP request with retry logic and error handling.

        Transient failures (timeouts, connection errors, 5xx) are retried with
        exponential backoff. Rate limiting is raised immediately so that the
        caller's retry policy decides how long to wait.

        Args:
            method: HTTP method
            url: Request URL
            params: Query parameters
            data: Request body data
            headers: Additional headers
            correlation_id: Request correlation ID
            allowed_statuses: Non-2xx statuses returned instead of raised

        Returns:
            Fully read response

        Raises:
            GitHubError: Various GitHub API errors
        """
        if not correlation_id:
            correlation_id = self._generate_correlation_id()

        if not self.circuit_breaker.can_attempt_request():
            wait_time = self.circuit_breaker.get_wait_time()
            raise GitHubConnectionError(
                f"Circuit breaker open. Wait {wait_time:.1f}s before retry."
            )

        self.rate_limiter.check_rate_limit()

        request_headers = dict(headers or {})
        auth_token = await self.auth.get_token()
        request_headers.update(auth_token.to_header())

        await self._ensure_session()

        if not self._session:
            raise GitHubConnectionError("Failed to initialize HTTP session")

        request_kwargs: dict[str, Any] = {
            "params": params,
            "headers": request_headers,
        }

        if data is not None:
            request_kwargs["json"] = data

        last_exception: GitHubError | None = None
        for attempt in range(self.config.max_retries + 1):
            try:
                async with self._request_semaphore:
                    start_time = time.time()

                    logger.debug(
                        f"GitHub API request [{correlation_id}] {method} {url} "
                        f"(attempt {attempt + 1})"
                    )

                    async with self._session.request(
                        method, url, **request_kwargs
                    ) as response:
                        body = await response.text()
                        result = GitHubResponse(
                            status=response.status,
                            headers=dict(response.headers),
                            body=body,
                        )

                request_time = time.time() - start_time
                self.rate_limiter.update_rate_limit(result.headers)

                logger.debug(
                    f"GitHub API response [{correlation_id}] "
                    f"{result.status} in {request_time:.2f}s"
                )

                if 200 <= result.status < 300 or result.status in allowed_statuses:
                    self.circuit_breaker.record_success()
                    return result

                self._raise_for_response(result, correlation_id)

            except TimeoutError:
                last_exception = GitHubTimeoutError(
                    f"Request timeout for {method} {url}"
                )
                self.circuit_breaker.record_failure()

            except aiohttp.ClientError as e:
                last_exception = GitHubConnectionError(
                    f"Connection error for {method} {url}: {e}"
                )
                self.circuit_breaker.record_failure()

            except GitHubServerError as e:
                last_exception = e
                self.circuit_breaker.record_failure()

            if attempt < self.config.max_retries:
                backoff_time = self.config.retry_backoff_factor**attempt
                logger.warning(
                    f"Request [{correlation_id}] failed (attempt {attempt + 1}), "
                    f"retrying in {backoff_time:.1f}s: {last_exception}"
                )
                await asyncio.sleep(backoff_time)

        if last_exception:
            raise last_exception
        raise GitHubError(f"Request failed after {self.config.max_retries} retries")

    def _raise_for_response(self, response: GitHubResponse, correlation_id: str) -> None:
        """Map an unsuccessful response to a typed exception.

        Raises:
            GitHubError: Appropriate error based on status code
        """
        try:
            error_data = response.json()
        except json.JSONDecodeError:
            error_data = None
        if not isinstance(error_data, dict):
            error_data = {"message": response.body[:500]}

        error_message = error_data.get("message") or f"HTTP {response.status}"

        logger.warning(
            f"GitHub API error [{correlation_id}] {response.status}: {error_message}"
        )

        if is_rate_limited(response.status, response.headers):
            raise rate_limit_error(response.status, response.headers, error_message)
        if response.status in (401, 403):
            raise GitHubAuthenticationError(error_message, response.status, error_data)
        if response.status == 404:
            raise GitHubNotFoundError(error_message, response.status, error_data)
        if response.status == 422:
            raise GitHubValidationError(error_message, response.status, error_data)
        if 500 <= response.status < 600:
            raise GitHubServerError(error_message, response.status, error_data)
        raise GitHubError(error_message, response.status, error_data)

    async def fetch_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        allowed_statuses: Collection[int] = (404,),
    ) -> FetchResult:
        """GET a JSON resource, reporting 404 as ``found=False``.

        Args:
            path: API path (e.g., '/repos/owner/repo/pulls/1')
            params: Query parameters
            headers: Additional headers
            allowed_statuses: Statuses that mean "absent" rather than failure

        Returns:
            FetchResult with the decoded body when found
        """
        response = await self._make_request(
            "GET",
            self._url(path),
            params,
            headers=headers,
            allowed_statuses=allowed_statuses,
        )
        if response.status in allowed_statuses:
            return FetchResult(found=False, status=response.status, headers=response.headers)
        return FetchResult(
            found=True,
            status=response.status,
            data=response.json(),
            headers=response.headers,
        )

    async def get_text(
        self,
        path: str,
        accept: str,
        params: dict[str, Any] | None = None,
    ) -> str | None:
        """GET a non-JSON resource. 404 yields None, other failures raise."""
        response = await self._make_request(
            "GET",
            self._url(path),
            params,
            headers={"Accept": accept},
            allowed_statuses=(404,),
        )
        if response.status == 404:
            return None
        return response.body

    async def _fetch_paginated(
        self, url: str, params: dict[str, Any] | None = None
    ) -> PaginatedResponse:
        """GET one page of a list endpoint."""
        response = await self._make_request("GET", self._url(url), params)
        return PaginatedResponse(response.json(), response.headers, url)

    async def fetch_page(
        self,
        path: str,
        page: int,
        per_page: int = 100,
        params: dict[str, Any] | None = None,
    ) -> PaginatedResponse:
        """Fetch a single page using an explicit page cursor."""
        query = dict(params or {})
        query["per_page"] = min(per_page, MAX_PER_PAGE)
        query["page"] = page
        return await self._fetch_paginated(path, query)

    async def graphql(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> FetchResult:
        """Run a GraphQL query.

        Returns:
            FetchResult whose ``data`` is the response ``data`` object

        Raises:
            GitHubGraphQLError: If the response carries errors
        """
        response = await self._make_request(
            "POST",
            self._url("/graphql"),
            data={"query": query, "variables": variables or {}},
            allowed_statuses=(404,),
        )
        if response.status == 404:
            return FetchResult(found=False, status=404, headers=response.headers)

        payload = response.json() or {}
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise GitHubGraphQLError(
                f"GraphQL query failed: {messages}", response.status, payload
            )
        return FetchResult(
            found=True,
            status=response.status,
            data=payload.get("data"),
            headers=response.headers,
        )

    # Convenience methods for text endpoints

    async def get_pull_diff(self, owner: str, repo: str, number: int) -> str | None:
        """Unified diff for a pull request, or None if it does not exist."""
        return await self.get_text(
            f"/repos/{owner}/{repo}/pulls/{number}", accept=DIFF_ACCEPT
        )

    async def download_job_logs(
        self, owner: str, repo: str, job_id: int
    ) -> str | None:
        """Tail of a workflow job's logs, or None when absent or empty."""
        text = await self.get_text(
            f"/repos/{owner}/{repo}/actions/jobs/{job_id}/logs",
            accept="text/plain",
        )
        if text is None or not text.strip():
            return None
        if len(text) > MAX_LOG_CHARS:
            return text[-MAX_LOG_CHARS:]
        return text


def client_for_token(token: str, config: GitHubClientConfig | None = None) -> GitHubClient:
    """Build a client authenticated with a resolved bearer token."""
    return GitHubClient(auth=TokenAuth(token), config=config)
