"""GitHub API rate limiting management."""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from .exceptions import GitHubRateLimitError

DEFAULT_RETRY_AFTER_MS = 60_000


def _header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup that works for plain dicts too."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def is_rate_limited(status: int, headers: Mapping[str, str]) -> bool:
    """Return True for 429, or 403 with an exhausted X-RateLimit-Remaining."""
    if status == 429:
        return True
    return status == 403 and _header(headers, "X-RateLimit-Remaining") == "0"


def compute_retry_after_ms(
    headers: Mapping[str, str], now: float | None = None
) -> int:
    """Compute how long to wait before retrying a rate-limited request.

    Prefers ``Retry-After`` (seconds), then ``X-RateLimit-Reset`` (epoch
    seconds) relative to ``now``, and falls back to 60 seconds.

    Args:
        headers: Response headers
        now: Current time in epoch seconds (defaults to ``time.time()``)

    Returns:
        Delay in milliseconds
    """
    now = time.time() if now is None else now

    retry_after = _header(headers, "Retry-After")
    if retry_after is not None:
        try:
            seconds = float(retry_after)
        except ValueError:
            seconds = 0
        if seconds > 0:
            return int(seconds * 1000)

    reset = _header(headers, "X-RateLimit-Reset")
    if reset is not None:
        try:
            delay_ms = int(float(reset) * 1000 - now * 1000)
        except ValueError:
            delay_ms = 0
        if delay_ms > 0:
            return delay_ms

    return DEFAULT_RETRY_AFTER_MS


def rate_limit_error(
    status: int, headers: Mapping[str, str], message: str | None = None
) -> GitHubRateLimitError:
    """Build a GitHubRateLimitError from a rate-limited response."""
    reset = _header(headers, "X-RateLimit-Reset")
    remaining = _header(headers, "X-RateLimit-Remaining")
    limit = _header(headers, "X-RateLimit-Limit")
    retry_after_ms = compute_retry_after_ms(headers)
    return GitHubRateLimitError(
        message or f"GitHub rate limit hit (HTTP {status}), retry in {retry_after_ms}ms",
        reset_time=int(reset) if reset and reset.isdigit() else None,
        remaining=int(remaining) if remaining and remaining.isdigit() else 0,
        limit=int(limit) if limit and limit.isdigit() else 0,
        retry_after_ms=retry_after_ms,
        status_code=status,
    )


@dataclass
class RateLimitInfo:
    """Rate limit information from GitHub API."""

    limit: int
    remaining: int
    reset: int
    used: int = 0
    resource: str = "core"

    @property
    def seconds_until_reset(self) -> float:
        """Get seconds until rate limit resets."""
        return max(0, self.reset - time.time())

    @property
    def is_exceeded(self) -> bool:
        """Check if rate limit is exceeded."""
        return self.remaining <= 0


@dataclass
class RateLimitManager:
    """Tracks the latest rate limit headers and refuses requests near the limit."""

    buffer: int = 0
    max_retry_wait: int = 3600

    _rate_limits: dict[str, RateLimitInfo] = field(default_factory=dict)

    def get_rate_limit(self, resource: str = "core") -> RateLimitInfo | None:
        """Get current rate limit info for resource."""
        return self._rate_limits.get(resource)

    def update_rate_limit(self, headers: Mapping[str, str]) -> None:
        """Update rate limit info from response headers.

        Args:
            headers: HTTP response headers from GitHub API
        """
        limit = _header(headers, "X-RateLimit-Limit")
        if limit is None:
            return

        try:
            rate_limit = RateLimitInfo(
                limit=int(limit),
                remaining=int(_header(headers, "X-RateLimit-Remaining") or 0),
                reset=int(_header(headers, "X-RateLimit-Reset") or 0),
                used=int(_header(headers, "X-RateLimit-Used") or 0),
                resource=_header(headers, "X-RateLimit-Resource") or "core",
            )
            self._rate_limits[rate_limit.resource] = rate_limit
        except (ValueError, TypeError):
            # Ignore invalid rate limit headers
            pass

    def check_rate_limit(self, resource: str = "core") -> None:
        """Raise before sending a request that would certainly be rejected.

        Args:
            resource: GitHub API resource type

        Raises:
            GitHubRateLimitError: If the known remaining budget is within the buffer
        """
        rate_limit = self.get_rate_limit(resource)
        if not rate_limit:
            return

        if rate_limit.remaining <= self.buffer and rate_limit.seconds_until_reset > 0:
            wait_time = min(rate_limit.seconds_until_reset, self.max_retry_wait)
            raise GitHubRateLimitError(
                f"Rate limit exhausted for {resource}. "
                f"Remaining: {rate_limit.remaining}, "
                f"Reset in {wait_time:.0f} seconds",
                reset_time=rate_limit.reset,
                remaining=rate_limit.remaining,
                limit=rate_limit.limit,
                retry_after_ms=int(wait_time * 1000),
            )


class CircuitBreaker:
    """Circuit breaker for GitHub API failures."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            recovery_timeout: Seconds to wait before attempting recovery
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._state = "closed"  # closed, open, half_open

    @property
    def is_open(self) -> bool:
        """Check if circuit is open."""
        return self._state == "open"

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed."""
        return self._state == "closed"

    def record_success(self) -> None:
        """Record successful call."""
        self._failure_count = 0
        self._state = "closed"

    def record_failure(self) -> None:
        """Record failed call."""
        self._failure_count += 1
        self._last_failure_time = time.time()

        if self._failure_count >= self.failure_threshold:
            self._state = "open"

    def can_attempt_request(self) -> bool:
        """Check if request can be attempted."""
        if self.is_closed:
            return True

        if (
            self.is_open
            and self._last_failure_time
            and time.time() - self._last_failure_time >= self.recovery_timeout
        ):
            self._state = "half_open"
            return True

        return self._state == "half_open"

    def get_wait_time(self) -> float:
        """Get time to wait before next attempt."""
        if not self.is_open or not self._last_failure_time:
            return 0

        elapsed = time.time() - self._last_failure_time
        return max(0, self.recovery_timeout - elapsed)
