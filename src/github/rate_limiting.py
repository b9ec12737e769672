"""GitHub API rate limit tracking."""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from .exceptions import GitHubRateLimitError


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


@dataclass
class RateLimitManager:
    """Tracks GitHub rate limits and refuses requests inside the buffer.

    Vigilant never waits for a reset inside a cycle; a refused request
    surfaces as ``GitHubRateLimitError`` and the pair is retried on the
    next cycle.
    """

    buffer: int = 100

    _rate_limits: dict[str, RateLimitInfo] = field(default_factory=dict)

    def get_rate_limit(self, resource: str = "core") -> RateLimitInfo | None:
        """Get current rate limit info for resource."""
        return self._rate_limits.get(resource)

    def update_rate_limit(self, headers: Mapping[str, str]) -> None:
        """Update rate limit info from response headers.

        Args:
            headers: HTTP response headers from GitHub API
        """
        if "X-RateLimit-Limit" not in headers:
            return

        try:
            rate_limit = RateLimitInfo(
                limit=int(headers.get("X-RateLimit-Limit", 5000)),
                remaining=int(headers.get("X-RateLimit-Remaining", 0)),
                reset=int(headers.get("X-RateLimit-Reset", 0)),
                used=int(headers.get("X-RateLimit-Used", 0)),
                resource=headers.get("X-RateLimit-Resource", "core"),
            )
        except (ValueError, TypeError):
            # Ignore invalid rate limit headers
            return
        self._rate_limits[rate_limit.resource] = rate_limit

    def check_rate_limit(self, resource: str = "core") -> None:
        """Check if rate limit allows a request.

        Args:
            resource: GitHub API resource type

        Raises:
            GitHubRateLimitError: If remaining calls are within the buffer
                and the window has not reset yet
        """
        rate_limit = self.get_rate_limit(resource)
        if not rate_limit:
            return

        wait_time = rate_limit.seconds_until_reset
        if rate_limit.remaining <= self.buffer and wait_time > 0:
            raise GitHubRateLimitError(
                f"Rate limit approaching for {resource}. "
                f"Remaining: {rate_limit.remaining}, "
                f"Reset in {wait_time:.0f} seconds",
                reset_time=rate_limit.reset,
                remaining=rate_limit.remaining,
                limit=rate_limit.limit,
            )
