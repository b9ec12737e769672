"""GitHub API client exceptions."""

from typing import Any


class GitHubError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        """Initialize GitHub error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from GitHub API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class GitHubAuthenticationError(GitHubError):
    """Raised when the credential is missing or rejected."""


class GitHubRateLimitError(GitHubError):
    """Raised when rate limit is exceeded or about to be."""

    def __init__(
        self,
        message: str,
        reset_time: int | None = None,
        remaining: int = 0,
        limit: int = 0,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            reset_time: Unix timestamp when rate limit resets
            remaining: Remaining API calls
            limit: Total rate limit
        """
        super().__init__(message, status_code=403)
        self.reset_time = reset_time
        self.remaining = remaining
        self.limit = limit


class GitHubNotFoundError(GitHubError):
    """Raised when a repository, ref or file does not exist."""


class GitHubValidationError(GitHubError):
    """Raised on 422, e.g. when a branch ref already exists."""


class GitHubServerError(GitHubError):
    """Raised when GitHub returns a 5xx error."""


class GitHubConnectionError(GitHubError):
    """Raised when the connection to GitHub fails."""


class GitHubTimeoutError(GitHubError):
    """Raised when a request times out."""


class GitHubResponseError(GitHubError):
    """Raised when a response body is not shaped as expected."""
