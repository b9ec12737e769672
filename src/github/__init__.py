"""GitHub API client package."""

from .auth import AuthProvider, AuthToken, TokenAuth
from .client import APIResponse, GitHubClient, GitHubClientConfig
from .exceptions import (
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubResponseError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
)
from .pagination import AsyncPaginator, LinkHeader, PaginatedResponse
from .rate_limiting import RateLimitInfo, RateLimitManager

__all__ = [
    "APIResponse",
    "AsyncPaginator",
    "AuthProvider",
    "AuthToken",
    "GitHubAuthenticationError",
    "GitHubClient",
    "GitHubClientConfig",
    "GitHubConnectionError",
    "GitHubError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubResponseError",
    "GitHubServerError",
    "GitHubTimeoutError",
    "GitHubValidationError",
    "LinkHeader",
    "PaginatedResponse",
    "RateLimitInfo",
    "RateLimitManager",
    "TokenAuth",
]
