"""GitHub authentication handlers.

The credential itself is opaque to Vigilant: it is read from the environment
(or config) once at startup and attached to every request as an
``Authorization`` header.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .exceptions import GitHubAuthenticationError

GITHUB_TOKEN_ENV = "GITHUB_TOKEN"  # nosec B105


@dataclass(frozen=True)
class AuthToken:
    """Authentication token with its header scheme."""

    token: str
    token_type: str = "Bearer"

    def to_header(self) -> dict[str, str]:
        """Convert to authorization header."""
        return {"Authorization": f"{self.token_type} {self.token}"}

    def __repr__(self) -> str:
        return f"AuthToken(token_type={self.token_type!r}, token='***')"


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def get_token(self) -> AuthToken:
        """Get authentication token."""


class TokenAuth(AuthProvider):
    """Static bearer token authentication."""

    DEFAULT_TOKEN_TYPE = "Bearer"  # nosec B105

    def __init__(self, token: str, token_type: str | None = None):
        """Initialize token authentication.

        Args:
            token: Authentication token
            token_type: Header scheme (Bearer, token, ...). Uses Bearer by default.

        Raises:
            GitHubAuthenticationError: If the token is empty
        """
        if not token or not token.strip():
            raise GitHubAuthenticationError("GitHub token is required")
        self._token = AuthToken(
            token=token.strip(), token_type=token_type or self.DEFAULT_TOKEN_TYPE
        )

    async def get_token(self) -> AuthToken:
        """Static tokens never change."""
        return self._token

    @classmethod
    def from_env(cls, env_var: str = GITHUB_TOKEN_ENV) -> "TokenAuth":
        """Build the provider from an environment variable.

        Raises:
            GitHubAuthenticationError: If the variable is unset or empty
        """
        token = os.getenv(env_var, "")
        if not token.strip():
            raise GitHubAuthenticationError(
                f"{env_var} environment variable is required"
            )
        return cls(token)
