"""GitHub API client implementing the Repository Host operations Vigilant needs.

Every call is a single attempt: failures surface immediately as a
``GitHubError`` subclass and the engine tries again on its next cycle.
"""

import asyncio
import base64
import json
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote, urljoin

import aiohttp

from .auth import AuthProvider
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
from .pagination import AsyncPaginator, PaginatedResponse
from .rate_limiting import RateLimitManager

logger = logging.getLogger(__name__)


@dataclass
class GitHubClientConfig:
    """Configuration for GitHub client."""

    base_url: str = "https://api.github.com"
    timeout: int = 30
    rate_limit_buffer: int = 100
    user_agent: str = "Vigilant/1.0"


@dataclass
class APIResponse:
    """Fully read response from the GitHub API."""

    status: int
    headers: Mapping[str, str]
    data: Any


def format_github_timestamp(instant: datetime) -> str:
    """Render an instant the way GitHub expects in query strings."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubClient:
    """Async GitHub API client."""

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

        # HTTP session will be initialized on first use
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def __aenter__(self) -> "GitHubClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is initialized."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                    headers={
                        "User-Agent": self.config.user_agent,
                        "Accept": "application/vnd.github+json",
                    },
                )
            return self._session

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        return urljoin(self.config.base_url.rstrip("/") + "/", path.lstrip("/"))

    async def _make_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> APIResponse:
        """Make one HTTP request and read its body.

        Args:
            method: HTTP method
            url: Request URL
            params: Query parameters
            data: Request body data

        Returns:
            Response with decoded JSON body

        Raises:
            GitHubError: Various GitHub API errors
        """
        correlation_id = str(uuid.uuid4())[:8]

        self.rate_limiter.check_rate_limit()

        auth_token = await self.auth.get_token()
        session = await self._ensure_session()

        request_kwargs: dict[str, Any] = {
            "params": params,
            "headers": auth_token.to_header(),
        }
        if data is not None:
            request_kwargs["json"] = data

        start_time = time.time()
        logger.debug(f"GitHub API request [{correlation_id}] {method} {url}")

        try:
            async with session.request(method, url, **request_kwargs) as response:
                # Case-insensitive copy; HTTP/2 responses use lowercase names
                headers = response.headers.copy()
                self.rate_limiter.update_rate_limit(headers)

                logger.debug(
                    f"GitHub API response [{correlation_id}] "
                    f"{response.status} in {time.time() - start_time:.2f}s"
                )

                if response.status >= 400:
                    await self._handle_error_response(response, correlation_id)

                body: Any = None
                if response.status != 204:
                    body = await response.json(content_type=None)
                return APIResponse(response.status, headers, body)

        except TimeoutError as e:
            raise GitHubTimeoutError(f"Request timeout for {method} {url}") from e
        except json.JSONDecodeError as e:
            raise GitHubResponseError(
                f"Invalid JSON in response for {method} {url}: {e}"
            ) from e
        except aiohttp.ClientError as e:
            raise GitHubConnectionError(
                f"Connection error for {method} {url}: {e}"
            ) from e

    async def _handle_error_response(
        self, response: aiohttp.ClientResponse, correlation_id: str
    ) -> None:
        """Raise the exception matching an error response.

        Raises:
            GitHubError: Appropriate error based on status code
        """
        try:
            error_data = await response.json(content_type=None)
        except (json.JSONDecodeError, aiohttp.ContentTypeError):
            error_data = None
        if not isinstance(error_data, dict):
            error_data = {"message": await response.text()}

        error_message = error_data.get("message") or f"HTTP {response.status}"

        logger.warning(
            f"GitHub API error [{correlation_id}] {response.status}: {error_message}"
        )

        if response.status == 401:
            raise GitHubAuthenticationError(error_message, response.status, error_data)
        elif response.status == 403:
            if "rate limit" in error_message.lower():
                reset_time = response.headers.get("X-RateLimit-Reset")
                raise GitHubRateLimitError(
                    error_message,
                    reset_time=int(reset_time) if reset_time else None,
                    remaining=int(response.headers.get("X-RateLimit-Remaining", "0")),
                    limit=int(response.headers.get("X-RateLimit-Limit", "0")),
                )
            raise GitHubAuthenticationError(error_message, response.status, error_data)
        elif response.status == 404:
            raise GitHubNotFoundError(error_message, response.status, error_data)
        elif response.status == 422:
            raise GitHubValidationError(error_message, response.status, error_data)
        elif 500 <= response.status < 600:
            raise GitHubServerError(error_message, response.status, error_data)
        else:
            raise GitHubError(error_message, response.status, error_data)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request to GitHub API and return the JSON body."""
        response = await self._make_request("GET", self._url(path), params)
        return response.data

    async def post(self, path: str, data: dict[str, Any] | None = None) -> Any:
        """Make POST request to GitHub API and return the JSON body."""
        response = await self._make_request("POST", self._url(path), data=data)
        return response.data

    async def put(self, path: str, data: dict[str, Any] | None = None) -> Any:
        """Make PUT request to GitHub API and return the JSON body."""
        response = await self._make_request("PUT", self._url(path), data=data)
        return response.data

    async def _fetch_paginated(
        self, url: str, params: dict[str, Any] | None = None
    ) -> PaginatedResponse:
        """Fetch one page (used by AsyncPaginator)."""
        response = await self._make_request("GET", url, params)
        if not isinstance(response.data, list):
            raise GitHubResponseError(
                f"Expected a list from {url}, got {type(response.data).__name__}"
            )
        return PaginatedResponse(response.data, response.headers, url)

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        per_page: int = 100,
    ) -> AsyncPaginator:
        """Create async paginator for GitHub API endpoint.

        Args:
            path: API path
            params: Query parameters
            per_page: Items per page (max 100)

        Returns:
            AsyncPaginator for iterating through results
        """
        return AsyncPaginator(
            client=self,
            initial_url=self._url(path),
            params=params,
            per_page=per_page,
        )

    # Repository Host operations

    def list_commits(
        self,
        owner: str,
        repo: str,
        path: str,
        since: datetime,
        per_page: int = 100,
    ) -> AsyncPaginator:
        """List commits touching ``path`` since ``since``.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path inside the repository
            since: Only commits after this instant (GitHub treats it loosely)
            per_page: Items per page

        Returns:
            AsyncPaginator over commit objects, newest first
        """
        return self.paginate(
            f"/repos/{owner}/{repo}/commits",
            params={"path": path, "since": format_github_timestamp(since)},
            per_page=per_page,
        )

    async def get_ref(self, owner: str, repo: str, branch: str) -> str:
        """Resolve the commit SHA at the tip of ``branch``.

        Raises:
            GitHubNotFoundError: If the branch does not exist
            GitHubResponseError: If the ref payload has no object SHA
        """
        data = await self.get(
            f"/repos/{owner}/{repo}/git/ref/heads/{quote(branch, safe='/')}"
        )
        try:
            return str(data["object"]["sha"])
        except (KeyError, TypeError) as e:
            raise GitHubResponseError(
                f"Ref payload for {owner}/{repo}@{branch} has no object SHA"
            ) from e

    async def create_ref(
        self, owner: str, repo: str, branch: str, sha: str
    ) -> dict[str, Any]:
        """Create ``refs/heads/<branch>`` pointing at ``sha``.

        Raises:
            GitHubValidationError: If the reference already exists
        """
        result: dict[str, Any] = await self.post(
            f"/repos/{owner}/{repo}/git/refs",
            data={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        return result

    async def get_file_sha(
        self, owner: str, repo: str, path: str, branch: str
    ) -> str | None:
        """Return the blob SHA of ``path`` on ``branch``, or None if absent."""
        try:
            data = await self.get(
                f"/repos/{owner}/{repo}/contents/{quote(path)}",
                params={"ref": branch},
            )
        except GitHubNotFoundError:
            return None
        if isinstance(data, dict) and data.get("sha"):
            return str(data["sha"])
        return None

    async def create_or_update_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        branch: str,
        message: str,
    ) -> dict[str, Any]:
        """Create ``path`` on ``branch``, overwriting it if it already exists.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path to write
            content: UTF-8 text content
            branch: Branch to commit on
            message: Commit message

        Returns:
            GitHub content/commit payload
        """
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        existing_sha = await self.get_file_sha(owner, repo, path, branch)
        if existing_sha:
            payload["sha"] = existing_sha

        result: dict[str, Any] = await self.put(
            f"/repos/{owner}/{repo}/contents/{quote(path)}", data=payload
        )
        return result

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        head: str,
        base: str,
        title: str,
        body: str,
    ) -> dict[str, Any]:
        """Open a pull request from ``head`` into ``base``."""
        result: dict[str, Any] = await self.post(
            f"/repos/{owner}/{repo}/pulls",
            data={"title": title, "head": head, "base": base, "body": body},
        )
        return result
