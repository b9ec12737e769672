"""
Unit tests for GitHub API client.

Why: Ensure the GitHub client maps every repository host operation Vigilant
     needs onto the right REST endpoint and turns failures into the right
     GitHubError subclass, with exactly one attempt per call.

What: Tests GitHubClient HTTP handling, error mapping, rate limit refusal,
      pagination and the commit/ref/contents/pull request operations.

How: Uses aioresponses to intercept aiohttp requests so no real GitHub API
     calls are made.
"""

import asyncio
import base64
import re
import time
from datetime import UTC, datetime, timedelta, timezone
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import CallbackResult, aioresponses

from src.github.auth import TokenAuth
from src.github.client import (
    GitHubClient,
    GitHubClientConfig,
    format_github_timestamp,
)
from src.github.exceptions import (
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

API = "https://api.github.com"
COMMITS_FIRST_PAGE = re.compile(rf"^{API}/repos/acme/upstream/commits\?.*$")
CONTENTS_LOOKUP = re.compile(rf"^{API}/repos/acme/downstream/contents/[^?]+\?ref=.*$")
MAIN_REF = f"{API}/repos/acme/downstream/git/ref/heads/main"
REF_PAYLOAD = {"ref": "refs/heads/main", "object": {"sha": "abc123"}}


@pytest_asyncio.fixture
async def github_client():
    """GitHubClient with a static token; session closed after the test."""
    client = GitHubClient(auth=TokenAuth("test-token"), config=GitHubClientConfig())
    yield client
    await client.close()


class TestGitHubClientConfig:
    """Test GitHubClientConfig data class."""

    def test_github_client_config_defaults(self) -> None:
        """Test GitHubClientConfig with default values."""
        config = GitHubClientConfig()

        assert config.base_url == "https://api.github.com"
        assert config.timeout == 30
        assert config.rate_limit_buffer == 100
        assert config.user_agent == "Vigilant/1.0"

    def test_github_client_config_custom(self) -> None:
        """Test GitHubClientConfig with custom values."""
        config = GitHubClientConfig(
            base_url="https://github.example.com/api/v3",
            timeout=60,
            rate_limit_buffer=10,
            user_agent="Custom-Agent/2.0",
        )

        assert config.base_url == "https://github.example.com/api/v3"
        assert config.timeout == 60
        assert config.rate_limit_buffer == 10
        assert config.user_agent == "Custom-Agent/2.0"


class TestFormatGitHubTimestamp:
    def test_utc_instant_uses_z_suffix(self) -> None:
        assert (
            format_github_timestamp(datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC))
            == "2024-01-02T03:04:05Z"
        )

    def test_offset_instant_is_converted_to_utc(self) -> None:
        instant = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        assert format_github_timestamp(instant) == "2024-01-02T03:04:05Z"

    def test_naive_instant_is_taken_as_utc(self) -> None:
        assert format_github_timestamp(datetime(2024, 1, 2)) == "2024-01-02T00:00:00Z"


class TestGitHubClientRequests:
    """Test request plumbing and error mapping."""

    def test_url_joins_base_and_path(self) -> None:
        """
        Why: Enterprise base URLs carry a path prefix that must be preserved
        What: Tests _url with and without leading slashes
        How: Builds clients with two base URLs and compares joined URLs
        """
        client = GitHubClient(
            auth=TokenAuth("t"),
            config=GitHubClientConfig(base_url="https://github.example.com/api/v3"),
        )
        assert (
            client._url("/repos/o/r/pulls")
            == "https://github.example.com/api/v3/repos/o/r/pulls"
        )
        assert client._url("user") == "https://github.example.com/api/v3/user"

    @pytest.mark.asyncio
    async def test_get_sends_bearer_token(self, github_client: GitHubClient) -> None:
        """
        Why: Every request must carry the configured credential
        What: Tests that GET attaches the Authorization header
        How: Captures request kwargs through an aioresponses callback
        """
        captured: dict[str, Any] = {}

        def callback(url: Any, **kwargs: Any) -> CallbackResult:
            captured.update(kwargs)
            return CallbackResult(payload=REF_PAYLOAD)

        with aioresponses() as m:
            m.get(MAIN_REF, callback=callback)
            sha = await github_client.get_ref("acme", "downstream", "main")

        assert sha == "abc123"
        assert captured["headers"] == {"Authorization": "Bearer test-token"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,payload,expected",
        [
            (401, {"message": "Bad credentials"}, GitHubAuthenticationError),
            (403, {"message": "Resource not accessible"}, GitHubAuthenticationError),
            (404, {"message": "Not Found"}, GitHubNotFoundError),
            (422, {"message": "Reference already exists"}, GitHubValidationError),
            (500, {"message": "Server Error"}, GitHubServerError),
            (502, {"message": "Bad Gateway"}, GitHubServerError),
            (409, {"message": "Conflict"}, GitHubError),
        ],
    )
    async def test_error_status_mapping(
        self,
        github_client: GitHubClient,
        status: int,
        payload: dict[str, Any],
        expected: type[GitHubError],
    ) -> None:
        """
        Why: Callers distinguish missing refs, conflicts and outages by type
        What: Tests the status code to exception mapping
        How: Returns each error status once and checks the raised type
        """
        with aioresponses() as m:
            m.get(MAIN_REF, status=status, payload=payload)
            with pytest.raises(expected) as exc_info:
                await github_client.get_ref("acme", "downstream", "main")

        assert exc_info.value.status_code == status
        assert payload["message"] in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limit_response(self, github_client: GitHubClient) -> None:
        """
        Why: A 403 rate limit response must be reported as such, not as auth
        What: Tests 403 with a rate limit message
        How: Returns rate limit headers and checks the error attributes
        """
        reset = int(time.time()) + 600
        with aioresponses() as m:
            m.get(
                MAIN_REF,
                status=403,
                payload={"message": "API rate limit exceeded"},
                headers={
                    "X-RateLimit-Limit": "5000",
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset),
                },
            )
            with pytest.raises(GitHubRateLimitError) as exc_info:
                await github_client.get_ref("acme", "downstream", "main")

        assert exc_info.value.reset_time == reset
        assert exc_info.value.remaining == 0
        assert exc_info.value.limit == 5000

    @pytest.mark.asyncio
    async def test_single_attempt_on_server_error(
        self, github_client: GitHubClient
    ) -> None:
        """
        Why: Retries belong to the next cycle, not to the client
        What: Tests that a 500 is raised after exactly one request
        How: Registers one 500 followed by a 200 and checks the 200 is unused
        """
        with aioresponses() as m:
            m.get(MAIN_REF, status=500, payload={"message": "boom"})
            m.get(MAIN_REF, status=200, payload=REF_PAYLOAD)
            with pytest.raises(GitHubServerError):
                await github_client.get_ref("acme", "downstream", "main")
            sha = await github_client.get_ref("acme", "downstream", "main")
            assert sha == "abc123"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(
        self, github_client: GitHubClient
    ) -> None:
        with aioresponses() as m:
            m.get(MAIN_REF, exception=asyncio.TimeoutError())
            with pytest.raises(GitHubTimeoutError):
                await github_client.get_ref("acme", "downstream", "main")

    @pytest.mark.asyncio
    async def test_client_error_maps_to_connection_error(
        self, github_client: GitHubClient
    ) -> None:
        with aioresponses() as m:
            m.get(MAIN_REF, exception=aiohttp.ClientConnectionError("refused"))
            with pytest.raises(GitHubConnectionError, match="refused"):
                await github_client.get_ref("acme", "downstream", "main")

    @pytest.mark.asyncio
    async def test_invalid_json_maps_to_response_error(
        self, github_client: GitHubClient
    ) -> None:
        with aioresponses() as m:
            m.get(MAIN_REF, status=200, body="not json")
            with pytest.raises(GitHubResponseError):
                await github_client.get_ref("acme", "downstream", "main")

    @pytest.mark.asyncio
    async def test_rate_limit_buffer_refuses_request(self) -> None:
        """
        Why: The client must stop calling GitHub inside the reserved buffer
        What: Tests that a low remaining count blocks the next request
        How: First response reports 5 remaining with buffer 10; second call
             raises before any request is made
        """
        client = GitHubClient(
            auth=TokenAuth("test-token"),
            config=GitHubClientConfig(rate_limit_buffer=10),
        )
        try:
            with aioresponses() as m:
                m.get(
                    MAIN_REF,
                    payload=REF_PAYLOAD,
                    headers={
                        "X-RateLimit-Limit": "5000",
                        "X-RateLimit-Remaining": "5",
                        "X-RateLimit-Reset": str(int(time.time()) + 600),
                    },
                )
                await client.get_ref("acme", "downstream", "main")
                with pytest.raises(GitHubRateLimitError):
                    await client.get_ref("acme", "downstream", "main")
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self) -> None:
        async with GitHubClient(auth=TokenAuth("test-token")) as client:
            session = client._session
            assert session is not None and not session.closed
        assert session.closed
        assert client._session is None


class TestListCommits:
    """Test commit listing with pagination."""

    @pytest.mark.asyncio
    async def test_list_commits_follows_link_header(
        self, github_client: GitHubClient
    ) -> None:
        """
        Why: A busy file may have more than one page of new commits
        What: Tests that every page is consumed and query params are only
              sent with the first request
        How: First page links to a second page; callbacks record params
        """
        seen_params: list[Any] = []

        def first_page(url: Any, **kwargs: Any) -> CallbackResult:
            seen_params.append(kwargs.get("params"))
            return CallbackResult(
                payload=[{"sha": "c2"}, {"sha": "c1"}],
                headers={
                    "Link": f'<{API}/repositories/1/commits?page=2>; rel="next", '
                    f'<{API}/repositories/1/commits?page=2>; rel="last"'
                },
            )

        def second_page(url: Any, **kwargs: Any) -> CallbackResult:
            seen_params.append(kwargs.get("params"))
            return CallbackResult(payload=[{"sha": "c0"}])

        with aioresponses() as m:
            m.get(COMMITS_FIRST_PAGE, callback=first_page)
            m.get(f"{API}/repositories/1/commits?page=2", callback=second_page)

            paginator = github_client.list_commits(
                "acme", "upstream", "docs/api.md", datetime(2024, 1, 1, tzinfo=UTC)
            )
            commits = await paginator.collect_all()

        assert [c["sha"] for c in commits] == ["c2", "c1", "c0"]
        assert len(seen_params) == 2
        assert seen_params[0] == {
            "path": "docs/api.md",
            "since": "2024-01-01T00:00:00Z",
            "per_page": 100,
        }
        assert seen_params[1] is None

    @pytest.mark.asyncio
    async def test_lowercase_link_header_is_followed(
        self, github_client: GitHubClient
    ) -> None:
        with aioresponses() as m:
            m.get(
                COMMITS_FIRST_PAGE,
                payload=[{"sha": "c1"}],
                headers={"link": f'<{API}/repositories/1/commits?page=2>; rel="next"'},
            )
            m.get(f"{API}/repositories/1/commits?page=2", payload=[{"sha": "c0"}])

            commits = await github_client.list_commits(
                "acme", "upstream", "docs/api.md", datetime(2024, 1, 1, tzinfo=UTC)
            ).collect_all()

        assert [c["sha"] for c in commits] == ["c1", "c0"]

    @pytest.mark.asyncio
    async def test_non_list_page_is_rejected(self, github_client: GitHubClient) -> None:
        with aioresponses() as m:
            m.get(
                COMMITS_FIRST_PAGE,
                payload={"message": "unexpected"},
            )
            with pytest.raises(GitHubResponseError):
                await github_client.list_commits(
                    "acme", "upstream", "docs/api.md", datetime(2024, 1, 1, tzinfo=UTC)
                ).collect_all()


class TestRefsAndContents:
    """Test branch and file operations."""

    @pytest.mark.asyncio
    async def test_get_ref_returns_tip_sha(self, github_client: GitHubClient) -> None:
        with aioresponses() as m:
            m.get(
                f"{API}/repos/acme/downstream/git/ref/heads/main",
                payload={"ref": "refs/heads/main", "object": {"sha": "abc123"}},
            )
            sha = await github_client.get_ref("acme", "downstream", "main")
            assert sha == "abc123"

    @pytest.mark.asyncio
    async def test_get_ref_missing_branch(self, github_client: GitHubClient) -> None:
        with aioresponses() as m:
            m.get(
                f"{API}/repos/acme/downstream/git/ref/heads/main",
                status=404,
                payload={"message": "Not Found"},
            )
            with pytest.raises(GitHubNotFoundError):
                await github_client.get_ref("acme", "downstream", "main")

    @pytest.mark.asyncio
    async def test_get_ref_without_object(self, github_client: GitHubClient) -> None:
        with aioresponses() as m:
            m.get(
                f"{API}/repos/acme/downstream/git/ref/heads/main",
                payload={"ref": "refs/heads/main"},
            )
            with pytest.raises(GitHubResponseError):
                await github_client.get_ref("acme", "downstream", "main")

    @pytest.mark.asyncio
    async def test_create_ref_posts_full_ref_name(
        self, github_client: GitHubClient
    ) -> None:
        captured: dict[str, Any] = {}

        def callback(url: Any, **kwargs: Any) -> CallbackResult:
            captured.update(kwargs["json"])
            return CallbackResult(status=201, payload={"ref": kwargs["json"]["ref"]})

        with aioresponses() as m:
            m.post(f"{API}/repos/acme/downstream/git/refs", callback=callback)
            await github_client.create_ref(
                "acme", "downstream", "docs-api.md-update-20240102-000000", "abc123"
            )

        assert captured == {
            "ref": "refs/heads/docs-api.md-update-20240102-000000",
            "sha": "abc123",
        }

    @pytest.mark.asyncio
    async def test_create_ref_conflict(self, github_client: GitHubClient) -> None:
        with aioresponses() as m:
            m.post(
                f"{API}/repos/acme/downstream/git/refs",
                status=422,
                payload={"message": "Reference already exists"},
            )
            with pytest.raises(GitHubValidationError):
                await github_client.create_ref("acme", "downstream", "b", "abc123")

    @pytest.mark.asyncio
    async def test_create_file_when_absent(self, github_client: GitHubClient) -> None:
        """
        Why: A fresh notification branch has no notification file yet
        What: Tests that the file is created without a blob SHA
        How: Contents lookup returns 404; PUT payload is captured
        """
        captured: dict[str, Any] = {}

        def callback(url: Any, **kwargs: Any) -> CallbackResult:
            captured.update(kwargs["json"])
            return CallbackResult(status=201, payload={"content": {"sha": "new"}})

        with aioresponses() as m:
            m.get(
                CONTENTS_LOOKUP,
                status=404,
                payload={"message": "Not Found"},
            )
            m.put(
                f"{API}/repos/acme/downstream/contents/docs-api.md-updates.md",
                callback=callback,
            )
            await github_client.create_or_update_file(
                "acme",
                "downstream",
                "docs-api.md-updates.md",
                "hello\n",
                "feature",
                "Notify about changes to docs/api.md",
            )

        assert captured["branch"] == "feature"
        assert captured["message"] == "Notify about changes to docs/api.md"
        assert base64.b64decode(captured["content"]).decode("utf-8") == "hello\n"
        assert "sha" not in captured

    @pytest.mark.asyncio
    async def test_update_file_when_present(self, github_client: GitHubClient) -> None:
        captured: dict[str, Any] = {}

        def callback(url: Any, **kwargs: Any) -> CallbackResult:
            captured.update(kwargs["json"])
            return CallbackResult(payload={"content": {"sha": "updated"}})

        with aioresponses() as m:
            m.get(
                CONTENTS_LOOKUP,
                payload={"sha": "existing-sha", "path": "notes.md"},
            )
            m.put(f"{API}/repos/acme/downstream/contents/notes.md", callback=callback)
            await github_client.create_or_update_file(
                "acme", "downstream", "notes.md", "text", "feature", "msg"
            )

        assert captured["sha"] == "existing-sha"

    @pytest.mark.asyncio
    async def test_create_pull_request(self, github_client: GitHubClient) -> None:
        captured: dict[str, Any] = {}

        def callback(url: Any, **kwargs: Any) -> CallbackResult:
            captured.update(kwargs["json"])
            return CallbackResult(
                status=201,
                payload={
                    "number": 7,
                    "html_url": "https://github.com/acme/downstream/pull/7",
                },
            )

        with aioresponses() as m:
            m.post(f"{API}/repos/acme/downstream/pulls", callback=callback)
            pull_request = await github_client.create_pull_request(
                "acme",
                "downstream",
                head="feature",
                base="main",
                title="Update: Changes in docs/api.md",
                body="body",
            )

        assert pull_request["html_url"] == "https://github.com/acme/downstream/pull/7"
        assert captured == {
            "title": "Update: Changes in docs/api.md",
            "head": "feature",
            "base": "main",
            "body": "body",
        }
