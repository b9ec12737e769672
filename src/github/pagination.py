"""GitHub API pagination utilities."""

import re
from collections.abc import AsyncIterator, Mapping
from typing import Any

GITHUB_MAX_PER_PAGE = 100

_LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


class LinkHeader:
    """Parser for GitHub Link headers."""

    def __init__(self, link_header: str | None = None):
        """Initialize Link header parser.

        Args:
            link_header: Raw Link header value from response
        """
        self.links: dict[str, str] = {}
        if link_header:
            # Link header format: <url>; rel="next", <url>; rel="last"
            for match in _LINK_PATTERN.finditer(link_header):
                url, rel = match.groups()
                self.links[rel] = url

    @property
    def next_url(self) -> str | None:
        """Get URL for next page."""
        return self.links.get("next")


class PaginatedResponse:
    """One page of a paginated GitHub API response."""

    def __init__(
        self,
        data: list[dict[str, Any]],
        headers: Mapping[str, str],
        url: str,
    ):
        self.data = data
        self.headers = headers
        self.url = url
        self.link_header = LinkHeader(headers.get("Link"))

    @property
    def next_page_url(self) -> str | None:
        """Get URL for next page."""
        return self.link_header.next_url

    @property
    def items(self) -> list[dict[str, Any]]:
        """Get items from current page."""
        return self.data


class AsyncPaginator:
    """Async iterator over every item of a paginated GitHub endpoint.

    Query parameters are only sent with the first request; the ``next``
    URLs from the Link header already carry them.
    """

    def __init__(
        self,
        client: Any,  # Avoid circular import
        initial_url: str,
        params: dict[str, Any] | None = None,
        per_page: int = GITHUB_MAX_PER_PAGE,
    ):
        """Initialize async paginator.

        Args:
            client: GitHub client instance
            initial_url: Initial URL to fetch
            params: Query parameters for the first page
            per_page: Items per page (max 100 for GitHub)
        """
        self.client = client
        self.initial_url = initial_url
        self.per_page = min(per_page, GITHUB_MAX_PER_PAGE)
        self.params = dict(params or {})
        self.params["per_page"] = self.per_page

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        next_url: str | None = self.initial_url
        params: dict[str, Any] | None = self.params

        while next_url:
            response: PaginatedResponse = await self.client._fetch_paginated(
                next_url, params
            )
            next_url = response.next_page_url
            params = None

            for item in response.items:
                yield item

    async def collect_all(self) -> list[dict[str, Any]]:
        """Collect all items from all pages."""
        return [item async for item in self]
