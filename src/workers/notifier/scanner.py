"""Commit scanner for watched files."""

import logging
from datetime import datetime

from src.config.models import RepoIdentifier
from src.github.client import GitHubClient
from src.github.exceptions import GitHubError
from src.watermarks.store import format_timestamp

from .exceptions import RemoteQueryError
from .models import CommitRecord

logger = logging.getLogger(__name__)


class CommitScanner:
    """Finds commits that touched a file after a watermark.

    GitHub's ``since`` filter is applied to committer dates and is inclusive,
    so the result is filtered again on the author date with a strict
    comparison: a commit dated exactly at the watermark has already been
    published.
    """

    def __init__(self, github_client: GitHubClient, per_page: int = 100):
        self.github_client = github_client
        self.per_page = per_page

    async def scan(
        self, repo: RepoIdentifier, file_path: str, since: datetime
    ) -> list[CommitRecord]:
        """List commits touching ``file_path`` authored strictly after ``since``.

        All result pages are consumed before returning. Commits keep the
        host's order (newest first).

        Raises:
            RemoteQueryError: If the host call fails or returns malformed data
        """
        try:
            raw_commits = await self.github_client.list_commits(
                repo.owner, repo.name, file_path, since, per_page=self.per_page
            ).collect_all()
        except GitHubError as e:
            raise RemoteQueryError(repo, file_path, str(e)) from e

        commits: list[CommitRecord] = []
        for raw in raw_commits:
            try:
                record = CommitRecord.from_github(raw)
            except (KeyError, TypeError, ValueError) as e:
                raise RemoteQueryError(
                    repo, file_path, f"malformed commit payload: {e!r}"
                ) from e
            if record.author_date > since:
                commits.append(record)

        skipped = len(raw_commits) - len(commits)
        logger.debug(
            f"Scanned {repo}:{file_path} since {format_timestamp(since)}: "
            f"{len(raw_commits)} returned, {len(commits)} new, {skipped} filtered"
        )
        return commits
