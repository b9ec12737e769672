"""Publishes change notifications as pull requests in a target repository.

The workflow is strictly ordered and every step depends on the previous one:

1. resolve the tip SHA of the base branch
2. create ``<slug>-update-<YYYYmmdd-HHMMSS>`` at that SHA
3. write ``<slug>-updates.md`` on the new branch
4. open a pull request from the new branch into the base branch

The first failing step stops the workflow. Anything already created (for
example a branch without a pull request) is left in place; the next cycle
starts over on a fresh branch name.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterator, Sequence
from datetime import UTC, datetime

from src.config.models import RepoIdentifier
from src.github.client import GitHubClient
from src.github.exceptions import GitHubError

from .exceptions import PublishStepError
from .models import CommitRecord, PublishResult, PublishStep

logger = logging.getLogger(__name__)

BRANCH_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
COMMIT_DATE_FORMAT = "%a, %d %b %Y %H:%M:%S %Z"


def slugify_path(file_path: str) -> str:
    return file_path.strip("/").replace("/", "-")


def branch_name_for(file_path: str, stamp: str) -> str:
    return f"{slugify_path(file_path)}-update-{stamp}"


def notification_file_for(file_path: str) -> str:
    return f"{slugify_path(file_path)}-updates.md"


def pull_request_title(file_path: str) -> str:
    return f"Update: Changes in {file_path}"


def file_commit_message(file_path: str) -> str:
    return f"Notify about changes to {file_path}"


def format_commit_date(instant: datetime) -> str:
    return instant.astimezone(UTC).strftime(COMMIT_DATE_FORMAT)


def compose_body(file_path: str, commits: Sequence[CommitRecord]) -> str:
    """Markdown body shared by the notification file and the pull request."""
    lines = [
        f"This pull request notifies that there have been changes to "
        f"`{file_path}` in the source repository.",
        "",
    ]
    for commit in commits:
        lines.append(
            f"- [{commit.link_text}]({commit.permalink}) - "
            f"{format_commit_date(commit.author_date)}"
        )
    return "\n".join(lines) + "\n"


class Publisher:
    """Runs the publish workflow against a GitHub repository."""

    def __init__(
        self,
        github_client: GitHubClient,
        clock: Callable[[], datetime] | None = None,
    ):
        self.github_client = github_client
        self._clock = clock or (lambda: datetime.now(UTC))
        # Last branch name handed out per file slug
        self._last_branch: dict[str, str] = {}

    async def _next_branch_name(self, file_path: str) -> str:
        """Timestamped branch name, never repeating one already used.

        Two publishes for the same file within one wall-clock second wait
        for the next second instead of colliding on the ref.
        """
        slug = slugify_path(file_path)
        while True:
            now = self._clock()
            name = branch_name_for(file_path, now.strftime(BRANCH_TIMESTAMP_FORMAT))
            if self._last_branch.get(slug) != name:
                self._last_branch[slug] = name
                return name
            await asyncio.sleep(1 - now.microsecond / 1_000_000 + 0.001)

    @contextlib.contextmanager
    def _step(
        self, step: PublishStep, description: str, branch_name: str | None = None
    ) -> Iterator[None]:
        logger.debug(f"Publish step {step.value}: {description}")
        try:
            yield
        except GitHubError as e:
            raise PublishStepError(
                step, f"{description}: {e}", branch_name=branch_name
            ) from e

    async def publish(
        self,
        target: RepoIdentifier,
        file_path: str,
        base_branch: str,
        commits: Sequence[CommitRecord],
    ) -> PublishResult:
        """Publish ``commits`` as a pull request in ``target``.

        Returns:
            Success with the branch and pull request URL, or a failure naming
            the step that broke

        Raises:
            ValueError: If ``commits`` is empty
        """
        if not commits:
            raise ValueError("publish requires at least one commit")

        owner, repo = target.owner, target.name
        branch_name: str | None = None

        try:
            with self._step(
                PublishStep.RESOLVE_BASE_BRANCH,
                f"could not resolve base branch '{base_branch}' in {target}",
            ):
                base_sha = await self.github_client.get_ref(owner, repo, base_branch)

            branch_name = await self._next_branch_name(file_path)
            with self._step(
                PublishStep.CREATE_BRANCH,
                f"could not create branch '{branch_name}' in {target}",
            ):
                await self.github_client.create_ref(owner, repo, branch_name, base_sha)

            body = compose_body(file_path, commits)
            notification_file = notification_file_for(file_path)
            with self._step(
                PublishStep.WRITE_NOTIFICATION_FILE,
                f"could not write {notification_file} on '{branch_name}' in {target}",
                branch_name,
            ):
                await self.github_client.create_or_update_file(
                    owner,
                    repo,
                    notification_file,
                    body,
                    branch_name,
                    file_commit_message(file_path),
                )

            with self._step(
                PublishStep.OPEN_PULL_REQUEST,
                f"could not open pull request '{branch_name}' -> '{base_branch}' "
                f"in {target}",
                branch_name,
            ):
                pull_request = await self.github_client.create_pull_request(
                    owner,
                    repo,
                    head=branch_name,
                    base=base_branch,
                    title=pull_request_title(file_path),
                    body=body,
                )

        except PublishStepError as e:
            logger.error(f"Publishing to {target} aborted: {e}")
            return PublishResult.failure(e.step, str(e), branch_name=e.branch_name)

        pull_request_url = (pull_request or {}).get("html_url")
        logger.info(
            f"Opened pull request {pull_request_url or branch_name} in {target} "
            f"for {len(commits)} commit(s) to {file_path}"
        )
        return PublishResult.ok(branch_name, pull_request_url)
