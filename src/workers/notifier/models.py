"""Data models for the change notifier.

These are in-memory projections only: commits are read from the source
repository, turned into a pull request body and dropped. The only state that
outlives a cycle is the watermark kept by ``src.watermarks``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.config.models import RepoPairConfig
from src.watermarks.store import parse_timestamp


class SchedulerState(str, Enum):
    """What the scheduler is doing right now."""

    IDLE = "idle"
    SCANNING = "scanning"
    PUBLISHING = "publishing"
    STOPPED = "stopped"


class PublishStep(str, Enum):
    """Ordered steps of the publish workflow."""

    RESOLVE_BASE_BRANCH = "resolve_base_branch"
    CREATE_BRANCH = "create_branch"
    WRITE_NOTIFICATION_FILE = "write_notification_file"
    OPEN_PULL_REQUEST = "open_pull_request"


class PairOutcome(str, Enum):
    """Result of processing one pair within a cycle."""

    NO_CHANGES = "no_changes"
    PUBLISHED = "published"
    SCAN_FAILED = "scan_failed"
    PUBLISH_FAILED = "publish_failed"
    PERSIST_FAILED = "persist_failed"
    ERROR = "error"

    @property
    def is_failure(self) -> bool:
        return self not in (PairOutcome.NO_CHANGES, PairOutcome.PUBLISHED)


@dataclass(frozen=True)
class CommitRecord:
    """A commit that touched the watched file."""

    sha: str
    message: str
    author_date: datetime
    permalink: str

    @property
    def link_text(self) -> str:
        """Full commit message collapsed onto one line."""
        return " ".join(self.message.split())

    @classmethod
    def from_github(cls, data: dict[str, Any]) -> "CommitRecord":
        """Build a record from a GitHub commit object.

        Raises:
            KeyError: If a required field is missing
            ValueError: If the author date cannot be parsed
        """
        commit = data["commit"]
        author_date = commit["author"]["date"]
        if not isinstance(author_date, str):
            raise ValueError(f"Invalid author date: {author_date!r}")
        return cls(
            sha=str(data.get("sha", "")),
            message=str(commit.get("message") or ""),
            author_date=parse_timestamp(author_date),
            permalink=str(data["html_url"]),
        )


@dataclass(frozen=True)
class PublishResult:
    """Outcome of one publish attempt."""

    success: bool
    branch_name: str | None = None
    pull_request_url: str | None = None
    failed_step: PublishStep | None = None
    reason: str | None = None

    @classmethod
    def ok(cls, branch_name: str, pull_request_url: str | None) -> "PublishResult":
        return cls(
            success=True, branch_name=branch_name, pull_request_url=pull_request_url
        )

    @classmethod
    def failure(
        cls, step: PublishStep, reason: str, branch_name: str | None = None
    ) -> "PublishResult":
        return cls(
            success=False, branch_name=branch_name, failed_step=step, reason=reason
        )


@dataclass
class PairResult:
    """What happened to one pair in one cycle."""

    pair: RepoPairConfig
    outcome: PairOutcome
    since: datetime | None = None
    commits: list[CommitRecord] = field(default_factory=list)
    publish_result: PublishResult | None = None
    watermark: datetime | None = None
    error: str | None = None

    @property
    def newest_commit_at(self) -> datetime | None:
        if not self.commits:
            return None
        return max(commit.author_date for commit in self.commits)


@dataclass
class CycleReport:
    """Summary of one pass over all configured pairs."""

    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    results: list[PairResult] = field(default_factory=list)

    def count(self, outcome: PairOutcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def published(self) -> int:
        return self.count(PairOutcome.PUBLISHED)

    @property
    def failures(self) -> int:
        return sum(1 for result in self.results if result.outcome.is_failure)

    @property
    def has_failures(self) -> bool:
        return self.failures > 0

    def __str__(self) -> str:
        return (
            f"CycleReport(trigger={self.trigger}, pairs={len(self.results)}, "
            f"published={self.published}, "
            f"unchanged={self.count(PairOutcome.NO_CHANGES)}, "
            f"failed={self.failures})"
        )
