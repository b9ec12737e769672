"""Recoverable per-pair errors raised by the change notifier.

Both are caught at the pair boundary by the scheduler; neither advances the
pair's watermark.
"""

from src.config.models import RepoIdentifier

from .models import PublishStep


class NotifierError(Exception):
    """Base exception for change notifier errors."""


class RemoteQueryError(NotifierError):
    """Listing commits for the watched file failed."""

    def __init__(self, repo: RepoIdentifier, file_path: str, reason: str):
        super().__init__(
            f"Failed to list commits for {file_path} in {repo}: {reason}"
        )
        self.repo = repo
        self.file_path = file_path
        self.reason = reason


class PublishStepError(NotifierError):
    """One step of the publish workflow failed; later steps were skipped."""

    def __init__(
        self,
        step: PublishStep,
        reason: str,
        branch_name: str | None = None,
    ):
        super().__init__(f"{step.value} failed: {reason}")
        self.step = step
        self.reason = reason
        self.branch_name = branch_name
