"""Watermark persistence exceptions."""

from pathlib import Path


class PersistenceError(Exception):
    """Raised when a watermark cannot be written to durable storage.

    Recoverable: the in-memory value is left unchanged, so the next cycle
    re-scans from the stale watermark and may publish a duplicate.
    """

    def __init__(self, message: str, key: str, path: Path | None = None):
        super().__init__(message)
        self.key = key
        self.path = path
