"""File-backed watermark store.

Each watermark lives in its own file under the state directory and holds a
single ISO-8601 timestamp (offset and microseconds included, so a reload
yields the identical instant). The process-wide watermark uses the key
``since`` and is stored as ``since.timestamp``.

Delivery is at-least-once: a watermark is only advanced after a publish
succeeded. If the process dies between a successful publish and the save,
the next run re-scans from the old value and may open a duplicate pull
request.
"""

import asyncio
import hashlib
import logging
import os
import re
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

GLOBAL_KEY = "since"
TIMESTAMP_SUFFIX = ".timestamp"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(instant: datetime) -> str:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC).isoformat()


class WatermarkStore:
    """Durable "last checked" instants, one per key.

    ``load`` and ``save`` are the raw storage primitives. ``advance`` is the
    guarded read-modify-write the scheduler uses after a successful publish;
    it never moves a watermark backwards.
    """

    def __init__(
        self,
        state_dir: str | Path,
        initial_since: datetime | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            state_dir: Directory holding the watermark files
            initial_since: Default watermark for keys never saved before;
                the current time when None
            clock: Source of "now", injectable for tests
        """
        self.state_dir = Path(state_dir)
        self.initial_since = initial_since
        self._clock = clock
        self._cache: dict[str, datetime] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def path_for(self, key: str) -> Path:
        """File holding the watermark for ``key``."""
        if key == GLOBAL_KEY:
            return self.state_dir / f"{GLOBAL_KEY}{TIMESTAMP_SUFFIX}"
        safe = _UNSAFE_CHARS.sub("-", key).strip("-")[:80] or "pair"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
        return self.state_dir / f"{safe}-{digest}{TIMESTAMP_SUFFIX}"

    def _default(self) -> datetime:
        if self.initial_since is not None:
            return self.initial_since.astimezone(UTC)
        return self._clock().astimezone(UTC)

    def _read(self, key: str) -> datetime | None:
        """Read the record for ``key``; None when no record exists.

        Raises:
            OSError: If an existing record cannot be read
            ValueError: If the record does not hold a timestamp
        """
        try:
            raw = self.path_for(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return parse_timestamp(raw)

    def load(self, key: str) -> datetime:
        """Return the recorded watermark for ``key``, or the default.

        A missing or unreadable record is never fatal. When the record is
        missing or corrupt the default is persisted right away so that a
        restart does not move it forward; failing to do so is only logged.
        A record that exists but cannot be read is left alone and the
        default is only used for this run.
        """
        if key in self._cache:
            return self._cache[key]

        path = self.path_for(key)
        try:
            instant = self._read(key)
        except ValueError as e:
            logger.warning(f"Corrupt watermark {path}: {e}. Using default instead.")
            instant = None
        except OSError as e:
            instant = self._default()
            logger.warning(
                f"Could not read watermark {path}: {e}. Using "
                f"{format_timestamp(instant)} for now, record left untouched."
            )
            self._cache[key] = instant
            return instant

        if instant is None:
            if not path.exists():
                logger.info(f"No watermark recorded for {key!r}, creating default")
            instant = self._default()
            try:
                self.save(key, instant)
            except PersistenceError as e:
                logger.warning(f"Could not persist default watermark: {e}")
        else:
            logger.debug(f"Loaded watermark {key!r} = {format_timestamp(instant)}")

        self._cache[key] = instant
        return instant

    def peek(self, key: str) -> datetime | None:
        """Return the recorded watermark for ``key`` without creating one.

        Unlike ``load`` there is no default: a missing or unreadable record
        yields None and nothing is written.
        """
        if key in self._cache:
            return self._cache[key]
        try:
            instant = self._read(key)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read watermark {self.path_for(key)}: {e}")
            return None
        if instant is not None:
            self._cache[key] = instant
        return instant

    def save(self, key: str, instant: datetime) -> None:
        """Durably persist ``instant`` for ``key``.

        The value is written to a temporary file in the same directory and
        moved into place, so readers see either the old or the new value.

        Raises:
            PersistenceError: If the value cannot be written
        """
        path = self.path_for(key)
        data = format_timestamp(instant)
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(
                f"Error writing watermark {path}: {e}", key=key, path=path
            ) from e

        self._cache[key] = parse_timestamp(data)
        logger.info(f"Updated watermark {key!r}: {data}")

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def advance(self, key: str, instant: datetime) -> datetime:
        """Move the watermark for ``key`` forward to ``instant``.

        A value older than or equal to the current one leaves the record
        untouched. A key with no record yet is set to ``instant`` as is.

        Returns:
            The watermark in effect afterwards

        Raises:
            PersistenceError: If the new value cannot be written
        """
        async with self._lock_for(key):
            current = self.peek(key)
            if current is not None and instant <= current:
                logger.debug(
                    f"Watermark {key!r} already at {format_timestamp(current)}, "
                    f"not moving back to {format_timestamp(instant)}"
                )
                return current
            self.save(key, instant)
            return self._cache[key]
