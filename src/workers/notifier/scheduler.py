"""Cycle scheduler for the change notifier.

A cycle is one pass over every configured pair, in configuration order:
scan the source file, publish if anything is new, then advance that pair's
watermark. Cycles start on a periodic tick or on a manual trigger. Both feed
the same loop and every cycle runs under one lock, so two cycles never touch
the same pair at once. A trigger that arrives while a cycle is running is
coalesced into a single follow-up cycle.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from src.config.models import RepoPairConfig, WatermarkScope
from src.watermarks.exceptions import PersistenceError
from src.watermarks.store import GLOBAL_KEY, WatermarkStore, format_timestamp

from .exceptions import RemoteQueryError
from .models import CycleReport, PairOutcome, PairResult, SchedulerState
from .publisher import Publisher
from .scanner import CommitScanner

logger = logging.getLogger(__name__)

TRIGGER_SCHEDULED = "scheduled"
TRIGGER_MANUAL = "manual"
TRIGGER_STARTUP = "startup"

PUBLISHED_PREFIX = "published:"


def published_key(pair: RepoPairConfig) -> str:
    """Store key of the per-pair "published through" mark used in global scope."""
    return f"{PUBLISHED_PREFIX}{pair.key}"


class Scheduler:
    """Drives scan -> publish -> watermark cycles over the configured pairs."""

    def __init__(
        self,
        pairs: Sequence[RepoPairConfig],
        scanner: CommitScanner,
        publisher: Publisher,
        store: WatermarkStore,
        poll_interval_seconds: float,
        watermark_scope: WatermarkScope = WatermarkScope.PER_PAIR,
        check_on_startup: bool = False,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize scheduler.

        Args:
            pairs: Pairs to process, in order
            scanner: Commit scanner
            publisher: Pull request publisher
            store: Watermark store
            poll_interval_seconds: Delay between scheduled cycles
            watermark_scope: Per-pair watermarks or one shared watermark
            check_on_startup: Run a cycle as soon as ``run`` starts
            clock: Source of "now" for reports
        """
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be greater than zero")

        self.pairs = tuple(pairs)
        self.scanner = scanner
        self.publisher = publisher
        self.store = store
        self.poll_interval_seconds = poll_interval_seconds
        self.watermark_scope = watermark_scope
        self.check_on_startup = check_on_startup
        self._clock = clock or (lambda: datetime.now(UTC))

        self.state = SchedulerState.IDLE
        self.current_pair: RepoPairConfig | None = None
        self.last_report: CycleReport | None = None

        self._cycle_lock = asyncio.Lock()
        self._trigger_event = asyncio.Event()
        self._shutdown_event = asyncio.Event()

        self.stats: dict[str, Any] = {
            "total_cycles": 0,
            "pull_requests_opened": 0,
            "pair_failures": 0,
            "last_cycle_at": None,
            "last_error": None,
        }

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def trigger(self) -> None:
        """Request a cycle now (manual trigger)."""
        if self.shutdown_requested:
            logger.info("Shutdown in progress, ignoring manual trigger")
            return
        if self.cycle_in_progress:
            logger.info("Cycle in progress, manual check will run after it")
        else:
            logger.info("Manually triggering repository check...")
        self._trigger_event.set()

    def request_shutdown(self) -> None:
        """Stop scheduling; the in-flight cycle, if any, runs to completion."""
        if not self.shutdown_requested:
            logger.info("Shutting down scheduler...")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run cycles until shutdown is requested."""
        logger.info(
            f"Starting scheduler: {len(self.pairs)} pair(s), "
            f"interval {self.poll_interval_seconds:.0f}s, "
            f"watermark scope {self.watermark_scope.value}"
        )
        try:
            if self.check_on_startup and not self.shutdown_requested:
                await self.run_cycle(TRIGGER_STARTUP)

            while not self.shutdown_requested:
                trigger = await self._wait_for_trigger()
                if trigger is None:
                    break
                await self.run_cycle(trigger)
        finally:
            self.state = SchedulerState.STOPPED
            logger.info("Scheduler stopped.")

    async def _wait_for_trigger(self) -> str | None:
        """Wait for the next tick, manual trigger or shutdown.

        Returns:
            The trigger name, or None on shutdown
        """
        waiters = {
            asyncio.create_task(self._trigger_event.wait()),
            asyncio.create_task(self._shutdown_event.wait()),
        }
        try:
            await asyncio.wait(
                waiters,
                timeout=self.poll_interval_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if self.shutdown_requested:
            return None
        if self._trigger_event.is_set():
            self._trigger_event.clear()
            return TRIGGER_MANUAL
        return TRIGGER_SCHEDULED

    async def run_cycle(self, trigger: str = TRIGGER_MANUAL) -> CycleReport | None:
        """Run one full cycle over all pairs.

        Waits for any cycle already running. Returns None without doing
        anything once shutdown has been requested.
        """
        async with self._cycle_lock:
            if self.shutdown_requested:
                logger.info("Shutdown requested, not starting a new cycle")
                return None

            report = CycleReport(trigger=trigger, started_at=self._clock())
            logger.info(f"Checking repositories for updates ({trigger})...")

            shared_since: datetime | None = None
            if self.watermark_scope == WatermarkScope.GLOBAL:
                shared_since = self.store.load(GLOBAL_KEY)

            try:
                for pair in self.pairs:
                    report.results.append(await self._process_pair(pair, shared_since))

                if shared_since is not None:
                    await self._advance_shared_watermark(report)
            finally:
                self.state = SchedulerState.IDLE
                self.current_pair = None

            report.finished_at = self._clock()
            self._record(report)
            logger.info(f"Cycle finished: {report}")
            return report

    async def _process_pair(
        self, pair: RepoPairConfig, shared_since: datetime | None
    ) -> PairResult:
        """Scan, publish and advance the watermark for one pair.

        Every error is contained here so the remaining pairs still run.
        """
        self.current_pair = pair
        result = PairResult(pair=pair, outcome=PairOutcome.NO_CHANGES)
        try:
            if shared_since is None:
                since = self.store.load(pair.key)
            else:
                published_through = self.store.peek(published_key(pair))
                since = (
                    max(shared_since, published_through)
                    if published_through is not None
                    else shared_since
                )
            result.since = since

            self.state = SchedulerState.SCANNING
            logger.info(
                f"Checking repo {pair.source} for changes in {pair.file_path} "
                f"since {format_timestamp(since)}..."
            )
            try:
                result.commits = await self.scanner.scan(
                    pair.source, pair.file_path, since
                )
            except RemoteQueryError as e:
                logger.error(f"Error checking repo {pair.source}: {e}")
                result.outcome = PairOutcome.SCAN_FAILED
                result.error = str(e)
                return result

            if not result.commits:
                logger.info(
                    f"No new commits found for {pair.file_path} in repo {pair.source}."
                )
                return result

            logger.info(
                f"Found {len(result.commits)} new commit(s) in {pair.file_path}. "
                f"Creating pull request in {pair.target}..."
            )
            self.state = SchedulerState.PUBLISHING
            publish_result = await self.publisher.publish(
                pair.target,
                pair.file_path,
                pair.pull_request_base_branch,
                result.commits,
            )
            result.publish_result = publish_result
            if not publish_result.success:
                logger.error(
                    f"Error creating pull request for repo {pair.target}: "
                    f"{publish_result.reason}"
                )
                result.outcome = PairOutcome.PUBLISH_FAILED
                result.error = publish_result.reason
                return result

            logger.info(f"Created pull request for repo {pair.target} ({pair})")
            result.outcome = PairOutcome.PUBLISHED

            key = pair.key if shared_since is None else published_key(pair)
            try:
                watermark = await self.store.advance(
                    key, max(commit.author_date for commit in result.commits)
                )
            except PersistenceError as e:
                logger.error(f"Pull request opened but watermark not saved: {e}")
                result.outcome = PairOutcome.PERSIST_FAILED
                result.error = str(e)
            else:
                if shared_since is None:
                    result.watermark = watermark

        except Exception as e:
            logger.exception(f"Unexpected error processing {pair}: {e}")
            result.outcome = PairOutcome.ERROR
            result.error = str(e)

        return result

    async def _advance_shared_watermark(self, report: CycleReport) -> None:
        """Advance the global watermark once every pair in the cycle succeeded.

        While some pair keeps failing the shared value stays put, so that pair
        is retried from it. Pairs that did publish are kept from publishing
        the same commits again by their own "published through" mark.
        """
        newest = [
            result.newest_commit_at
            for result in report.results
            if result.outcome == PairOutcome.PUBLISHED and result.newest_commit_at
        ]
        if not newest:
            return
        if report.has_failures:
            logger.warning(
                "Not advancing the shared watermark: "
                f"{report.failures} pair(s) failed this cycle"
            )
            return
        try:
            watermark = await self.store.advance(GLOBAL_KEY, max(newest))
        except PersistenceError as e:
            logger.error(f"Pull requests opened but shared watermark not saved: {e}")
            for result in report.results:
                if result.outcome == PairOutcome.PUBLISHED:
                    result.outcome = PairOutcome.PERSIST_FAILED
                    result.error = str(e)
            return
        for result in report.results:
            if result.outcome == PairOutcome.PUBLISHED:
                result.watermark = watermark

    def _record(self, report: CycleReport) -> None:
        self.last_report = report
        self.stats["total_cycles"] += 1
        self.stats["pull_requests_opened"] += report.published
        self.stats["pair_failures"] += report.failures
        self.stats["last_cycle_at"] = report.started_at
        failed = [result for result in report.results if result.outcome.is_failure]
        if failed:
            self.stats["last_error"] = {
                "pair": str(failed[-1].pair),
                "message": failed[-1].error,
                "timestamp": report.finished_at,
            }
