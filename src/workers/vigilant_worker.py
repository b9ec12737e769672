"""Vigilant worker: scheduled change notification between repositories.

This module wires configuration, credentials, the GitHub client and the
change notifier together, installs the process signals and runs the
scheduler until it is told to stop.

Signals:
    SIGUSR1: run a repository check now
    SIGTERM, SIGINT: finish the in-flight cycle, then exit
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import Any

from src.config.exceptions import ConfigurationError
from src.config.loader import load_config
from src.config.models import Config
from src.github.auth import TokenAuth
from src.github.client import GitHubClient, GitHubClientConfig
from src.github.exceptions import GitHubAuthenticationError
from src.watermarks.store import WatermarkStore

from .notifier.models import CycleReport
from .notifier.publisher import Publisher
from .notifier.scanner import CommitScanner
from .notifier.scheduler import Scheduler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class VigilantWorker:
    """Owns the lifecycle of one Vigilant process.

    Manages:
    - Configuration loading and validation
    - Credential and GitHub client setup
    - Watermark state directory
    - Scheduler execution and signal-driven shutdown
    """

    def __init__(
        self,
        config_path: str | None = None,
        config: Config | None = None,
    ):
        """Initialize the worker.

        Args:
            config_path: Optional path to configuration file
            config: Already loaded configuration; skips file loading
        """
        self.config_path = config_path
        self.config: Config | None = config

        self.github_client: GitHubClient | None = None
        self.store: WatermarkStore | None = None
        self.scheduler: Scheduler | None = None

        self.stats: dict[str, Any] = {"worker_started_at": None}

    async def initialize(self) -> None:
        """Initialize worker components.

        Raises:
            ConfigurationError: If configuration is missing or invalid
            GitHubAuthenticationError: If no GitHub token is available
        """
        logger.info("Initializing Vigilant worker...")

        try:
            self._load_configuration()
            self._initialize_github_client()
            self._initialize_state()
            self._create_scheduler()

            self.stats["worker_started_at"] = datetime.now(UTC)
            logger.info("Vigilant worker initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Vigilant worker: {e}")
            await self.cleanup()
            raise

    def _load_configuration(self) -> None:
        if self.config is None:
            self.config = load_config(self.config_path)

        logger.info(
            f"Configuration loaded: {len(self.config.repos)} repo pair(s), "
            f"poll interval {self.config.poll_interval} minute(s)"
        )

    def _initialize_github_client(self) -> None:
        if not self.config:
            raise RuntimeError("Configuration not loaded")

        settings = self.config.github
        auth = TokenAuth(settings.token) if settings.token else TokenAuth.from_env()

        self.github_client = GitHubClient(
            auth=auth,
            config=GitHubClientConfig(
                base_url=settings.base_url,
                timeout=settings.timeout,
                rate_limit_buffer=settings.rate_limit_buffer,
            ),
        )
        logger.info(f"GitHub client configured for {settings.base_url}")

    def _initialize_state(self) -> None:
        if not self.config:
            raise RuntimeError("Configuration not loaded")

        state_dir = self.config.resolved_state_dir
        try:
            state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to create state directory {state_dir}: {e}"
            ) from e

        self.store = WatermarkStore(state_dir, initial_since=self.config.initial_since)
        logger.info(f"Watermarks stored in {state_dir}")

    def _create_scheduler(self) -> None:
        if not self.config or not self.github_client or not self.store:
            raise RuntimeError("Required components not initialized")

        self.scheduler = Scheduler(
            pairs=self.config.repos,
            scanner=CommitScanner(self.github_client),
            publisher=Publisher(self.github_client),
            store=self.store,
            poll_interval_seconds=self.config.poll_interval_seconds,
            watermark_scope=self.config.watermark_scope,
            check_on_startup=self.config.check_on_startup,
        )

    async def run(self) -> None:
        """Run the scheduler until a termination signal arrives."""
        if not self.scheduler:
            raise RuntimeError("Worker not initialized. Call initialize() first.")

        logger.info("Starting Vigilant worker...")
        self._setup_signal_handlers()
        try:
            await self.scheduler.run()
        finally:
            self._remove_signal_handlers()
            logger.info("Vigilant worker stopped")

    async def run_once(self) -> CycleReport | None:
        """Run a single cycle and return its report."""
        if not self.scheduler:
            raise RuntimeError("Worker not initialized. Call initialize() first.")
        return await self.scheduler.run_cycle()

    def _setup_signal_handlers(self) -> None:
        """Route SIGUSR1 to a manual check and SIGTERM/SIGINT to shutdown."""
        scheduler = self.scheduler
        if scheduler is None:
            return
        loop = asyncio.get_running_loop()

        def on_manual_trigger() -> None:
            logger.info("Received SIGUSR1, manually triggering repository check...")
            scheduler.trigger()

        def on_terminate(sig: signal.Signals) -> None:
            logger.info(f"Received {sig.name}, shutting down...")
            scheduler.request_shutdown()

        try:
            loop.add_signal_handler(signal.SIGUSR1, on_manual_trigger)
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, on_terminate, sig)
        except (NotImplementedError, AttributeError):
            logger.warning("Signal handlers not supported on this platform")

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError, AttributeError):
            for sig in (signal.SIGUSR1, signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)

    async def shutdown(self) -> None:
        """Initiate graceful shutdown."""
        if self.scheduler:
            self.scheduler.request_shutdown()

    async def cleanup(self) -> None:
        """Clean up resources."""
        if self.github_client:
            await self.github_client.close()
        logger.info("Cleanup completed")

    def get_status(self) -> dict[str, Any]:
        """Worker and scheduler statistics."""
        status: dict[str, Any] = {"worker": dict(self.stats)}
        if self.scheduler:
            status["scheduler"] = {
                "state": self.scheduler.state.value,
                "current_pair": str(self.scheduler.current_pair)
                if self.scheduler.current_pair
                else None,
                "shutdown_requested": self.scheduler.shutdown_requested,
                **self.scheduler.stats,
            }
        return status


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch files in source repositories and open pull requests "
        "in target repositories when they change"
    )
    parser.add_argument("--config", help="Configuration file path")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (defaults to the configured log_level)",
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single check and exit"
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the Vigilant worker."""
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"Error loading config: {e}")
        return 1

    if not args.log_level:
        logging.getLogger().setLevel(config.log_level.value)

    worker = VigilantWorker(config_path=args.config, config=config)
    try:
        await worker.initialize()
        if args.once:
            report = await worker.run_once()
            return 1 if report is not None and report.has_failures else 0
        await worker.run()
    except (ConfigurationError, GitHubAuthenticationError) as e:
        logger.error(f"Vigilant failed to start: {e}")
        return 1
    finally:
        await worker.cleanup()
    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
