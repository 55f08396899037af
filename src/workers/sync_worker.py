"""Sync sweep worker.

Runs the periodic maintenance of the mirror: stuck-job recovery, re-dispatch
of rate-limited jobs whose back-off has elapsed, and refresh of stale
repository permissions.
"""

import asyncio
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import Any

from src.config.loader import ConfigurationLoader
from src.config.models import Config
from src.database.connection import DatabaseConnectionManager
from src.github import (
    GitHubAppAuth,
    GitHubClientConfig,
    OAuthTokenProvider,
    TokenResolver,
)
from src.permissions import PermissionSynchronizer
from src.repositories import DatabaseOAuthAccountStore

from .sync import (
    AsyncioScheduler,
    BootstrapOrchestrator,
    GitHubClientProvider,
    NoOpProjectionRefresher,
    StuckJobRecovery,
)

logger = logging.getLogger(__name__)


class SyncWorker:
    """Owns the sync engine components and runs the sweep loop."""

    def __init__(self, config_path: str | None = None):
        """Initialize sync worker.

        Args:
            config_path: Optional path to a YAML configuration file
        """
        self.config_path = config_path
        self.config: Config | None = None

        self.connection_manager: DatabaseConnectionManager | None = None
        self.scheduler: AsyncioScheduler | None = None
        self.orchestrator: BootstrapOrchestrator | None = None
        self.recovery: StuckJobRecovery | None = None
        self.permissions: PermissionSynchronizer | None = None

        self.running = False
        self.shutdown_event = asyncio.Event()

        self.stats: dict[str, Any] = {
            "worker_started_at": None,
            "total_sweeps": 0,
            "failed_sweeps": 0,
            "last_sweep_at": None,
            "last_error": None,
        }

    async def initialize(self) -> None:
        """Load configuration and wire the sync engine."""
        logger.info("Initializing sync worker...")

        try:
            loader = ConfigurationLoader()
            if self.config_path:
                self.config = loader.load_from_file(self.config_path)
            else:
                self.config = loader.load_default()

            self.connection_manager = DatabaseConnectionManager(self.config.database)
            app_settings = self.config.github_app

            app_auth = (
                GitHubAppAuth(
                    app_settings.app_id,
                    app_settings.private_key,
                    base_url=app_settings.api_base_url,
                )
                if app_settings.has_app_credentials
                else None
            )
            oauth = OAuthTokenProvider(
                DatabaseOAuthAccountStore(self.connection_manager),
                app_settings.client_id,
                app_settings.client_secret,
            )
            clients = GitHubClientProvider(
                TokenResolver(oauth, app_auth),
                GitHubClientConfig(base_url=app_settings.api_base_url),
            )

            self.scheduler = AsyncioScheduler()
            self.orchestrator = BootstrapOrchestrator(
                self.connection_manager,
                clients,
                self.scheduler,
                NoOpProjectionRefresher(),
                self.config.sync,
            )
            self.recovery = StuckJobRecovery(
                self.connection_manager, self.orchestrator, self.config.sync
            )
            self.permissions = PermissionSynchronizer(
                self.connection_manager, oauth, self.config.sync
            )

            if app_auth is None:
                logger.warning("GitHub App credentials not configured, only OAuth tokens usable")

            self.stats["worker_started_at"] = datetime.now(UTC)
            logger.info("Sync worker initialized")

        except Exception as e:
            logger.error(f"Failed to initialize sync worker: {e}")
            await self.cleanup()
            raise

    async def sweep(self) -> dict[str, int]:
        """Run one maintenance pass."""
        if not self.recovery or not self.orchestrator or not self.permissions:
            raise RuntimeError("Worker not initialized. Call initialize() first.")

        recovered = await self.recovery.recover_stuck_jobs()
        retried = await self.orchestrator.redispatch_due_retries()
        permissions = await self.permissions.sync_stale_permissions()

        summary = {
            "stuck_marked": recovered.marked,
            "stuck_restarted": recovered.restarted,
            "retries_dispatched": retried,
            "permission_users_synced": permissions.synced_users,
        }
        logger.info(f"Sweep completed: {summary}", extra=summary)
        return summary

    async def run(self) -> None:
        """Sweep on an interval until a shutdown signal arrives."""
        if not self.config:
            raise RuntimeError("Worker not initialized. Call initialize() first.")

        self.running = True
        self._setup_signal_handlers()
        interval = self.config.sync.sweep_interval_seconds
        logger.info(f"Starting sweep loop (interval: {interval}s)")

        try:
            while self.running and not self.shutdown_event.is_set():
                await self._run_sweep()

                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    continue
        except asyncio.CancelledError:
            logger.info("Worker cancelled")
        finally:
            self.running = False
            logger.info("Sync worker stopped")

    async def run_once(self) -> None:
        """Single sweep, then wait for the work it dispatched."""
        await self._run_sweep()
        if self.scheduler:
            await self.scheduler.wait_idle()

    async def _run_sweep(self) -> None:
        cycle_start = datetime.now(UTC)
        self.stats["total_sweeps"] += 1
        try:
            await self.sweep()
            self.stats["last_sweep_at"] = cycle_start
        except Exception as e:
            # One failed sweep must not stop the loop
            logger.error(f"Sweep failed: {e}", exc_info=True)
            self.stats["failed_sweeps"] += 1
            self.stats["last_error"] = {"message": str(e), "timestamp": cycle_start}

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""

        def signal_handler(sig: int, frame: Any) -> None:
            logger.info(f"Received signal {sig}, initiating shutdown...")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def shutdown(self) -> None:
        """Initiate graceful shutdown."""
        logger.info("Shutting down sync worker...")
        self.shutdown_event.set()

    async def cleanup(self) -> None:
        """Cancel background work and release the database engine."""
        if self.scheduler:
            await self.scheduler.close()
        if self.connection_manager:
            await self.connection_manager.close()
        logger.info("Cleanup completed")


async def main() -> None:
    """Main entry point for the sync worker."""
    import argparse

    parser = argparse.ArgumentParser(description="GitHub mirror sync worker")
    parser.add_argument("--config", help="Configuration file path")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    worker = SyncWorker(config_path=args.config)

    try:
        await worker.initialize()
        if args.once:
            await worker.run_once()
        else:
            await worker.run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}")
        sys.exit(1)
    finally:
        await worker.cleanup()


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
