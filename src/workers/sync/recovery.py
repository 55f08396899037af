"""Stuck-job detection and recovery.

A job is stuck when its ledger row has stayed ``running`` without an
update for longer than the threshold. The row's ``updated_at`` is the only
staleness signal; workers never report their own death.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.config.settings import SyncSettings
from src.database.connection import DatabaseConnectionManager
from src.models import SyncJobState, utcnow
from src.repositories import RepositoryRepository, SyncJobRepository

from .bootstrap_workflow import BootstrapOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    marked: int = 0
    restarted: int = 0


@dataclass
class StuckJob:
    """Operator view of a stuck ledger row."""

    lock_key: str
    repository_id: int | None
    state: SyncJobState
    current_step: str | None
    last_error: str | None
    updated_at: datetime
    stuck_for_ms: int


class StuckJobRecovery:
    """Fails stuck jobs and, optionally, restarts their bootstrap."""

    def __init__(
        self,
        connection_manager: DatabaseConnectionManager,
        orchestrator: BootstrapOrchestrator,
        settings: SyncSettings | None = None,
    ):
        self.connection_manager = connection_manager
        self.orchestrator = orchestrator
        self.settings = settings or SyncSettings()

    def _cutoff(self, now: datetime, threshold_minutes: int | None) -> datetime:
        minutes = threshold_minutes or self.settings.stuck_job_minutes
        return now - timedelta(minutes=minutes)

    async def list_stuck_jobs(
        self, threshold_minutes: int | None = None, now: datetime | None = None
    ) -> list[StuckJob]:
        """Running jobs past the threshold, longest stuck first."""
        now = now or utcnow()
        async with self.connection_manager.get_session() as session:
            jobs = await SyncJobRepository(session).list_stuck(
                self._cutoff(now, threshold_minutes)
            )
            return [
                StuckJob(
                    lock_key=job.lock_key,
                    repository_id=job.repository_id,
                    state=job.state,
                    current_step=job.current_step,
                    last_error=job.last_error,
                    updated_at=job.updated_at,
                    stuck_for_ms=int((now - job.updated_at).total_seconds() * 1000),
                )
                for job in jobs
            ]

    async def recover_stuck_jobs(
        self,
        threshold_minutes: int | None = None,
        restart: bool | None = None,
        now: datetime | None = None,
    ) -> RecoveryResult:
        """Mark stuck jobs failed and re-dispatch the ones that can restart.

        A job restarts only if it belongs to a repository that is still
        mirrored. Restarted rows are reset to ``pending`` with zeroed
        progress before the bootstrap is dispatched again.
        """
        now = now or utcnow()
        should_restart = self.settings.restart_stuck_jobs if restart is None else restart
        result = RecoveryResult()
        to_dispatch: list[str] = []

        async with self.connection_manager.get_session() as session:
            ledger = SyncJobRepository(session)
            repositories = RepositoryRepository(session)

            for job in await ledger.list_stuck(self._cutoff(now, threshold_minutes)):
                stuck_minutes = round((now - job.updated_at).total_seconds() / 60)
                await ledger.mark(
                    job.lock_key,
                    SyncJobState.FAILED,
                    f"Marked as stuck by admin (no update for {stuck_minutes}m)",
                )
                result.marked += 1
                logger.warning(
                    f"Sync job {job.lock_key} stuck for {stuck_minutes}m, marked failed",
                    extra={"lock_key": job.lock_key, "stuck_minutes": stuck_minutes},
                )

                if not should_restart or job.repository_id is None:
                    continue
                if await repositories.get_by_github_id(job.repository_id) is None:
                    continue
                await ledger.reset_to_pending(job.lock_key)
                to_dispatch.append(job.lock_key)
                result.restarted += 1

        for lock_key in to_dispatch:
            self.orchestrator.dispatch(lock_key)

        if result.marked:
            logger.info(
                f"Stuck-job sweep: {result.marked} marked, {result.restarted} restarted"
            )
        return result
