"""SyncJob ledger repository.

All job state lives in rows; transitions are read-compare-write against the
row (``claim`` is a conditional UPDATE), never held in worker memory.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import (
    SyncJob,
    SyncJobState,
    SyncJobType,
    SyncScopeType,
    SyncTriggerReason,
    utcnow,
)

from .base import BaseRepository

logger = logging.getLogger(__name__)

CLAIMABLE_STATES = (SyncJobState.PENDING, SyncJobState.RETRY)


class SyncJobRepository(BaseRepository[SyncJob]):
    """Repository for SyncJob ledger operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, SyncJob)

    async def get_by_lock_key(self, lock_key: str) -> SyncJob | None:
        """Get the ledger row for a lock key."""
        return await self.get_one_by(lock_key=lock_key)

    async def create_if_absent(
        self,
        lock_key: str,
        installation_id: int,
        repository_id: int | None,
        job_type: SyncJobType = SyncJobType.BACKFILL,
        scope_type: SyncScopeType = SyncScopeType.REPOSITORY,
        trigger_reason: SyncTriggerReason = SyncTriggerReason.REPO_ADDED,
        entity_type: str | None = None,
    ) -> tuple[SyncJob, bool]:
        """Create a pending job unless one already exists for ``lock_key``.

        Returns:
            The job and whether it was created by this call
        """
        existing = await self.get_by_lock_key(lock_key)
        if existing is not None:
            return existing, False

        job = await self.create(
            lock_key=lock_key,
            job_type=job_type,
            scope_type=scope_type,
            trigger_reason=trigger_reason,
            installation_id=installation_id,
            repository_id=repository_id,
            entity_type=entity_type,
            state=SyncJobState.PENDING,
            attempt_count=0,
            completed_steps=[],
            items_fetched=0,
            journal={},
        )
        return job, True

    async def claim(self, lock_key: str) -> bool:
        """Atomically move a pending or retry job to running.

        Returns:
            True if this caller won the claim
        """
        result = await self.session.execute(
            update(SyncJob)
            .where(SyncJob.lock_key == lock_key, SyncJob.state.in_(CLAIMABLE_STATES))
            .values(
                state=SyncJobState.RUNNING,
                attempt_count=SyncJob.attempt_count + 1,
                next_run_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        claimed = (result.rowcount or 0) == 1
        if claimed:
            # Drop any cached copy so later reads see the new state
            job = await self.get_by_lock_key(lock_key)
            if job is not None:
                await self.session.refresh(job)
        return claimed

    async def mark(
        self, lock_key: str, state: SyncJobState, last_error: str | None
    ) -> SyncJob | None:
        """Set state and error, counting the transition as an attempt."""
        job = await self.get_by_lock_key(lock_key)
        if job is None:
            return None
        job.state = state
        job.last_error = last_error
        job.attempt_count = job.attempt_count + 1
        job.updated_at = utcnow()
        await self.session.flush()
        return job

    async def schedule_retry(
        self, lock_key: str, last_error: str, next_run_at: datetime
    ) -> SyncJob | None:
        """Move a job to retry with the time it becomes due."""
        job = await self.mark(lock_key, SyncJobState.RETRY, last_error)
        if job is not None:
            job.next_run_at = next_run_at
            await self.session.flush()
        return job

    async def update_progress(
        self,
        lock_key: str,
        current_step: str | None,
        completed_step: str | None = None,
        items_in_step: int | None = None,
    ) -> SyncJob | None:
        """Record the step in flight and, optionally, a finished step."""
        job = await self.get_by_lock_key(lock_key)
        if job is None:
            return None
        job.current_step = current_step
        if completed_step is not None:
            job.completed_steps = [*(job.completed_steps or []), completed_step]
        job.items_fetched = (job.items_fetched or 0) + (items_in_step or 0)
        job.updated_at = utcnow()
        await self.session.flush()
        return job

    async def save_journal(self, lock_key: str, journal: dict[str, Any]) -> None:
        """Replace the resume journal of a job."""
        job = await self.get_by_lock_key(lock_key)
        if job is None:
            return
        job.journal = dict(journal)
        job.updated_at = utcnow()
        await self.session.flush()

    async def reset_to_pending(self, lock_key: str) -> SyncJob | None:
        """Clear progress so the job runs again from the first step."""
        job = await self.get_by_lock_key(lock_key)
        if job is None:
            return None
        job.state = SyncJobState.PENDING
        job.last_error = None
        job.attempt_count = 0
        job.current_step = None
        job.completed_steps = []
        job.items_fetched = 0
        job.next_run_at = None
        job.journal = {}
        job.updated_at = utcnow()
        await self.session.flush()
        return job

    async def count_running_for_installation(self, installation_id: int, cap: int) -> int:
        """Running jobs for an installation, counting at most ``cap + 1``."""
        subquery = (
            select(SyncJob.id)
            .where(
                SyncJob.installation_id == installation_id,
                SyncJob.state == SyncJobState.RUNNING,
            )
            .limit(cap + 1)
            .subquery()
        )
        return await self._execute_count_query(select(func.count()).select_from(subquery))

    async def list_pending_for_installation(
        self, installation_id: int, limit: int
    ) -> list[SyncJob]:
        """Pending jobs of an installation, oldest first."""
        query = (
            self._build_base_query()
            .where(
                SyncJob.installation_id == installation_id,
                SyncJob.state == SyncJobState.PENDING,
            )
            .order_by(SyncJob.created_at)
            .limit(limit)
        )
        return await self._execute_query(query)

    async def list_stuck(self, cutoff: datetime) -> list[SyncJob]:
        """Running jobs whose row has not been touched since ``cutoff``."""
        query = (
            self._build_base_query()
            .where(SyncJob.state == SyncJobState.RUNNING, SyncJob.updated_at < cutoff)
            .order_by(SyncJob.updated_at)
        )
        return await self._execute_query(query)

    async def list_due_retries(self, now: datetime, limit: int = 100) -> list[SyncJob]:
        """Retry jobs whose back-off has elapsed."""
        query = (
            self._build_base_query()
            .where(
                SyncJob.state == SyncJobState.RETRY,
                (SyncJob.next_run_at.is_(None)) | (SyncJob.next_run_at <= now),
            )
            .order_by(SyncJob.next_run_at)
            .limit(limit)
        )
        return await self._execute_query(query)
