"""CheckRun repository."""

from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import CheckRun

from .upsert import UpsertRepository


class CheckRunRepository(UpsertRepository[CheckRun]):
    """Check runs are always patched; GitHub only moves them forward."""

    natural_key = ("repository_id", "github_check_run_id")
    tracks_counters = True

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, CheckRun)

    def counter_deltas(
        self, before: Mapping[str, Any] | None, row: CheckRun
    ) -> dict[str, int]:
        """Count newly seen check runs."""
        return {"check_runs": 1 if before is None else 0}

    async def list_for_head_sha(self, repository_id: int, head_sha: str) -> list[CheckRun]:
        """Check runs reported for a commit."""
        query = (
            self._build_base_query()
            .where(CheckRun.repository_id == repository_id, CheckRun.head_sha == head_sha)
            .order_by(CheckRun.name)
        )
        return await self._execute_query(query)
