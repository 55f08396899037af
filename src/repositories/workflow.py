"""WorkflowRun and WorkflowJob repositories."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import WorkflowJob, WorkflowRun

from .upsert import UpsertRepository


class WorkflowRunRepository(UpsertRepository[WorkflowRun]):
    """Workflow runs are guarded by GitHub's run ``updated_at``."""

    natural_key = ("repository_id", "github_run_id")
    guard_column = "run_updated_at"

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, WorkflowRun)


class WorkflowJobRepository(UpsertRepository[WorkflowJob]):
    natural_key = ("repository_id", "github_job_id")

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, WorkflowJob)
