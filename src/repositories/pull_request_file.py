"""PullRequestFile repository."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import PullRequestFile

from .upsert import UpsertRepository


class PullRequestFileRepository(UpsertRepository[PullRequestFile]):
    natural_key = ("repository_id", "pull_request_number", "filename")

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, PullRequestFile)

    async def list_for_pull_request(
        self, repository_id: int, pull_request_number: int
    ) -> list[PullRequestFile]:
        """Files of one PR ordered by path."""
        query = (
            self._build_base_query()
            .where(
                PullRequestFile.repository_id == repository_id,
                PullRequestFile.pull_request_number == pull_request_number,
            )
            .order_by(PullRequestFile.filename)
        )
        return await self._execute_query(query)
