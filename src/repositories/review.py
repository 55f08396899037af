"""Pull request review repositories."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.models import PullRequestReview, PullRequestReviewComment

from .upsert import UpsertRepository


class PullRequestReviewRepository(UpsertRepository[PullRequestReview]):
    natural_key = ("repository_id", "github_review_id")

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, PullRequestReview)


class PullRequestReviewCommentRepository(UpsertRepository[PullRequestReviewComment]):
    """Review comments are guarded by their own edit timestamp."""

    natural_key = ("repository_id", "github_review_comment_id")
    guard_column = "github_updated_at"

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, PullRequestReviewComment)
