"""Pull request review SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime


class PullRequestReview(BaseModel):
    """Submitted review on a pull request."""

    __tablename__ = "pull_request_reviews"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    pull_request_number: Mapped[int] = mapped_column(Integer, nullable=False)
    github_review_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    author_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    commit_sha: Mapped[str | None] = mapped_column(String(40), nullable=True)

    __table_args__ = (
        UniqueConstraint("repository_id", "github_review_id", name="uq_review_repo_id"),
    )


class PullRequestReviewComment(BaseModel):
    """Inline diff comment on a pull request."""

    __tablename__ = "pull_request_review_comments"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    pull_request_number: Mapped[int] = mapped_column(Integer, nullable=False)
    github_review_comment_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    github_review_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    in_reply_to_github_review_comment_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True
    )
    author_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    line: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_line: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_line: Mapped[int | None] = mapped_column(Integer, nullable=True)
    side: Mapped[str | None] = mapped_column(String(8), nullable=True)
    start_side: Mapped[str | None] = mapped_column(String(8), nullable=True)
    commit_sha: Mapped[str | None] = mapped_column(String(40), nullable=True)
    original_commit_sha: Mapped[str | None] = mapped_column(String(40), nullable=True)
    html_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    github_created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    github_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "repository_id",
            "github_review_comment_id",
            name="uq_review_comment_repo_id",
        ),
    )
