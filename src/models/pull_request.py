"""PullRequest SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, JSONType, UTCDateTime


class PullRequest(BaseModel):
    """Mirrored pull request, keyed by (repository, number)."""

    __tablename__ = "pull_requests"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    github_pr_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False)
    draft: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    author_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    assignee_user_ids: Mapped[list[int]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    requested_reviewer_user_ids: Mapped[list[int]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    label_names: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    base_ref_name: Mapped[str] = mapped_column(String(255), nullable=False)
    head_ref_name: Mapped[str] = mapped_column(String(255), nullable=False)
    head_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    mergeable_state: Mapped[str | None] = mapped_column(String(32), nullable=True)

    merged_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    github_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("repository_id", "number", name="uq_pr_repo_number"),
        Index("ix_pull_requests_repo_state", "repository_id", "state"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<PullRequest(repository_id={self.repository_id}, "
            f"number={self.number}, state={self.state})>"
        )

    @property
    def is_open(self) -> bool:
        """Check if PR is open."""
        return self.state == "open"
