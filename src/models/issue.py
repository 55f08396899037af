"""Issue and IssueComment SQLAlchemy models."""

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


class Issue(BaseModel):
    """Mirrored issue, keyed by (repository, number)."""

    __tablename__ = "issues"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    github_issue_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    author_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    assignee_user_ids: Mapped[list[int]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    label_names: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    comment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_pull_request: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    github_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("repository_id", "number", name="uq_issue_repo_number"),
        Index("ix_issues_repo_state", "repository_id", "state"),
    )

    @property
    def is_open(self) -> bool:
        """Check if issue is open."""
        return self.state == "open"


class IssueComment(BaseModel):
    """Comment on an issue or pull request conversation."""

    __tablename__ = "issue_comments"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    issue_number: Mapped[int] = mapped_column(Integer, nullable=False)
    github_comment_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    author_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    github_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "repository_id", "github_comment_id", name="uq_issue_comment_repo_id"
        ),
    )
