"""Branch and Commit SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime


class Branch(BaseModel):
    """Repository branch head."""

    __tablename__ = "branches"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    head_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("repository_id", "name", name="uq_branch_repo_name"),
    )


class Commit(BaseModel):
    """Commit on the default branch."""

    __tablename__ = "commits"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    sha: Mapped[str] = mapped_column(String(40), nullable=False)
    author_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    committer_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    message_headline: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    authored_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    committed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    additions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deletions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    changed_files: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (UniqueConstraint("repository_id", "sha", name="uq_commit_repo_sha"),)
