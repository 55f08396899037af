"""CheckRun SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime


class CheckRun(BaseModel):
    """Check run reported against a commit."""

    __tablename__ = "check_runs"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    github_check_run_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    head_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    conclusion: Mapped[str | None] = mapped_column(String(32), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "repository_id", "github_check_run_id", name="uq_check_run_repo_id"
        ),
        Index("ix_check_runs_repo_head_sha", "repository_id", "head_sha"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<CheckRun(github_check_run_id={self.github_check_run_id}, "
            f"name={self.name}, status={self.status}, conclusion={self.conclusion})>"
        )
