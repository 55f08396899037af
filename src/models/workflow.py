"""WorkflowRun and WorkflowJob SQLAlchemy models."""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, JSONType, UTCDateTime


class WorkflowRun(BaseModel):
    """GitHub Actions workflow run."""

    __tablename__ = "workflow_runs"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    github_run_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    workflow_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    workflow_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    run_number: Mapped[int] = mapped_column(Integer, nullable=False)
    run_attempt: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    event: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    conclusion: Mapped[str | None] = mapped_column(String(32), nullable=True)
    head_branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    head_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    html_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    run_created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    run_updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("repository_id", "github_run_id", name="uq_workflow_run_repo_id"),
    )


class WorkflowJob(BaseModel):
    """Job belonging to a workflow run."""

    __tablename__ = "workflow_jobs"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    github_job_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    github_run_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    conclusion: Mapped[str | None] = mapped_column(String(32), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    runner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    steps_json: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )

    __table_args__ = (
        UniqueConstraint("repository_id", "github_job_id", name="uq_workflow_job_repo_id"),
    )
