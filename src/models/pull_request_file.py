"""PullRequestFile SQLAlchemy model."""

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class PullRequestFile(BaseModel):
    """Changed file in a pull request, with its (possibly dropped) patch."""

    __tablename__ = "pull_request_files"

    repository_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("repositories.github_repo_id"), nullable=False
    )
    pull_request_number: Mapped[int] = mapped_column(Integer, nullable=False)
    head_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    filename: Mapped[str] = mapped_column(String(1024), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    additions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deletions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    changes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    patch: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_filename: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "repository_id",
            "pull_request_number",
            "filename",
            name="uq_pr_file_repo_number_filename",
        ),
    )
