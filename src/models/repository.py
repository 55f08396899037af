"""Repository and Installation SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime


class Installation(BaseModel):
    """GitHub App installation (or a placeholder for user-connected repos)."""

    __tablename__ = "installations"

    # 0 for accounts connected without an App installation
    installation_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    account_login: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    account_type: Mapped[str] = mapped_column(String(32), default="User", nullable=False)
    suspended_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<Installation(installation_id={self.installation_id}, "
            f"account_login={self.account_login})>"
        )


class Repository(BaseModel):
    """Mirrored GitHub repository.

    Keyed by the immutable GitHub repository id. Rows are never deleted;
    ``archived``/``disabled`` record soft states.
    """

    __tablename__ = "repositories"

    github_repo_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    installation_id: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False, index=True
    )
    owner_login: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(511), nullable=False, unique=True)
    private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    visibility: Mapped[str] = mapped_column(String(32), default="public", nullable=False)
    default_branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    connected_by_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stargazers_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    github_updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    pushed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<Repository(github_repo_id={self.github_repo_id}, "
            f"full_name={self.full_name})>"
        )

    @property
    def owner_and_name(self) -> tuple[str, str]:
        """Split ``full_name`` into (owner, name)."""
        owner, _, name = self.full_name.partition("/")
        return owner, name
