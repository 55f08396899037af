"""RepositoryPermission and OAuthAccount SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, UTCDateTime
from .enums import PermissionLevel


class RepositoryPermission(BaseModel):
    """Cached GitHub permission flags of one user on one repository."""

    __tablename__ = "repository_permissions"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    repository_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    pull: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    triage: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    push: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    maintain: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    role_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    synced_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "repository_id", name="uq_permission_user_repo"),
    )

    @property
    def highest_level(self) -> PermissionLevel | None:
        """Highest level whose flag is set, or None if no flag is set."""
        for level in reversed(PermissionLevel):
            if getattr(self, level.value):
                return level
        return None


class OAuthAccount(BaseModel):
    """GitHub OAuth credentials of an application user."""

    __tablename__ = "oauth_accounts"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    github_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_token_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
