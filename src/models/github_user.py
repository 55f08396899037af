"""GitHub user SQLAlchemy model."""

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class GitHubUser(BaseModel):
    """GitHub account referenced by mirrored entities."""

    __tablename__ = "github_users"

    github_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    login: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    site_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    type: Mapped[str] = mapped_column(String(32), default="User", nullable=False)
