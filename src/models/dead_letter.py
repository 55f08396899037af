"""DeadLetter and RepositoryCounter SQLAlchemy models."""

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class DeadLetter(BaseModel):
    """Payload that failed validation or processing. Append-only."""

    __tablename__ = "dead_letters"

    delivery_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False, index=True)


class RepositoryCounter(BaseModel):
    """Per-repository counts maintained alongside entity writes."""

    __tablename__ = "repository_counters"

    repository_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    open_pull_requests: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    open_issues: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    check_runs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
