"""SyncJob ledger SQLAlchemy model."""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, JSONType, UTCDateTime, enum_column_type
from .enums import SyncJobState, SyncJobType, SyncScopeType, SyncTriggerReason


def bootstrap_lock_key(installation_id: int, repository_id: int) -> str:
    """Deterministic lock key for a repository's bootstrap job."""
    return f"repo-bootstrap:{installation_id}:{repository_id}"


class SyncJob(BaseModel):
    """Persisted lifecycle record for one repository import.

    The unique ``lock_key`` is the only mutual exclusion between workers.
    ``journal`` holds the resume cursor and per-step summaries so a
    re-dispatched job continues where the previous run stopped.
    """

    __tablename__ = "sync_jobs"

    lock_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    job_type: Mapped[SyncJobType] = mapped_column(
        enum_column_type(SyncJobType), nullable=False
    )
    scope_type: Mapped[SyncScopeType] = mapped_column(
        enum_column_type(SyncScopeType), nullable=False
    )
    trigger_reason: Mapped[SyncTriggerReason] = mapped_column(
        enum_column_type(SyncTriggerReason), nullable=False
    )
    installation_id: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    repository_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    state: Mapped[SyncJobState] = mapped_column(
        enum_column_type(SyncJobState), default=SyncJobState.PENDING, nullable=False
    )
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    next_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    current_step: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_steps: Mapped[list[str]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    items_fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    journal: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("ix_sync_jobs_installation_state", "installation_id", "state"),
        Index("ix_sync_jobs_state_updated_at", "state", "updated_at"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<SyncJob(lock_key={self.lock_key}, state={self.state}, "
            f"attempt_count={self.attempt_count})>"
        )
