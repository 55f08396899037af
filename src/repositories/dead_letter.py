"""DeadLetter repository."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import desc
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import DeadLetter

from .base import BaseRepository

logger = logging.getLogger(__name__)


@dataclass
class DeadLetterEntry:
    """Payload rejected before it reached a writer."""

    delivery_id: str
    reason: str
    payload_json: str


class DeadLetterRepository(BaseRepository[DeadLetter]):
    """Append-only sink for rejected payloads."""

    def __init__(self, session: AsyncSession):
        """Initialize with session."""
        super().__init__(session, DeadLetter)

    async def record_batch(self, entries: Sequence[DeadLetterEntry], source: str) -> int:
        """Append one row per entry."""
        for entry in entries:
            self.session.add(
                DeadLetter(
                    delivery_id=entry.delivery_id,
                    reason=entry.reason,
                    payload_json=entry.payload_json,
                    source=source,
                )
            )
        await self.session.flush()
        if entries:
            logger.warning(f"Dead-lettered {len(entries)} payload(s) from {source}")
        return len(entries)

    async def list_recent(self, source: str | None = None, limit: int = 50) -> list[DeadLetter]:
        """Newest dead letters first, optionally for one source."""
        query = self._build_base_query().order_by(desc(DeadLetter.created_at)).limit(limit)
        if source is not None:
            query = query.where(DeadLetter.source == source)
        return await self._execute_query(query)
