"""Shared query helpers for mirror repositories.

Repositories never commit. The session owner (a sync step or trigger) does,
so a step's ledger update and its entity writes land together.
"""

import uuid
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.base import BaseModel


ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """Row-level operations common to every mirror table."""

    def __init__(self, session: AsyncSession, model_class: type[ModelType]):
        self.session = session
        self.model_class = model_class

    async def create(self, **kwargs: Any) -> ModelType:
        """Insert one row and return it with server defaults loaded."""
        entity = self.model_class(**kwargs)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def get_by_id(self, entity_id: uuid.UUID) -> ModelType | None:
        return await self.session.get(self.model_class, entity_id)

    async def get_one_by(self, **filters: Any) -> ModelType | None:
        """First row matching column equality filters, e.g. ``lock_key=...``."""
        query = self._build_base_query().filter_by(**filters)
        return await self._execute_single_query(query)

    async def update(self, entity: ModelType, **kwargs: Any) -> ModelType:
        """Set columns on a loaded row.

        Unknown keys are ignored. An explicit ``updated_at`` wins over the
        column's onupdate default.
        """
        for key, value in kwargs.items():
            if hasattr(entity, key):
                setattr(entity, key, value)

        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def delete(self, entity: ModelType) -> None:
        await self.session.delete(entity)
        await self.session.flush()

    async def count_all(self) -> int:
        return await self._execute_count_query(select(func.count(self.model_class.id)))

    def _build_base_query(self) -> Select[tuple[ModelType]]:
        return select(self.model_class)

    async def _execute_query(self, query: Select[tuple[ModelType]]) -> list[ModelType]:
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _execute_single_query(
        self, query: Select[tuple[ModelType]]
    ) -> ModelType | None:
        result = await self.session.execute(query)
        return result.scalars().first()

    async def _execute_count_query(self, query: Select[tuple[int]]) -> int:
        result = await self.session.execute(query)
        return result.scalar_one()
