"""Idempotent keyed upserts with an out-of-order write guard.

Every mirror table is written through ``UpsertRepository.upsert_many``:

1. existing rows are loaded by natural key in one query;
2. unseen keys are inserted;
3. seen keys are patched only when the incoming guard timestamp is not older
   than the stored one (ties go to the later call);
4. per-repository counters are adjusted inside a savepoint so a counter
   failure never rolls back the entity write.

Callers pass already-validated records whose keys are model attribute names.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.base import BaseModel

from .base import BaseRepository
from .counter import RepositoryCounterRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelType = TypeVar("ModelType", bound=BaseModel)

WRITE_BATCH_SIZE = 50


@dataclass
class UpsertResult:
    """Per-call write summary."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def upserted(self) -> int:
        """Records that reached the store (inserted or patched)."""
        return self.inserted + self.updated

    def __add__(self, other: "UpsertResult") -> "UpsertResult":
        return UpsertResult(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
        )


def chunked(items: Sequence[T], size: int = WRITE_BATCH_SIZE) -> Iterable[Sequence[T]]:
    """Split ``items`` into consecutive slices of at most ``size``."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class UpsertRepository(BaseRepository[ModelType]):
    """Base for repositories that mirror GitHub entities."""

    # Columns identifying a record, e.g. ("repository_id", "number")
    natural_key: ClassVar[tuple[str, ...]] = ()
    # Remote timestamp compared before patching; None means always patch
    guard_column: ClassVar[str | None] = None
    # Columns whose stored value survives an incoming None
    preserve_on_null: ClassVar[frozenset[str]] = frozenset()
    # Columns snapshotted before a patch so counter_deltas can diff them
    counter_columns: ClassVar[tuple[str, ...]] = ()
    tracks_counters: ClassVar[bool] = False

    def __init__(self, session: AsyncSession, model_class: type[ModelType]):
        super().__init__(session, model_class)
        if not self.natural_key:
            raise TypeError(f"{type(self).__name__} must declare natural_key")

    def _key_of(self, values: Mapping[str, Any] | ModelType) -> tuple[Any, ...]:
        if isinstance(values, Mapping):
            return tuple(values[column] for column in self.natural_key)
        return tuple(getattr(values, column) for column in self.natural_key)

    async def _load_existing(
        self, keys: Iterable[tuple[Any, ...]]
    ) -> dict[tuple[Any, ...], ModelType]:
        """Load rows matching any of ``keys``.

        Filters each key column with IN, which may over-select across
        combinations; the exact match happens on the returned rows.
        """
        wanted = set(keys)
        if not wanted:
            return {}

        conditions = []
        for position, column in enumerate(self.natural_key):
            values = {key[position] for key in wanted}
            conditions.append(getattr(self.model_class, column).in_(values))

        rows = await self._execute_query(self._build_base_query().where(and_(*conditions)))
        return {
            key: row for row in rows if (key := self._key_of(row)) in wanted
        }

    def _passes_guard(self, row: ModelType, record: Mapping[str, Any]) -> bool:
        if self.guard_column is None:
            return True
        incoming = record.get(self.guard_column)
        stored = getattr(row, self.guard_column)
        if incoming is None or stored is None:
            return True
        return incoming >= stored

    def counter_deltas(
        self, before: Mapping[str, Any] | None, row: ModelType
    ) -> dict[str, int]:
        """Counter changes caused by one write (``before`` is None on insert)."""
        return {}

    async def upsert_many(self, records: Sequence[Mapping[str, Any]]) -> UpsertResult:
        """Insert or patch ``records`` within the current transaction.

        Args:
            records: Validated records keyed by model attribute names

        Returns:
            Counts of inserted, patched and guard-skipped records
        """
        result = UpsertResult()
        if not records:
            return result

        existing = await self._load_existing(self._key_of(record) for record in records)
        deltas: dict[int, Counter[str]] = defaultdict(Counter)

        for record in records:
            key = self._key_of(record)
            row = existing.get(key)

            if row is None:
                row = self.model_class(**record)
                self.session.add(row)
                existing[key] = row
                result.inserted += 1
                if self.tracks_counters:
                    deltas[row.repository_id].update(self.counter_deltas(None, row))  # type: ignore[attr-defined]
                continue

            if not self._passes_guard(row, record):
                result.skipped += 1
                continue

            before = {column: getattr(row, column) for column in self.counter_columns}
            for name, value in record.items():
                if value is None and name in self.preserve_on_null:
                    continue
                setattr(row, name, value)
            result.updated += 1
            if self.tracks_counters:
                deltas[row.repository_id].update(self.counter_deltas(before, row))  # type: ignore[attr-defined]

        await self.session.flush()

        if deltas:
            await self._maintain_counters(deltas)

        logger.debug(
            f"Upserted {self.model_class.__name__}: inserted={result.inserted} "
            f"updated={result.updated} skipped={result.skipped}"
        )
        return result

    async def insert_missing(self, records: Sequence[Mapping[str, Any]]) -> UpsertResult:
        """Insert records whose natural key is absent; stored rows are not patched.

        Used for partial payloads (push commits, ref creation) that must not
        overwrite what a full listing already wrote.
        """
        result = UpsertResult()
        if not records:
            return result

        existing = await self._load_existing(self._key_of(record) for record in records)
        deltas: dict[int, Counter[str]] = defaultdict(Counter)

        for record in records:
            key = self._key_of(record)
            if key in existing:
                result.skipped += 1
                continue
            row = self.model_class(**record)
            self.session.add(row)
            existing[key] = row
            result.inserted += 1
            if self.tracks_counters:
                deltas[row.repository_id].update(self.counter_deltas(None, row))  # type: ignore[attr-defined]

        await self.session.flush()

        if deltas:
            await self._maintain_counters(deltas)
        return result

    async def _maintain_counters(self, deltas: Mapping[int, Counter[str]]) -> None:
        """Apply counter deltas in a savepoint; failures are logged, not raised."""
        counters = RepositoryCounterRepository(self.session)
        try:
            async with self.session.begin_nested():
                for repository_id, delta in deltas.items():
                    await counters.apply_deltas(repository_id, delta)
        except SQLAlchemyError as e:
            logger.warning(
                f"Counter maintenance failed for {self.model_class.__name__}, "
                f"counts will be rebuilt by scan: {e}"
            )
