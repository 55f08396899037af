"""Lenient decoding of GitHub list responses.

Each element of a list is validated on its own. Elements that fail are
reported with their index and a truncated copy of the raw payload, while
their valid siblings are still returned.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

MAX_RAW_CHARS = 2000
TRUNCATION_SUFFIX = "...(truncated)"

T = TypeVar("T", bound=BaseModel)


@dataclass
class DecodeFailure:
    """One element that failed validation."""

    index: int
    error: str
    raw: str


@dataclass
class LenientResult(Generic[T]):
    """Valid items plus the failures that were skipped."""

    items: list[T] = field(default_factory=list)
    skipped: list[DecodeFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Number of raw elements seen, valid or not."""
        return len(self.items) + len(self.skipped)


def truncate_raw(value: Any) -> str:
    """Serialize ``value`` for a dead letter, capped at MAX_RAW_CHARS."""
    try:
        raw = json.dumps(value, default=str)
    except (TypeError, ValueError):
        raw = repr(value)
    if len(raw) > MAX_RAW_CHARS:
        return raw[:MAX_RAW_CHARS] + TRUNCATION_SUFFIX
    return raw


def decode_lenient(schema: type[T], raw: Any) -> LenientResult[T]:
    """Decode a raw JSON array element by element.

    Args:
        schema: Pydantic model each element must satisfy
        raw: Decoded JSON body; anything but a list yields an empty result

    Returns:
        LenientResult with valid items and skipped failures
    """
    result: LenientResult[T] = LenientResult()
    if not isinstance(raw, list):
        return result

    for index, element in enumerate(raw):
        try:
            result.items.append(schema.model_validate(element))
        except ValidationError as e:
            result.skipped.append(
                DecodeFailure(
                    index=index,
                    error=f"Schema parse error at index {index}: {_summarize(e)}",
                    raw=truncate_raw(element),
                )
            )
    return result


def _summarize(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        parts.append(f"{location or '<root>'}: {detail.get('msg')}")
    return "; ".join(parts)
