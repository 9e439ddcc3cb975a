"""Record models produced by the marshal decoder.

A decoded ``p4 -G`` stream is an ordered list of records:

- one :class:`PromptRecord` holding any free text that preceded the first
  mapping (banners, ``p4 set`` output, password prompts)
- zero or more :class:`MappingRecord` objects, one per ``{ ... 0`` block
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "Value",
    "PromptRecord",
    "MappingRecord",
    "Record",
]

Value = Union[str, int]


class PromptRecord(BaseModel):
    """Free-form text that preceded the tagged data."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["prompt"] = "prompt"
    text: str = ""


class MappingRecord(BaseModel):
    """One flat mapping, entries kept in wire order.

    Attributes:
        entries: ``(key, value)`` pairs; keys are unique within a record
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["mapping"] = "mapping"
    entries: tuple[tuple[str, Value], ...] = ()

    @field_validator("entries")
    @classmethod
    def _unique_keys(cls, entries: tuple[tuple[str, Value], ...]) -> tuple[tuple[str, Value], ...]:
        seen: set[str] = set()
        for key, _ in entries:
            if key in seen:
                raise ValueError(f"duplicate key in mapping: {key!r}")
            seen.add(key)
        return entries

    @classmethod
    def from_pairs(cls, pairs: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> "MappingRecord":
        """Build a record from a mapping or an iterable of pairs."""
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        return cls(entries=tuple((str(k), v) for k, v in items))

    @property
    def code(self) -> str | None:
        """The ``code`` entry used to classify the message, if any."""
        value = self.get("code")
        return value if isinstance(value, str) else None

    def get(self, key: str, default: Any = None) -> Any:
        for k, v in self.entries:
            if k == key:
                return v
        return default

    def keys(self) -> list[str]:
        return [k for k, _ in self.entries]

    def to_dict(self) -> dict[str, Value]:
        return dict(self.entries)


Record = Annotated[Union[PromptRecord, MappingRecord], Field(discriminator="kind")]
