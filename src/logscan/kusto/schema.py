"""
Column schema and row model for progressive query results.

A Schema is announced once per table by the query service and maps column
names to declared Kusto type names. Values are only converted to their
Python representation when a column is actually read.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from core.errors.exceptions import DecodeError, UnsupportedTypeError


class ValueKind(Enum):
    """Semantic kind of a column value."""

    INT64 = "long"
    INT32 = "int"
    TIMESTAMP = "datetime"
    TEXT = "string"

    @classmethod
    def from_declared_type(cls, declared_type: str, column: str | None = None) -> "ValueKind":
        """
        Map a declared Kusto type name to a ValueKind.

        Raises:
            UnsupportedTypeError: If the declared type has no mapping.
        """
        try:
            return _KIND_BY_DECLARED_TYPE[declared_type]
        except (KeyError, TypeError):
            raise UnsupportedTypeError(declared_type, column=column) from None


_KIND_BY_DECLARED_TYPE = {kind.value: kind for kind in ValueKind}


ColumnKey = int | str


@dataclass(frozen=True)
class Schema:
    """
    Ordered, immutable column table: (name, declared_type) pairs.

    Name lookup is case-insensitive; when two columns differ only in case
    the first one wins.
    """

    columns: tuple[tuple[str, str], ...]
    _ordinals: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        ordinals: dict[str, int] = {}
        for index, (name, _) in enumerate(self.columns):
            ordinals.setdefault(name.casefold(), index)
        object.__setattr__(self, "_ordinals", ordinals)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "Schema":
        return cls(tuple((str(name), str(declared)) for name, declared in pairs))

    @property
    def field_count(self) -> int:
        return len(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def ordinal(self, name: str) -> int | None:
        """Return the ordinal of a column by case-insensitive name, or None."""
        return self._ordinals.get(name.casefold())

    def _resolve(self, key: ColumnKey) -> int:
        if isinstance(key, str):
            index = self.ordinal(key)
            if index is None:
                raise KeyError(f"Column '{key}' not found in schema")
            return index
        if not 0 <= key < len(self.columns):
            raise IndexError(f"Column ordinal {key} out of range (0..{len(self.columns) - 1})")
        return key

    def name(self, key: ColumnKey) -> str:
        return self.columns[self._resolve(key)][0]

    def declared_type(self, key: ColumnKey) -> str:
        return self.columns[self._resolve(key)][1]

    def value_kind(self, key: ColumnKey) -> ValueKind:
        """
        Resolve the ValueKind of a column.

        Raises:
            UnsupportedTypeError: If the declared type has no mapping.
        """
        name, declared = self.columns[self._resolve(key)]
        return ValueKind.from_declared_type(declared, column=name)


# Kusto emits up to 7 fractional digits (100ns ticks), datetime takes 6
_FRACTION = re.compile(r"(\.\d{6})\d+")


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    text = _FRACTION.sub(r"\1", str(raw))
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def convert_value(kind: ValueKind, raw: Any) -> Any:
    """Convert a raw wire value to its Python representation for the given kind."""
    if raw is None:
        return None
    try:
        if kind in (ValueKind.INT64, ValueKind.INT32):
            return int(raw)
        if kind is ValueKind.TIMESTAMP:
            return _parse_timestamp(raw)
        return raw if isinstance(raw, str) else str(raw)
    except (TypeError, ValueError) as e:
        raise DecodeError(
            f"Cannot convert {raw!r} to {kind.name}",
            cause=e,
            context={"value_kind": kind.name},
        ) from e


class Row:
    """
    Positional values bound to the schema that was active when they arrived.

    Only the columns that are read get converted.
    """

    __slots__ = ("schema", "values")

    def __init__(self, schema: Schema, values: Sequence[Any]):
        self.schema = schema
        self.values = values

    def raw(self, key: ColumnKey) -> Any:
        return self.values[self.schema._resolve(key)]

    def get(self, key: ColumnKey) -> Any:
        index = self.schema._resolve(key)
        return convert_value(self.schema.value_kind(index), self.values[index])

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f"Row({list(self.values)!r})"


__all__ = ["ValueKind", "Schema", "Row", "convert_value"]
