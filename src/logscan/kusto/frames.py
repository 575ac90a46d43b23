"""
Frame variants of a progressive query result.

The query service sends an ordered stream of frames: a schema announcement
per table, row fragments for that table, whole tables for metadata (query
properties, completion info) and a final end-of-stream marker.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from logscan.kusto.schema import Schema


class RowSetReader:
    """
    Sequential reader over one or more result sets of a full table frame.

    Follows the DB-API cursor shape: fetchone() returns the next row or None
    at the end of the current result set, nextset() advances to the next
    result set. The protocol is strictly sequential, so a reader has to be
    drained before the next frame is meaningful.
    """

    def __init__(self, result_sets: Iterable[Iterable[Sequence[Any]]]):
        self._sets: Iterator[Iterable[Sequence[Any]]] = iter(result_sets)
        self._rows: Iterator[Sequence[Any]] | None = None
        self._closed = False
        self.rows_read = 0
        self._advance()

    def _advance(self) -> bool:
        try:
            self._rows = iter(next(self._sets))
        except StopIteration:
            self._rows = None
            return False
        return True

    @property
    def closed(self) -> bool:
        return self._closed

    def fetchone(self) -> Sequence[Any] | None:
        if self._closed or self._rows is None:
            return None
        row = next(self._rows, None)
        if row is not None:
            self.rows_read += 1
        return row

    def nextset(self) -> bool:
        if self._closed:
            return False
        return self._advance()

    def drain(self) -> int:
        """Consume every remaining row of every result set. Returns rows consumed."""
        consumed = 0
        while True:
            while self.fetchone() is not None:
                consumed += 1
            if not self.nextset():
                return consumed

    def close(self) -> None:
        self._closed = True
        self._rows = None


@dataclass(frozen=True)
class SchemaAnnouncement:
    """Column layout for the fragments that follow."""

    schema: Schema
    table_id: int = 0
    table_name: str = ""


@dataclass(frozen=True)
class RowFragment:
    """A batch of positional rows for the table announced last."""

    rows: Sequence[Sequence[Any]]
    table_id: int = 0
    replace: bool = False


@dataclass(frozen=True)
class FullTable:
    """A complete, non-progressive table (query properties, completion info, ...)."""

    table_kind: str
    reader: RowSetReader
    table_id: int = 0
    table_name: str = ""
    schema: Schema | None = None


@dataclass(frozen=True)
class StreamEnd:
    """End of the result stream."""

    has_errors: bool = False
    cancelled: bool = False
    errors: list[Any] = field(default_factory=list)


Frame = Union[SchemaAnnouncement, RowFragment, FullTable, StreamEnd]


__all__ = [
    "RowSetReader",
    "SchemaAnnouncement",
    "RowFragment",
    "FullTable",
    "StreamEnd",
    "Frame",
]
