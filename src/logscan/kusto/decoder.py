"""
Progressive result decoder.

Turns an ordered frame stream into a lazy sequence of values for a single
target column, without buffering the result. Tables that are not needed
are drained so the sequential stream stays in sync.
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from core.errors.exceptions import DecodeError
from logscan.kusto.frames import Frame, FullTable, RowFragment, SchemaAnnouncement, StreamEnd
from logscan.kusto.schema import Schema, ValueKind, convert_value

logger = logging.getLogger(__name__)

DEFAULT_COLUMN = "Uri"

# Full tables carrying result rows (sent when the server answers non-progressively)
CONSUMED_TABLE_KINDS = frozenset({"PrimaryResult"})

_UNRESOLVED = object()


@dataclass
class DecoderStats:
    frames: int = 0
    schemas: int = 0
    fragments: int = 0
    fragments_skipped: int = 0
    tables_drained: int = 0
    rows_drained: int = 0
    values_emitted: int = 0


class FrameDecoder:
    """
    Extract one typed column from a progressive frame stream.

    The newest SchemaAnnouncement fully replaces the previous one. Row
    fragments whose schema lacks the target column, or declares it with a
    different type, are skipped without error. A fragment arriving before
    any schema is a protocol violation and raises DecodeError.

    Example:
        decoder = FrameDecoder(column="Uri", kind=ValueKind.TEXT)
        async for uri in decoder.adecode(client.stream_frames(query)):
            ...
    """

    def __init__(
        self,
        column: str = DEFAULT_COLUMN,
        kind: ValueKind = ValueKind.TEXT,
        table_kinds: frozenset[str] = CONSUMED_TABLE_KINDS,
    ):
        self.column = column
        self.kind = kind
        self.table_kinds = table_kinds
        self.active_schema: Schema | None = None
        self.stats = DecoderStats()
        self._ordinal: Any = _UNRESOLVED

    def reset(self) -> None:
        self.active_schema = None
        self._ordinal = _UNRESOLVED
        self.stats = DecoderStats()

    def decode(self, frames: Iterable[Frame | None]) -> Iterator[Any]:
        """Decode a synchronous frame iterable. Single pass; resets decoder state."""
        self.reset()
        for frame in frames:
            if isinstance(frame, StreamEnd):
                self._on_end(frame)
                return
            yield from self._consume(frame)

    async def adecode(self, frames: AsyncIterable[Frame | None]) -> AsyncIterator[Any]:
        """Decode an asynchronous frame iterable. Single pass; resets decoder state."""
        self.reset()
        async for frame in frames:
            if isinstance(frame, StreamEnd):
                self._on_end(frame)
                return
            for value in self._consume(frame):
                yield value

    def _consume(self, frame: Frame | None) -> Iterator[Any]:
        self.stats.frames += 1

        if isinstance(frame, SchemaAnnouncement):
            self._on_schema(frame)
        elif isinstance(frame, RowFragment):
            yield from self._on_fragment(frame)
        elif isinstance(frame, FullTable):
            yield from self._on_table(frame)
        else:
            # Progress/header frames carry nothing we consume
            logger.debug("Skipping frame", extra={"frames": self.stats.frames})

    def _on_schema(self, frame: SchemaAnnouncement) -> None:
        self.active_schema = frame.schema
        self._ordinal = _UNRESOLVED
        self.stats.schemas += 1
        logger.debug(
            "Schema announced",
            extra={
                "table_id": frame.table_id,
                "table_name": frame.table_name,
                "columns": [name for name, _ in frame.schema.columns],
            },
        )

    def _resolve_ordinal(self, schema: Schema) -> int | None:
        ordinal = schema.ordinal(self.column)
        if ordinal is not None and schema.declared_type(ordinal) != self.kind.value:
            logger.debug(
                "Target column has a different declared type, skipping table",
                extra={"column": self.column, "declared_type": schema.declared_type(ordinal)},
            )
            return None
        return ordinal

    def _target_ordinal(self) -> int | None:
        """Resolve the target column once per schema. None means skip fragments."""
        if self._ordinal is _UNRESOLVED:
            self._ordinal = self._resolve_ordinal(self.active_schema)
        return self._ordinal

    def _extract(self, values: Any, ordinal: int, table_id: int) -> Any:
        try:
            raw = values[ordinal]
        except (IndexError, TypeError) as e:
            raise DecodeError(
                f"Row does not match schema: expected at least {ordinal + 1} values",
                cause=e,
                context={"table_id": table_id, "column": self.column},
            ) from e
        self.stats.values_emitted += 1
        return convert_value(self.kind, raw)

    def _on_fragment(self, frame: RowFragment) -> Iterator[Any]:
        if self.active_schema is None:
            raise DecodeError(
                "Row fragment received before any schema announcement",
                context={"table_id": frame.table_id},
            )

        self.stats.fragments += 1
        ordinal = self._target_ordinal()
        if ordinal is None:
            self.stats.fragments_skipped += 1
            return

        for values in frame.rows:
            yield self._extract(values, ordinal, frame.table_id)

    def _on_table(self, frame: FullTable) -> Iterator[Any]:
        reader = frame.reader
        try:
            if frame.table_kind in self.table_kinds and frame.schema is not None:
                ordinal = self._resolve_ordinal(frame.schema)
                if ordinal is not None:
                    values = reader.fetchone()
                    while values is not None:
                        yield self._extract(values, ordinal, frame.table_id)
                        values = reader.fetchone()
        finally:
            # Always leave the reader exhausted, even if the consumer stopped early
            rows = reader.drain()
            reader.close()
        self.stats.tables_drained += 1
        self.stats.rows_drained += rows
        logger.debug(
            "Drained table",
            extra={
                "table_id": frame.table_id,
                "table_name": frame.table_name,
                "table_kind": frame.table_kind,
                "rows": rows,
            },
        )

    def _on_end(self, frame: StreamEnd) -> None:
        self.stats.frames += 1
        logger.debug(
            "Result stream ended",
            extra={
                "frames": self.stats.frames,
                "rows": self.stats.values_emitted,
            },
        )


__all__ = ["DEFAULT_COLUMN", "CONSUMED_TABLE_KINDS", "DecoderStats", "FrameDecoder"]
