"""
Kusto v2 progressive response codec.

The v2 query endpoint answers with one JSON array whose elements are frames:

    [{"FrameType": "DataSetHeader", "IsProgressive": true, "Version": "v2.0"},
     {"FrameType": "TableHeader", "TableId": 1, "Columns": [...]},
     {"FrameType": "TableFragment", "TableId": 1, "Rows": [[...], ...]},
     {"FrameType": "TableProgress", "TableId": 1, "TableProgress": 42.0},
     {"FrameType": "TableCompletion", "TableId": 1, "RowCount": 1234},
     {"FrameType": "DataTable", "TableKind": "QueryCompletionInformation", ...},
     {"FrameType": "DataSetCompletion", "HasErrors": false, "Cancelled": false}]

The array can be arbitrarily large, so it is split into frames as bytes
arrive and only the frame currently being received is buffered.
"""

import codecs
import json
import re
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.errors.exceptions import DecodeError
from logscan.kusto.frames import (
    Frame,
    FullTable,
    RowFragment,
    RowSetReader,
    SchemaAnnouncement,
    StreamEnd,
)
from logscan.kusto.schema import Schema

# Characters that change nesting state outside / inside a JSON string
_STRUCTURAL = re.compile(r'[\[\]{}"]')
_STRING_SPECIAL = re.compile(r'["\\]')


class JsonFrameReader:
    """
    Incrementally split a top-level JSON array into its object elements.

    feed() accepts text in arbitrary pieces and returns the elements that
    became complete. Element boundaries are found with a small nesting
    scanner so each element is parsed exactly once.
    """

    def __init__(self):
        self._buf = ""
        self._pos = 0
        self._start: int | None = None
        self._depth = 0
        self._in_string = False
        self._opened = False
        self._closed = False

    def feed(self, text: str) -> list[Any]:
        self._buf += text
        buf = self._buf
        n = len(buf)
        pos = self._pos
        elements: list[Any] = []

        while pos < n:
            if self._in_string:
                m = _STRING_SPECIAL.search(buf, pos)
                if m is None:
                    pos = n
                    break
                if m.group() == "\\":
                    if m.start() + 1 >= n:
                        # Escaped character not received yet
                        pos = m.start()
                        break
                    pos = m.start() + 2
                    continue
                self._in_string = False
                pos = m.end()
                continue

            if self._start is not None:
                m = _STRUCTURAL.search(buf, pos)
                if m is None:
                    pos = n
                    break
                ch = m.group()
                pos = m.end()
                if ch == '"':
                    self._in_string = True
                elif ch in "{[":
                    self._depth += 1
                else:
                    self._depth -= 1
                    if self._depth == 0:
                        elements.append(self._parse(buf[self._start:pos]))
                        self._start = None
                continue

            ch = buf[pos]
            if ch.isspace() or ch == "\ufeff":
                pos += 1
            elif not self._opened:
                if ch != "[":
                    raise DecodeError(
                        f"Expected a JSON array of frames, got {buf[pos:pos + 40]!r}"
                    )
                self._opened = True
                pos += 1
            elif self._closed:
                raise DecodeError(f"Unexpected data after end of frame array: {buf[pos:pos + 40]!r}")
            elif ch == ",":
                pos += 1
            elif ch == "]":
                self._closed = True
                pos += 1
            elif ch == "{":
                self._start = pos
                self._depth = 1
                pos += 1
            else:
                raise DecodeError(f"Expected a frame object, got {buf[pos:pos + 40]!r}")

        # Keep only the unfinished element (if any) in the buffer
        keep_from = self._start if self._start is not None else pos
        self._buf = buf[keep_from:]
        self._pos = pos - keep_from
        if self._start is not None:
            self._start = 0
        return elements

    @staticmethod
    def _parse(text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Malformed frame JSON: {e}", cause=e) from e

    def close(self) -> None:
        """Check the array was complete."""
        if not self._opened:
            raise DecodeError("Empty response: no frame array received")
        if self._start is not None or not self._closed:
            raise DecodeError("Response ended before the frame array was complete")

    @property
    def finished(self) -> bool:
        return self._closed


async def iter_json_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Yield raw frame dicts from a byte-chunk stream holding a JSON frame array."""
    parser = JsonFrameReader()
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        async for chunk in chunks:
            for element in parser.feed(decoder.decode(chunk)):
                yield element
        for element in parser.feed(decoder.decode(b"", final=True)):
            yield element
    except UnicodeDecodeError as e:
        raise DecodeError(f"Response is not valid UTF-8: {e}", cause=e) from e
    parser.close()


# =============================================================================
# Wire frame models
# =============================================================================


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class KustoColumn(_WireModel):
    name: str = Field(..., alias="ColumnName")
    type: str = Field(..., alias="ColumnType")


class TableHeaderFrame(_WireModel):
    table_id: int = Field(0, alias="TableId")
    table_kind: str = Field("", alias="TableKind")
    table_name: str = Field("", alias="TableName")
    columns: list[KustoColumn] = Field(..., alias="Columns")


class TableFragmentFrame(_WireModel):
    table_id: int = Field(0, alias="TableId")
    fragment_type: str = Field("DataAppend", alias="TableFragmentType")
    rows: list[Any] = Field(..., alias="Rows")


class DataTableFrame(_WireModel):
    table_id: int = Field(0, alias="TableId")
    table_kind: str = Field("", alias="TableKind")
    table_name: str = Field("", alias="TableName")
    columns: list[KustoColumn] = Field(default_factory=list, alias="Columns")
    rows: list[Any] = Field(default_factory=list, alias="Rows")


class DataSetCompletionFrame(_WireModel):
    has_errors: bool = Field(False, alias="HasErrors")
    cancelled: bool = Field(False, alias="Cancelled")
    one_api_errors: list[Any] = Field(default_factory=list, alias="OneApiErrors")


def _schema(columns: list[KustoColumn]) -> Schema:
    return Schema.from_pairs((c.name, c.type) for c in columns)


def _check_rows(rows: list[Any], table_id: int) -> list[Any]:
    # Partial query failures show up as {"OneApiErrors": [...]} in place of a row
    for row in rows:
        if not isinstance(row, list):
            raise DecodeError(
                f"Query reported an error inside the result rows: {str(row)[:500]}",
                context={"table_id": table_id},
            )
    return rows


def to_frame(raw: Any) -> Frame | None:
    """
    Map a raw v2 frame dict to a decoder frame.

    Returns None for frames the decoder has no use for (DataSetHeader,
    TableProgress, TableCompletion, unknown future frame types).

    Raises:
        DecodeError: If the frame does not match the v2 wire format.
    """
    if not isinstance(raw, dict):
        raise DecodeError(f"Frame is not a JSON object: {str(raw)[:100]}")

    frame_type = raw.get("FrameType")
    if not frame_type:
        raise DecodeError("Frame has no FrameType", context={"keys": sorted(raw)[:10]})

    try:
        if frame_type == "TableHeader":
            header = TableHeaderFrame.model_validate(raw)
            return SchemaAnnouncement(
                schema=_schema(header.columns),
                table_id=header.table_id,
                table_name=header.table_name,
            )

        if frame_type == "TableFragment":
            fragment = TableFragmentFrame.model_validate(raw)
            return RowFragment(
                rows=_check_rows(fragment.rows, fragment.table_id),
                table_id=fragment.table_id,
                replace=fragment.fragment_type == "DataReplace",
            )

        if frame_type == "DataTable":
            table = DataTableFrame.model_validate(raw)
            return FullTable(
                table_kind=table.table_kind,
                reader=RowSetReader([_check_rows(table.rows, table.table_id)]),
                table_id=table.table_id,
                table_name=table.table_name,
                schema=_schema(table.columns),
            )

        if frame_type == "DataSetCompletion":
            completion = DataSetCompletionFrame.model_validate(raw)
            return StreamEnd(
                has_errors=completion.has_errors,
                cancelled=completion.cancelled,
                errors=completion.one_api_errors,
            )

    except ValidationError as e:
        raise DecodeError(
            f"Malformed {frame_type} frame: {e.error_count()} validation error(s)",
            cause=e,
            context={"frame_type": frame_type},
        ) from e

    return None


async def iter_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[Frame]:
    """Decode a v2 response body into decoder frames, skipping frames with no meaning for it."""
    async for raw in iter_json_frames(chunks):
        frame = to_frame(raw)
        if frame is not None:
            yield frame


__all__ = [
    "JsonFrameReader",
    "iter_json_frames",
    "KustoColumn",
    "TableHeaderFrame",
    "TableFragmentFrame",
    "DataTableFrame",
    "DataSetCompletionFrame",
    "to_frame",
    "iter_frames",
]
