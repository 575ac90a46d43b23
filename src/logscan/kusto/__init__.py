"""Kusto progressive query infrastructure."""

from logscan.kusto.decoder import DEFAULT_COLUMN, DecoderStats, FrameDecoder
from logscan.kusto.frames import (
    Frame,
    FullTable,
    RowFragment,
    RowSetReader,
    SchemaAnnouncement,
    StreamEnd,
)
from logscan.kusto.protocol import iter_frames, iter_json_frames, to_frame
from logscan.kusto.query_client import ProgressiveQueryClient
from logscan.kusto.schema import Row, Schema, ValueKind

__all__ = [
    # Schema
    "Schema",
    "Row",
    "ValueKind",
    # Frames
    "Frame",
    "SchemaAnnouncement",
    "RowFragment",
    "FullTable",
    "StreamEnd",
    "RowSetReader",
    # Decoding
    "FrameDecoder",
    "DecoderStats",
    "DEFAULT_COLUMN",
    # Wire protocol
    "iter_json_frames",
    "iter_frames",
    "to_frame",
    # Client
    "ProgressiveQueryClient",
]
