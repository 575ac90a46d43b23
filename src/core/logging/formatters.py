"""Log formatters for JSON and console output."""

import json
import logging
import sys
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from core.logging.context import get_log_context
from core.security.url_validation import sanitize_url


def json_serializer(obj: Any) -> Any:
    """
    Type-safe JSON fallback serializer.

    Keeps numbers numeric and renders the few non-JSON types we log
    (datetimes, enums, paths) explicitly instead of str()-ing everything.
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    return str(obj)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs to remove SAS signatures and tokens before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "trace_id",
        "duration_ms",
        # HTTP
        "http_status",
        "url",
        "status_code",
        "content_length",
        "bytes_read",
        # Errors
        "error_category",
        "error_message",
        "error_code",
        "error",
        "error_type",
        # Scan tracking
        "outcome",
        "scans_started",
        "scans_completed",
        "scans_matched",
        "scans_failed",
        "scans_skipped",
        "scans_cancelled",
        "in_flight",
        "concurrency",
        "elapsed_seconds",
        "avg_seconds_per_scan",
        # Resilience
        "attempt",
        "max_retries",
        "delay_seconds",
        "retry_after",
        # Decoder
        "table_id",
        "table_name",
        "table_kind",
        "column",
        "columns",
        "declared_type",
        "rows",
        "frames",
        # KQL/Kusto
        "cluster_url",
        "database",
        "query",
        "query_length",
        "auth_mode",
        # Metrics server
        "actual_port",
        "preferred_port",
    ]

    NUMERIC_FIELDS = {
        "duration_ms": float,
        "elapsed_seconds": float,
        "avg_seconds_per_scan": float,
        "delay_seconds": float,
        "retry_after": float,
        "http_status": int,
        "status_code": int,
        "content_length": int,
        "bytes_read": int,
        "scans_started": int,
        "scans_completed": int,
        "scans_matched": int,
        "scans_failed": int,
        "scans_skipped": int,
        "scans_cancelled": int,
        "in_flight": int,
        "concurrency": int,
        "attempt": int,
        "max_retries": int,
        "table_id": int,
        "rows": int,
        "frames": int,
        "query_length": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["url", "cluster_url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return sanitize_url(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        """Coerce numeric fields so downstream aggregation sees numbers, not strings."""
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        try:
            return self.NUMERIC_FIELDS[field](value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field in ("run_id", "stage", "trace_id"):
            if log_context.get(field):
                log_entry[field] = log_context[field]

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)
        self._inject_context(log_entry, get_log_context())

        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when the target stream is not a TTY.
    """

    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, stream=None, **kwargs):
        super().__init__(*args, **kwargs)
        stream = stream if stream is not None else sys.stderr
        self._use_colors = hasattr(stream, "isatty") and stream.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_prefix(level_name: str, log_context: dict[str, Any]) -> str:
        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            level_name,
        ]
        if log_context.get("stage"):
            parts.append(f"[{log_context['stage']}]")
        return " - ".join(parts)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output with optional color coding."""
        log_context = get_log_context()

        prefix = self._build_prefix(self._format_level_name(record), log_context)
        trace_id = getattr(record, "trace_id", None) or log_context.get("trace_id")
        message = record.getMessage()

        if trace_id:
            message = f"[{trace_id[:8]}] {message}"

        line = f"{prefix} - {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
