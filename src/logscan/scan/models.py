"""
Data models for fetch-and-scan operations.

- ScanStatus: Terminal state of one scan
- ScanOutcome: Result of scanning one URI with diagnostic metadata
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.errors.exceptions import ErrorCategory


class ScanStatus(Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    SKIPPED_MALFORMED_URI = "skipped_malformed_uri"
    SKIPPED_TOO_LARGE = "skipped_too_large"
    FETCH_ERROR = "fetch_error"


@dataclass
class ScanOutcome:
    """
    Result of scanning one log artifact.

    Match case:
        status=MATCHED, line holds the first matching line

    Failure case:
        status=FETCH_ERROR, error_message and error_category set

    Attributes:
        uri: The URI that was scanned (may be None or malformed)
        status: Terminal state
        line: First matching line (MATCHED only)
        status_code: HTTP status code (None if no response was received)
        content_length: Declared Content-Length (None if absent)
        bytes_read: Body bytes consumed before stopping
        duration_seconds: Wall time of the scan
        error_message: Error description (FETCH_ERROR / skips)
        error_category: Error classification (FETCH_ERROR only)
    """

    uri: Optional[str]
    status: ScanStatus
    line: Optional[str] = None
    status_code: Optional[int] = None
    content_length: Optional[int] = None
    bytes_read: int = 0
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    error_category: Optional[ErrorCategory] = None

    @property
    def matched(self) -> bool:
        return self.status is ScanStatus.MATCHED

    @property
    def is_error(self) -> bool:
        return self.status is ScanStatus.FETCH_ERROR

    @classmethod
    def match(
        cls,
        uri: str,
        line: str,
        status_code: int,
        bytes_read: int,
        content_length: Optional[int] = None,
    ) -> "ScanOutcome":
        return cls(
            uri=uri,
            status=ScanStatus.MATCHED,
            line=line,
            status_code=status_code,
            content_length=content_length,
            bytes_read=bytes_read,
        )

    @classmethod
    def no_match(
        cls,
        uri: str,
        status_code: int,
        bytes_read: int,
        content_length: Optional[int] = None,
    ) -> "ScanOutcome":
        return cls(
            uri=uri,
            status=ScanStatus.NO_MATCH,
            status_code=status_code,
            content_length=content_length,
            bytes_read=bytes_read,
        )

    @classmethod
    def malformed_uri(cls, uri: Optional[str], reason: str) -> "ScanOutcome":
        """URI rejected before any network call."""
        return cls(
            uri=uri,
            status=ScanStatus.SKIPPED_MALFORMED_URI,
            error_message=reason,
        )

    @classmethod
    def too_large(
        cls,
        uri: str,
        content_length: Optional[int],
        max_content_length: int,
        status_code: Optional[int] = None,
        bytes_read: int = 0,
    ) -> "ScanOutcome":
        """
        Body exceeds the size cap.

        content_length is the declared size when known. When the server did
        not declare one, the cap is enforced on bytes actually read.
        """
        size = content_length if content_length is not None else bytes_read
        return cls(
            uri=uri,
            status=ScanStatus.SKIPPED_TOO_LARGE,
            status_code=status_code,
            content_length=content_length,
            bytes_read=bytes_read,
            error_message=f"Content size {size} exceeds limit {max_content_length}",
        )

    @classmethod
    def fetch_error(
        cls,
        uri: Optional[str],
        error_message: str,
        error_category: ErrorCategory,
        status_code: Optional[int] = None,
        bytes_read: int = 0,
    ) -> "ScanOutcome":
        """
        Transport failure: connection error, timeout, malformed response or
        non-2xx status.
        """
        return cls(
            uri=uri,
            status=ScanStatus.FETCH_ERROR,
            status_code=status_code,
            bytes_read=bytes_read,
            error_message=error_message,
            error_category=error_category,
        )


__all__ = ["ScanStatus", "ScanOutcome"]
