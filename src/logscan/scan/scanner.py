"""
Fetch-and-scan of a single log artifact.

Clean interface: URI -> ScanOutcome. Every failure mode a single artifact
can have is turned into an outcome; nothing here raises for a bad URI, a
bad server or a dropped connection.
"""

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator

import aiohttp

from core.download import iter_lines, stream_download_url
from core.errors.exceptions import ErrorCategory
from core.security.exceptions import URLValidationError
from core.security.url_validation import sanitize_error_message, sanitize_url, validate_scan_url
from logscan.output import MatchSink
from logscan.scan.models import ScanOutcome

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "No space left on device"
DEFAULT_MAX_CONTENT_LENGTH = 100_000_000


class _ContentTooLarge(Exception):
    pass


class LogScanner:
    """
    Stream a log over HTTP and stop at the first line matching a pattern.

    The pattern is a case-insensitive regular expression. Bodies declaring a
    Content-Length above max_content_length are skipped without being read;
    bodies without a declared length are cut off once that many bytes have
    been read.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        pattern: str | re.Pattern = DEFAULT_PATTERN,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        fetch_timeout: float = 300,
        sock_read_timeout: float = 60,
        output: MatchSink | None = None,
    ):
        self._session = session
        self.pattern = (
            pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, re.IGNORECASE)
        )
        self.max_content_length = max_content_length
        self.fetch_timeout = fetch_timeout
        self.sock_read_timeout = sock_read_timeout
        self.output = output

    async def scan(self, uri: str | None) -> ScanOutcome:
        """Scan one URI. Never raises for per-artifact failures."""
        start_time = time.perf_counter()
        outcome = await self._scan(uri)
        outcome.duration_seconds = time.perf_counter() - start_time

        if outcome.matched and self.output is not None:
            self.output.report_match(outcome.uri, outcome.line)

        logger.debug(
            "Scan finished",
            extra={
                "url": outcome.uri,
                "outcome": outcome.status.value,
                "status_code": outcome.status_code,
                "bytes_read": outcome.bytes_read,
                "duration_ms": round(outcome.duration_seconds * 1000, 2),
            },
        )
        return outcome

    async def _scan(self, uri: str | None) -> ScanOutcome:
        # Step 1: Reject what can't be fetched before touching the network
        try:
            url = validate_scan_url(uri)
        except URLValidationError as e:
            return ScanOutcome.malformed_uri(uri, str(e))

        # Step 2: Open the response, headers only
        response, error = await stream_download_url(
            url,
            self._session,
            timeout=self.fetch_timeout,
            sock_read_timeout=self.sock_read_timeout,
        )
        if error:
            return ScanOutcome.fetch_error(
                url,
                error_message=error.error_message,
                error_category=error.error_category,
                status_code=error.status_code,
            )

        bytes_read = 0

        async def counted(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
            nonlocal bytes_read
            async for chunk in chunks:
                bytes_read += len(chunk)
                if bytes_read > self.max_content_length:
                    raise _ContentTooLarge()
                yield chunk

        try:
            # Step 3: Size cap on the declared length, body unread
            content_length = response.content_length
            if content_length is not None and content_length > self.max_content_length:
                return ScanOutcome.too_large(
                    url,
                    content_length,
                    self.max_content_length,
                    status_code=response.status_code,
                )

            # Step 4: Line scan, first match wins
            async for line in iter_lines(counted(response.chunk_iterator)):
                if self.pattern.search(line):
                    return ScanOutcome.match(
                        url,
                        line,
                        status_code=response.status_code,
                        bytes_read=bytes_read,
                        content_length=content_length,
                    )

            return ScanOutcome.no_match(
                url,
                status_code=response.status_code,
                bytes_read=bytes_read,
                content_length=content_length,
            )

        except _ContentTooLarge:
            return ScanOutcome.too_large(
                url,
                response.content_length,
                self.max_content_length,
                status_code=response.status_code,
                bytes_read=bytes_read,
            )

        except asyncio.TimeoutError:
            return ScanOutcome.fetch_error(
                url,
                error_message=f"Read timeout after {bytes_read} bytes",
                error_category=ErrorCategory.TRANSIENT,
                status_code=response.status_code,
                bytes_read=bytes_read,
            )

        except aiohttp.ClientError as e:
            # Dropped connection, truncated or malformed body
            return ScanOutcome.fetch_error(
                url,
                error_message=f"Connection error: {sanitize_error_message(str(e))}",
                error_category=ErrorCategory.TRANSIENT,
                status_code=response.status_code,
                bytes_read=bytes_read,
            )

        finally:
            # Releases the connection early on match / skip
            await response.aclose()

    def __repr__(self) -> str:
        return (
            f"LogScanner(pattern={self.pattern.pattern!r}, "
            f"max_content_length={self.max_content_length})"
        )


def describe(outcome: ScanOutcome) -> str:
    """One-line summary of an outcome, safe for logs."""
    text = f"{outcome.status.value} {sanitize_url(outcome.uri) if outcome.uri else outcome.uri!r}"
    if outcome.error_message:
        text = f"{text}: {sanitize_error_message(outcome.error_message, max_length=200)}"
    return text


__all__ = ["DEFAULT_PATTERN", "DEFAULT_MAX_CONTENT_LENGTH", "LogScanner", "describe"]
