"""
Streaming HTTP reads with memory bounds.

Provides chunked streaming of response bodies so that large artifacts can be
inspected line by line without holding them in memory, and abandoned early
once the caller has what it needs.
"""

import asyncio
import re
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from core.errors.exceptions import ErrorCategory, classify_http_status

CHUNK_SIZE = 64 * 1024  # 64KB chunks keep the first-match latency low

_LINE_END = re.compile(rb"[\r\n]")
_CR = ord("\r")
_LF = ord("\n")


@dataclass
class StreamDownloadResponse:
    """
    Response from a streaming HTTP request, headers read and body pending.

    Attributes:
        status_code: HTTP status code
        content_length: Size in bytes (from Content-Length header)
        content_type: MIME type (from Content-Type header)
        chunk_iterator: Async iterator yielding byte chunks

    The body must be consumed or aclose() called, otherwise the
    connection is not returned to the pool.
    """

    status_code: int
    content_length: Optional[int]
    content_type: Optional[str]
    chunk_iterator: AsyncIterator[bytes]
    _response_ctx: Any = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)

    async def aclose(self) -> None:
        """Release the response. Unread body bytes are discarded."""
        if self._closed:
            return
        self._closed = True
        await self.chunk_iterator.aclose()
        if self._response_ctx is not None:
            await self._response_ctx.__aexit__(None, None, None)


@dataclass
class StreamDownloadError:
    """
    Error result from a failed streaming request.

    Attributes:
        status_code: HTTP status code if received
        error_message: Error description
        error_category: Classification for retry decisions
    """

    status_code: Optional[int]
    error_message: str
    error_category: ErrorCategory


async def stream_download_url(
    url: str,
    session: aiohttp.ClientSession,
    timeout: float = 60,
    chunk_size: int = CHUNK_SIZE,
    allow_redirects: bool = True,
    sock_read_timeout: float = 30,
) -> tuple[Optional[StreamDownloadResponse], Optional[StreamDownloadError]]:
    """
    Open a streaming GET and return once the response headers are in.

    Does NOT perform:
    - URL validation (caller's responsibility)
    - Retry logic (higher-level concern)

    Args:
        url: URL to fetch
        session: aiohttp ClientSession (caller manages lifecycle)
        timeout: Total timeout in seconds for the whole request
        chunk_size: Size of body chunks in bytes
        allow_redirects: Whether to follow redirects
        sock_read_timeout: Timeout for individual socket reads. Prevents hanging
            on stalled connections where the server stops sending data.

    Returns:
        Tuple of (StreamDownloadResponse, None) on success
        or (None, StreamDownloadError) on failure

    Example:
        async with aiohttp.ClientSession() as session:
            response, error = await stream_download_url(url, session)
            if error:
                ...
            else:
                try:
                    async for chunk in response.chunk_iterator:
                        ...
                finally:
                    await response.aclose()
    """
    try:
        response_ctx = session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout, sock_read=sock_read_timeout),
            allow_redirects=allow_redirects,
        )

        response = await response_ctx.__aenter__()

        if not 200 <= response.status < 300:
            await response_ctx.__aexit__(None, None, None)
            return None, StreamDownloadError(
                status_code=response.status,
                error_message=f"HTTP {response.status}",
                error_category=classify_http_status(response.status),
            )

        async def chunk_iterator() -> AsyncIterator[bytes]:
            async for chunk in response.content.iter_chunked(chunk_size):
                yield chunk

        return (
            StreamDownloadResponse(
                status_code=response.status,
                content_length=response.content_length,
                content_type=response.headers.get("Content-Type"),
                chunk_iterator=chunk_iterator(),
                _response_ctx=response_ctx,
            ),
            None,
        )

    except asyncio.TimeoutError:
        return None, StreamDownloadError(
            status_code=None,
            error_message=f"Download timeout after {timeout}s",
            error_category=ErrorCategory.TRANSIENT,
        )

    except aiohttp.InvalidURL as e:
        return None, StreamDownloadError(
            status_code=None,
            error_message=f"Invalid URL: {str(e)}",
            error_category=ErrorCategory.PERMANENT,
        )

    except aiohttp.ClientError as e:
        # Connection errors, DNS failures, malformed responses, etc.
        return None, StreamDownloadError(
            status_code=None,
            error_message=f"Connection error: {str(e)}",
            error_category=ErrorCategory.TRANSIENT,
        )


async def iter_lines(
    chunks: AsyncIterable[bytes],
    encoding: str = "utf-8",
) -> AsyncIterator[str]:
    """
    Split a chunk stream into text lines.

    A line ends at \\n, \\r\\n or a lone \\r; terminators are stripped. A
    trailing line without a terminator is still yielded. Undecodable bytes
    are replaced rather than failing the read.

    Each byte is scanned once, so a long line costs linear time.
    """
    buf = bytearray()
    scan_from = 0
    async for chunk in chunks:
        buf += chunk
        start = 0
        pos = scan_from
        while True:
            match = _LINE_END.search(buf, pos)
            if match is None:
                pos = len(buf)
                break
            end = match.start()
            if buf[end] == _CR:
                if end + 1 == len(buf):
                    # \r at the chunk edge: the next chunk decides \r vs \r\n
                    pos = end
                    break
                next_start = end + 2 if buf[end + 1] == _LF else end + 1
            else:
                next_start = end + 1
            yield buf[start:end].decode(encoding, errors="replace")
            start = pos = next_start
        del buf[:start]
        scan_from = pos - start
    if buf:
        if buf[-1] == _CR:
            del buf[-1]
        yield buf.decode(encoding, errors="replace")


__all__ = [
    "CHUNK_SIZE",
    "StreamDownloadResponse",
    "StreamDownloadError",
    "stream_download_url",
    "iter_lines",
]
