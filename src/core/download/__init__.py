"""
Async HTTP streaming helpers.

Provides:
    - create_session: Pooled aiohttp session with timeout defaults
    - stream_download_url: Streaming GET returning headers before the body
    - iter_lines: Chunk stream to text line conversion

Example usage:
    from core.download import create_session, iter_lines, stream_download_url

    async with create_session() as session:
        response, error = await stream_download_url(url, session)
        if error is None:
            try:
                async for line in iter_lines(response.chunk_iterator):
                    ...
            finally:
                await response.aclose()
"""

from core.download.http_client import create_session
from core.download.streaming import (
    CHUNK_SIZE,
    StreamDownloadError,
    StreamDownloadResponse,
    iter_lines,
    stream_download_url,
)

__all__ = [
    "create_session",
    "stream_download_url",
    "iter_lines",
    "StreamDownloadResponse",
    "StreamDownloadError",
    "CHUNK_SIZE",
]
