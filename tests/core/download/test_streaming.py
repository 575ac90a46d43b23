"""
Tests for streaming HTTP reads.

Tests header-first responses, early release of the connection and line
splitting of chunk streams.
"""

import asyncio
import time
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from core.download.streaming import (
    CHUNK_SIZE,
    iter_lines,
    stream_download_url,
)
from core.errors.exceptions import ErrorCategory


@pytest.fixture
def mock_session():
    """Create mock aiohttp ClientSession."""
    return Mock(spec=aiohttp.ClientSession)


@pytest.fixture
def mock_response():
    """Create mock aiohttp ClientResponse."""
    response = Mock()
    response.status = 200
    response.content_length = 18
    response.headers = {"Content-Type": "text/plain"}
    return response


def mock_context(mock_session, response=None, error=None):
    mock_ctx = AsyncMock()
    if error is not None:
        mock_ctx.__aenter__ = AsyncMock(side_effect=error)
    else:
        mock_ctx.__aenter__ = AsyncMock(return_value=response)
    mock_ctx.__aexit__ = AsyncMock(return_value=None)
    mock_session.get = Mock(return_value=mock_ctx)
    return mock_ctx


async def agen(items):
    for item in items:
        yield item


async def collect(aiter):
    return [item async for item in aiter]


@pytest.mark.asyncio
async def test_stream_download_url_success(mock_session, mock_response):
    """Headers are returned before the body is read."""
    chunks = [b"line one\n", b"line two\n"]

    async def mock_iter_chunked(chunk_size):
        for chunk in chunks:
            yield chunk

    mock_response.content = Mock()
    mock_response.content.iter_chunked = mock_iter_chunked
    mock_ctx = mock_context(mock_session, mock_response)

    result, error = await stream_download_url(
        "https://logs.example.com/console.log",
        mock_session,
        timeout=60,
        chunk_size=CHUNK_SIZE,
    )

    assert error is None
    assert result.status_code == 200
    assert result.content_length == 18
    assert result.content_type == "text/plain"
    mock_ctx.__aexit__.assert_not_called()

    assert await collect(result.chunk_iterator) == chunks

    call_args = mock_session.get.call_args
    assert call_args[0][0] == "https://logs.example.com/console.log"
    assert call_args[1]["allow_redirects"] is True
    assert call_args[1]["timeout"].total == 60


@pytest.mark.asyncio
async def test_aclose_releases_response(mock_session, mock_response):
    """Closing without reading the body exits the response context once."""

    async def mock_iter_chunked(chunk_size):
        yield b"never read"

    mock_response.content = Mock()
    mock_response.content.iter_chunked = mock_iter_chunked
    mock_ctx = mock_context(mock_session, mock_response)

    result, _ = await stream_download_url("https://logs.example.com/a.log", mock_session)
    await result.aclose()
    await result.aclose()

    mock_ctx.__aexit__.assert_called_once()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,category",
    [(404, ErrorCategory.PERMANENT), (503, ErrorCategory.TRANSIENT), (401, ErrorCategory.AUTH)],
)
async def test_stream_download_url_http_error(mock_session, mock_response, status, category):
    """Non-2xx status closes the response and returns an error."""
    mock_response.status = status
    mock_ctx = mock_context(mock_session, mock_response)

    result, error = await stream_download_url("https://logs.example.com/x.log", mock_session)

    assert result is None
    assert error.status_code == status
    assert error.error_message == f"HTTP {status}"
    assert error.error_category == category
    mock_ctx.__aexit__.assert_called_once()


@pytest.mark.asyncio
async def test_stream_download_url_timeout(mock_session):
    mock_context(mock_session, error=asyncio.TimeoutError())

    result, error = await stream_download_url(
        "https://logs.example.com/slow.log", mock_session, timeout=5
    )

    assert result is None
    assert error.status_code is None
    assert error.error_message == "Download timeout after 5s"
    assert error.error_category == ErrorCategory.TRANSIENT


@pytest.mark.asyncio
async def test_stream_download_url_connection_error(mock_session):
    mock_context(mock_session, error=aiohttp.ClientConnectionError("Connection refused"))

    result, error = await stream_download_url("https://logs.example.com/a.log", mock_session)

    assert result is None
    assert error.error_message == "Connection error: Connection refused"
    assert error.error_category == ErrorCategory.TRANSIENT


@pytest.mark.asyncio
async def test_stream_download_url_invalid_url(mock_session):
    mock_context(mock_session, error=aiohttp.InvalidURL("not a url"))

    result, error = await stream_download_url("not a url", mock_session)

    assert result is None
    assert error.error_category == ErrorCategory.PERMANENT
    assert error.error_message.startswith("Invalid URL")


class TestIterLines:

    @pytest.mark.asyncio
    async def test_splits_lines_across_chunks(self):
        chunks = [b"first li", b"ne\nsecond\nthi", b"rd"]

        assert await collect(iter_lines(agen(chunks))) == ["first line", "second", "third"]

    @pytest.mark.asyncio
    async def test_strips_crlf(self):
        assert await collect(iter_lines(agen([b"a\r\nb\r\n"]))) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_lines_kept(self):
        assert await collect(iter_lines(agen([b"a\n\nb\n"]))) == ["a", "", "b"]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert await collect(iter_lines(agen([]))) == []

    @pytest.mark.asyncio
    async def test_multibyte_split_across_chunks(self):
        data = "disque plein: é\n".encode()

        assert await collect(iter_lines(agen([data[:-2], data[-2:]]))) == ["disque plein: é"]

    @pytest.mark.asyncio
    async def test_invalid_bytes_replaced(self):
        lines = await collect(iter_lines(agen([b"bad \xff byte\n"])))

        assert lines == ["bad \ufffd byte"]

    @pytest.mark.asyncio
    async def test_stops_pulling_when_consumer_stops(self):
        pulled = []

        async def chunks():
            for chunk in (b"hit\n", b"later\n"):
                pulled.append(chunk)
                yield chunk

        async for line in iter_lines(chunks()):
            assert line == "hit"
            break

        assert pulled == [b"hit\n"]

    @pytest.mark.asyncio
    async def test_lone_cr_ends_line(self):
        chunks = [b"Downloading 10%\rDownloading 50%\rdone\n"]

        assert await collect(iter_lines(agen(chunks))) == [
            "Downloading 10%",
            "Downloading 50%",
            "done",
        ]

    @pytest.mark.asyncio
    async def test_crlf_split_across_chunks(self):
        chunks = [b"first\r", b"\nsecond\r", b"third"]

        assert await collect(iter_lines(agen(chunks))) == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_trailing_cr_at_end_of_stream(self):
        assert await collect(iter_lines(agen([b"last line\r"]))) == ["last line"]

    @pytest.mark.asyncio
    async def test_long_line_is_linear(self):
        chunk = b"x" * CHUNK_SIZE
        count = (32 * 1024 * 1024) // CHUNK_SIZE

        async def chunks():
            for _ in range(count):
                yield chunk
            yield b"\nend\n"

        started = time.perf_counter()
        lines = await collect(iter_lines(chunks()))
        elapsed = time.perf_counter() - started

        assert [len(line) for line in lines] == [count * CHUNK_SIZE, 3]
        assert elapsed < 3.0
