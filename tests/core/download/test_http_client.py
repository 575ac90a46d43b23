"""
Tests for core.download.http_client module.

Tests cover session creation and connection pool configuration.
"""

import aiohttp
import pytest

from core.download.http_client import create_session


class TestCreateSession:
    """Tests for create_session function."""

    @pytest.mark.asyncio
    async def test_creates_session_with_defaults(self):
        session = create_session()
        try:
            assert isinstance(session, aiohttp.ClientSession)
            assert session.connector.limit == 100
            assert session.connector.limit_per_host == 0
            assert session.timeout.total == 300
            assert session.timeout.connect == 30
            assert session.timeout.sock_read == 60
            assert session.trust_env is True
        finally:
            await session.close()

    @pytest.mark.asyncio
    async def test_custom_pool_and_timeouts(self):
        session = create_session(
            max_connections=54,
            max_connections_per_host=10,
            timeout_total=120,
            timeout_connect=5,
            timeout_sock_read=15,
            trust_env=False,
        )
        try:
            assert session.connector.limit == 54
            assert session.connector.limit_per_host == 10
            assert session.timeout.total == 120
            assert session.timeout.connect == 5
            assert session.timeout.sock_read == 15
            assert session.trust_env is False
        finally:
            await session.close()

    @pytest.mark.asyncio
    async def test_usable_as_context_manager(self):
        async with create_session(max_connections=4) as session:
            assert not session.closed

        assert session.closed
