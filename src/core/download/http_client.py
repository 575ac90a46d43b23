"""
Shared aiohttp session factory.

Provides connection pooling and timeout defaults for both the query client
and the log scanners so the process holds a single pool.
"""

import aiohttp


def create_session(
    max_connections: int = 100,
    max_connections_per_host: int = 0,
    enable_ssl: bool = True,
    timeout_total: float = 300,
    timeout_connect: float = 30,
    timeout_sock_read: float = 60,
    trust_env: bool = True,
) -> aiohttp.ClientSession:
    """
    Create aiohttp ClientSession with connection pooling and timeouts.

    Connection pool configuration:
    - max_connections: Total concurrent connections across all hosts. Should be
      at least the scan concurrency so the gate, not the pool, is the limit.
    - max_connections_per_host: Per-host limit (0 = unlimited). Log artifacts
      usually live on one storage host, so the default leaves it open.

    Timeout configuration prevents indefinite hangs:
    - timeout_total: Total time for the entire request
    - timeout_connect: Time to acquire a connection
    - timeout_sock_read: Max time between reads

    Per-request timeouts passed to session.get() override these defaults.

    Args:
        max_connections: Total connection pool size
        max_connections_per_host: Per-host connection limit
        enable_ssl: Enable SSL verification (disable only for testing)
        timeout_total: Total timeout in seconds
        timeout_connect: Connection timeout in seconds
        timeout_sock_read: Socket read timeout in seconds
        trust_env: Honour HTTP(S)_PROXY environment variables

    Returns:
        Configured aiohttp.ClientSession

    Note:
        Caller is responsible for session lifecycle management:

        async with create_session() as session:
            ...
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
        ssl=enable_ssl,
        ttl_dns_cache=300,
    )

    timeout = aiohttp.ClientTimeout(
        total=timeout_total,
        connect=timeout_connect,
        sock_read=timeout_sock_read,
    )

    return aiohttp.ClientSession(connector=connector, timeout=timeout, trust_env=trust_env)


__all__ = ["create_session"]
