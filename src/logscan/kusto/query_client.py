"""
Progressive query client for Azure Data Explorer (Kusto).

Posts a KQL query to the v2 REST endpoint with progressive results enabled
and exposes the response as an async stream of decoder frames. The response
body is parsed as it arrives, so arbitrarily large results never sit in
memory.
"""

import asyncio
import logging
import os
import time
import uuid
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import aiohttp
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from core import __version__
from core.download import CHUNK_SIZE, create_session
from core.errors.classifiers import KustoErrorClassifier
from core.errors.exceptions import KustoError, KustoQueryError, LogScanError, ThrottlingError
from logscan.kusto.frames import Frame, StreamEnd
from logscan.kusto.protocol import iter_frames

if TYPE_CHECKING:
    from logscan.config import LogScanConfig

logger = logging.getLogger(__name__)

QUERY_PATH = "/v2/rest/query"
CLIENT_NAME = "logscan"

# Refresh tokens this many seconds before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 300

# Slack on top of the server-side timeout before the socket read gives up
SOCK_READ_MARGIN_SECONDS = 30


def format_timespan(seconds: float) -> str:
    """Format seconds as a Kusto timespan literal ([d.]hh:mm:ss)."""
    total = max(int(seconds), 0)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    text = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days}.{text}" if days else text


def create_credential(interactive: bool = False):
    """
    Pick an azure-identity credential.

    Authentication priority:
    1. SPN credentials (if AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID are set)
    2. DefaultAzureCredential (managed identity, CLI, etc.), optionally
       allowing the interactive browser flow

    Returns:
        Tuple of (credential, auth_mode)
    """
    client_id = os.getenv("AZURE_CLIENT_ID")
    client_secret = os.getenv("AZURE_CLIENT_SECRET")
    tenant_id = os.getenv("AZURE_TENANT_ID")

    if client_id and client_secret and tenant_id:
        logger.info(
            "Using SPN credentials for Kusto authentication",
            extra={"client_id": client_id[:8] + "..."},
        )
        return ClientSecretCredential(tenant_id, client_id, client_secret), "spn"

    return (
        DefaultAzureCredential(exclude_interactive_browser_credential=not interactive),
        "interactive" if interactive else "default",
    )


class ProgressiveQueryClient:
    """
    Async client streaming progressive query results from Kusto.

    Example:
        config = LogScanConfig.load_config()
        async with ProgressiveQueryClient(config) as client:
            async with aclosing(client.stream_frames(config.query)) as frames:
                async for uri in FrameDecoder().adecode(frames):
                    ...
    """

    def __init__(
        self,
        config: "LogScanConfig",
        session: aiohttp.ClientSession | None = None,
        credential: Any = None,
    ):
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._credential = credential
        self._owns_credential = credential is None
        self._token: Any = None
        self.auth_mode = "provided" if credential is not None else None

    async def __aenter__(self) -> "ProgressiveQueryClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def cluster_url(self) -> str:
        return self.config.cluster_url.rstrip("/")

    @property
    def scope(self) -> str:
        return f"{self.cluster_url}/.default"

    async def connect(self) -> None:
        """Create the credential and HTTP session. No network traffic yet."""
        if self._credential is None:
            self._credential, self.auth_mode = create_credential(self.config.interactive_auth)
        if self._session is None:
            self._session = create_session(max_connections=4)
            self._owns_session = True

        logger.info(
            "Kusto client ready",
            extra={
                "cluster_url": self.cluster_url,
                "database": self.config.database,
                "auth_mode": self.auth_mode,
            },
        )

    async def close(self) -> None:
        """Close owned resources."""
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

        if self._owns_credential and self._credential is not None:
            try:
                self._credential.close()
            except Exception as e:
                logger.warning("Error closing credential: %s", str(e)[:100])
            self._credential = None
        self._token = None

    async def _get_token(self) -> str:
        token = self._token
        if token is None or token.expires_on - time.time() < TOKEN_REFRESH_MARGIN_SECONDS:
            # azure-identity credentials are synchronous
            token = await asyncio.to_thread(self._credential.get_token, self.scope)
            self._token = token
        return token.token

    def _request_body(self, query: str, database: str) -> dict[str, Any]:
        return {
            "db": database,
            "csl": query,
            "properties": {
                "Options": {
                    "results_progressive_enabled": True,
                    "servertimeout": format_timespan(self.config.query_timeout_seconds),
                }
            },
        }

    async def _post_query(self, query: str, database: str):
        """Post the query and return (response_ctx, response) once headers are in."""
        token = await self._get_token()
        request_uuid = str(uuid.uuid4())
        request_id = f"{CLIENT_NAME};{request_uuid}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
            "x-ms-client-request-id": request_id,
            "x-ms-app": CLIENT_NAME,
            "x-ms-client-version": f"{CLIENT_NAME}/{__version__}",
        }
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=30,
            sock_read=self.config.query_timeout_seconds + SOCK_READ_MARGIN_SECONDS,
        )

        response_ctx = self._session.post(
            f"{self.cluster_url}{QUERY_PATH}",
            json=self._request_body(query, database),
            headers=headers,
            timeout=timeout,
            proxy=self.config.proxy_url,
        )
        response = await response_ctx.__aenter__()

        if response.status != 200:
            try:
                body = await response.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError):
                body = ""
            finally:
                await response_ctx.__aexit__(None, None, None)
            raise KustoErrorClassifier.classify_response(
                response.status,
                body,
                headers=response.headers,
                context={"database": database, "request_id": request_id},
            )

        logger.debug(
            "Query response opened",
            extra={"database": database, "status_code": response.status, "trace_id": request_uuid},
        )
        return response_ctx, response

    async def _open_response(self, query: str, database: str):
        """Open the query response with retry for retryable failures."""
        for attempt in range(self.config.max_retries):
            try:
                result = await self._post_query(query, database)
                if attempt > 0:
                    logger.info(
                        "Query succeeded after %d retries",
                        attempt,
                        extra={"attempt": attempt + 1, "query_length": len(query)},
                    )
                return result

            except KustoQueryError:
                # Syntax/semantic errors won't fix themselves
                raise

            except Exception as e:
                classified = KustoErrorClassifier.classify_exception(
                    e, {"operation": "open_query", "attempt": attempt + 1}
                )

                if classified.should_refresh_auth:
                    logger.info(
                        "Auth error detected, dropping cached token",
                        extra={"attempt": attempt + 1, "error": str(e)[:200]},
                    )
                    self._token = None

                if not classified.is_retryable or attempt + 1 >= self.config.max_retries:
                    if classified.is_retryable:
                        logger.error(
                            "Max retries exhausted for query",
                            extra={
                                "attempt": attempt + 1,
                                "max_retries": self.config.max_retries,
                                "error": str(e)[:200],
                            },
                        )
                    if classified is e:
                        raise
                    raise classified from e

                delay = min(
                    self.config.retry_base_delay_seconds * (2**attempt),
                    self.config.retry_max_delay_seconds,
                )
                if isinstance(classified, ThrottlingError) and classified.retry_after:
                    delay = max(delay, classified.retry_after)

                logger.warning(
                    "Retrying query after error",
                    extra={
                        "attempt": attempt + 1,
                        "max_retries": self.config.max_retries,
                        "delay_seconds": delay,
                        "error": str(e)[:200],
                    },
                )
                await asyncio.sleep(delay)

        raise KustoError("Query was not attempted: max_retries must be at least 1")

    async def stream_frames(
        self,
        query: str,
        database: str | None = None,
    ) -> AsyncIterator[Frame]:
        """
        Run a query and yield its frames as they arrive.

        Only opening the response is retried. Once frames have been handed
        out, failures propagate as classified LogScanErrors.

        Raises:
            KustoQueryError: The query was rejected or completed with errors.
            DecodeError: The response did not follow the v2 frame protocol.
        """
        if self._session is None or self._credential is None:
            await self.connect()

        db = database or self.config.database
        start_time = time.perf_counter()
        response_ctx, response = await self._open_response(query, db)
        frames = 0

        try:
            async for frame in iter_frames(response.content.iter_chunked(CHUNK_SIZE)):
                frames += 1
                if isinstance(frame, StreamEnd):
                    if frame.has_errors:
                        raise KustoQueryError(
                            f"Query completed with errors: {str(frame.errors)[:1000]}",
                            context={"database": db, "errors": frame.errors[:5]},
                        )
                    if frame.cancelled:
                        logger.warning("Query was cancelled by the service", extra={"database": db})
                yield frame

        except LogScanError:
            raise

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise KustoErrorClassifier.classify_exception(
                e, {"operation": "stream_frames", "frames": frames}
            ) from e

        finally:
            await response_ctx.__aexit__(None, None, None)
            logger.debug(
                "Query stream closed",
                extra={
                    "database": db,
                    "frames": frames,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
            )


__all__ = [
    "QUERY_PATH",
    "CLIENT_NAME",
    "format_timespan",
    "create_credential",
    "ProgressiveQueryClient",
]
