"""HTTP transport: the single network seam of the request pipeline."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from forcelink.errors.exceptions import TransportError
from forcelink.logging.context import get_log_context
from forcelink.logging.formatters import sanitize_url

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 2.0


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


@dataclass(frozen=True)
class HttpResponse:
    """Fully read response. Header keys are lower-cased."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class AiohttpTransport:
    """
    Transport backed by one pooled aiohttp session.

    The session is created lazily on first use so the transport can be built
    outside a running event loop.
    """

    def __init__(
        self,
        timeout_seconds: float = 120.0,
        max_concurrent: int = 20,
        session: aiohttp.ClientSession | None = None,
    ):
        self.timeout_seconds = float(timeout_seconds)
        self.max_concurrent = int(max_concurrent)
        self._session = session
        self._owns_session = session is None
        self._closed = False

    async def __aenter__(self) -> "AiohttpTransport":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("AiohttpTransport is closed, cannot create new session")
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_concurrent,
                limit_per_host=self.max_concurrent,
            )
            self._session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        self._closed = True
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            # Let the connector finish closing sockets
            await asyncio.sleep(0)
        self._session = None

    @staticmethod
    def _get_context_ids() -> dict[str, Any]:
        return {k: v for k, v in get_log_context().items() if v}

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Send one request and read the whole response.

        Raises:
            TransportError: On connection failure or timeout (no response)
        """
        session = await self._ensure_session()
        ctx = self._get_context_ids()
        safe_url = sanitize_url(request.url)

        logger.debug(
            "API request starting",
            extra={
                **ctx,
                "api_method": request.method,
                "api_url": safe_url,
                "has_body": request.body is not None,
            },
        )

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            async with session.request(
                request.method,
                request.url,
                data=request.body,
                headers=request.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                body = await response.read()
                headers = {k.lower(): v for k, v in response.headers.items()}
                status = response.status

        except TimeoutError as e:
            duration = loop.time() - start_time
            logger.warning(
                "API request timeout",
                extra={
                    **ctx,
                    "api_method": request.method,
                    "api_url": safe_url,
                    "timeout_seconds": self.timeout_seconds,
                    "duration_seconds": round(duration, 3),
                    "error_category": "transient",
                },
            )
            raise TransportError(
                f"Timeout after {self.timeout_seconds}s: {safe_url}", cause=e
            ) from e

        except aiohttp.ClientError as e:
            duration = loop.time() - start_time
            logger.warning(
                "API connection error",
                extra={
                    **ctx,
                    "api_method": request.method,
                    "api_url": safe_url,
                    "duration_seconds": round(duration, 3),
                    "error_category": "transient",
                    "error_message": str(e)[:200],
                },
            )
            raise TransportError(f"Connection error: {e}", cause=e) from e

        duration = loop.time() - start_time
        slow = duration > SLOW_REQUEST_SECONDS
        logger.log(
            logging.INFO if slow else logging.DEBUG,
            "Slow API request" if slow else "API request completed",
            extra={
                **ctx,
                "api_method": request.method,
                "api_url": safe_url,
                "http_status": status,
                "duration_seconds": round(duration, 3),
            },
        )
        return HttpResponse(status=status, headers=headers, body=body)


__all__ = [
    "HttpRequest",
    "HttpResponse",
    "AiohttpTransport",
]
