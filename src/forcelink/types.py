"""
Core types and protocols used across modules.

Enums and protocol definitions shared by the transport, executor, auth and
bulk layers, so that each layer can be tested against fakes of the others.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from forcelink.resilience.cancellation import CancellationToken
    from forcelink.transport import HttpRequest, HttpResponse


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network failures, 429, 5xx, row lock contention)
        AUTH: Authentication failures requiring credential refresh
              (e.g., 401, expired session, rejected grant)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, validation errors, configuration issues)
        CANCELLED: The caller's own cancellation or deadline fired
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class Transport(Protocol):
    """
    Protocol for the network seam.

    The aiohttp implementation lives in forcelink.transport; tests provide a
    scripted fake so the whole pipeline runs without network access.
    """

    async def send(self, request: "HttpRequest") -> "HttpResponse":
        """
        Send one request and return the fully read response.

        Raises:
            TransportError: If no response could be obtained
        """
        ...

    async def close(self) -> None: ...


class ApiClient(Protocol):
    """
    Capability interface for authenticated API calls.

    Implemented by RequestExecutor. Thin endpoint wrappers (and the bulk
    controller) depend only on this, never on the executor itself.
    """

    async def get(
        self, path: str, *, token: "CancellationToken | None" = None
    ) -> bytes: ...

    async def post(
        self, path: str, body: Any = None, *, token: "CancellationToken | None" = None
    ) -> bytes: ...

    async def patch(
        self, path: str, body: Any = None, *, token: "CancellationToken | None" = None
    ) -> bytes: ...

    async def put(
        self,
        path: str,
        body: Any = None,
        *,
        token: "CancellationToken | None" = None,
        content_type: str | None = None,
    ) -> bytes: ...

    async def delete(
        self, path: str, *, token: "CancellationToken | None" = None
    ) -> bytes: ...

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        token: "CancellationToken | None" = None,
        content_type: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> "HttpResponse": ...

    def api_path(self, *segments: str) -> str: ...


__all__ = [
    "ErrorCategory",
    "Transport",
    "ApiClient",
]
