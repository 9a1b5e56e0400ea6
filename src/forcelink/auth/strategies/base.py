"""Base authentication strategy interface."""

import json
import logging
from abc import ABC, abstractmethod
from urllib.parse import urlencode

from forcelink.auth.models import Credential
from forcelink.errors.classifier import parse_error_body
from forcelink.errors.exceptions import TokenAcquisitionError, TransportError
from forcelink.transport import AiohttpTransport, HttpRequest
from forcelink.types import Transport

logger = logging.getLogger(__name__)


class AuthStrategy(ABC):
    """
    Abstract base class for credential strategies.

    Each implementation handles one way of obtaining an org session (refresh
    token grant, password grant, pre-issued token). Strategies perform a
    single exchange per call and never retry; coalescing and caching are the
    CredentialProvider's job.
    """

    name: str = "base"

    @abstractmethod
    async def authenticate(self) -> Credential:
        """
        Obtain a new credential.

        Raises:
            AuthError: If the exchange fails
        """
        pass

    @abstractmethod
    async def refresh(self, current: Credential | None) -> Credential:
        """
        Renew an existing credential.

        Args:
            current: Credential being replaced, if any

        Raises:
            AuthError: If renewal fails or is not supported
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the strategy."""
        return None


class TokenEndpointStrategy(AuthStrategy):
    """
    Strategy that exchanges form-encoded grants at an OAuth token endpoint.

    Uses the shared Transport when one is supplied; otherwise creates and
    owns a private AiohttpTransport.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        transport: Transport | None = None,
    ):
        if not client_id or not token_url:
            raise TokenAcquisitionError("client_id and token_url are required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self._transport = transport
        self._owns_transport = transport is None

    def _ensure_transport(self) -> Transport:
        if self._transport is None:
            self._transport = AiohttpTransport(timeout_seconds=30)
            self._owns_transport = True
        return self._transport

    async def _exchange(
        self, form: dict[str, str], carry_refresh_token: str | None = None
    ) -> Credential:
        """
        POST one grant to the token endpoint and build a Credential.

        Args:
            form: Grant parameters (secrets included; never logged)
            carry_refresh_token: Refresh token to keep if the response omits one

        Raises:
            TokenAcquisitionError: On transport failure, error response, or
                an unusable success body
        """
        transport = self._ensure_transport()
        request = HttpRequest(
            method="POST",
            url=self.token_url,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            body=urlencode(form).encode("utf-8"),
        )

        try:
            response = await transport.send(request)
        except TransportError as e:
            logger.warning(
                "Token endpoint unreachable",
                extra={
                    "auth_strategy": self.name,
                    "error_message": str(e)[:200],
                },
            )
            raise TokenAcquisitionError(
                f"Token endpoint unreachable: {e.message}", cause=e
            ) from e

        if response.status != 200:
            details = parse_error_body(response.body)
            error_code = details[0].error_code if details else ""
            description = details[0].message if details else ""
            logger.error(
                "Token exchange rejected",
                extra={
                    "auth_strategy": self.name,
                    "http_status": response.status,
                    "error_code": error_code,
                },
            )
            if error_code:
                summary = f"{error_code}: {description}"
            else:
                summary = response.body[:200].decode("utf-8", errors="replace")
            raise TokenAcquisitionError(
                f"Token exchange failed (HTTP {response.status}): {summary}",
                error_code=error_code,
                description=description,
                status_code=response.status,
            )

        try:
            data = json.loads(response.body)
            credential = Credential.from_response(data, refresh_token=carry_refresh_token)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TokenAcquisitionError(
                f"Token endpoint returned an unusable body: {e}",
                status_code=response.status,
                cause=e,
            ) from e

        remaining = credential.remaining_lifetime
        logger.info(
            "Credential acquired",
            extra={
                "auth_strategy": self.name,
                "instance_url": credential.base_address,
                "expires_in_seconds": remaining.total_seconds() if remaining else None,
            },
        )
        return credential

    async def close(self) -> None:
        if self._owns_transport and self._transport is not None:
            await self._transport.close()
            self._transport = None


__all__ = ["AuthStrategy", "TokenEndpointStrategy"]
