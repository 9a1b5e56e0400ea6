"""Credential provider with refresh coalescing."""

import asyncio
import logging
import threading
from typing import Any

from forcelink.auth.models import DEFAULT_REFRESH_BUFFER_SECONDS, Credential
from forcelink.auth.strategies.base import AuthStrategy
from forcelink.errors.exceptions import ForceLinkError
from forcelink.resilience.cancellation import NEVER, CancellationToken

logger = logging.getLogger(__name__)


def _consume_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark the failure as retrieved
    if not task.cancelled():
        task.exception()


class CredentialProvider:
    """
    Owns the current credential and serializes every exchange.

    Any number of concurrent callers asking for a refresh result in exactly
    one exchange with the token endpoint. Callers that arrive while an
    exchange is in flight wait for that same exchange and observe its result
    or its exception.

    Usage:
        provider = CredentialProvider(build_strategy(config))
        credential = provider.current() or await provider.authenticate()

        # after a 401 with `credential`
        credential = await provider.refresh(stale=credential)
    """

    def __init__(
        self,
        strategy: AuthStrategy,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
    ):
        """
        Initialize provider.

        Args:
            strategy: The one strategy used for every exchange
            refresh_buffer_seconds: Time before expiry at which the credential
                stops being handed out (default: 300s)
        """
        self._strategy = strategy
        self._credential: Credential | None = None
        self._lock = threading.Lock()
        self._refresh_lock = asyncio.Lock()
        self._inflight: asyncio.Task | None = None
        self._exchanges = 0
        self.refresh_buffer_seconds = int(refresh_buffer_seconds)

    @property
    def strategy(self) -> AuthStrategy:
        return self._strategy

    def current(self) -> Credential | None:
        """
        Return the current credential without blocking.

        Returns None if no credential exists yet or it is inside the expiry
        safety margin.
        """
        with self._lock:
            credential = self._credential
        if credential is None or credential.is_expired(self.refresh_buffer_seconds):
            return None
        return credential

    async def authenticate(self, token: CancellationToken | None = None) -> Credential:
        """
        Return a usable credential, performing the initial exchange if needed.

        Raises:
            AuthError: If the exchange fails
            CancellationError: If token fires while waiting
        """
        return await self._coalesce("authenticate", None, token)

    async def refresh(
        self,
        token: CancellationToken | None = None,
        stale: Credential | None = None,
    ) -> Credential:
        """
        Replace the current credential.

        Args:
            token: Cancellation for the wait (the shared exchange keeps going)
            stale: The credential the caller saw rejected. If a different,
                unexpired credential is already installed, it is returned
                without a new exchange.

        Raises:
            AuthError: If the exchange fails or the strategy cannot refresh
            CancellationError: If token fires while waiting
        """
        return await self._coalesce("refresh", stale, token)

    def _installed_replacement(self, stale: Credential | None) -> Credential | None:
        with self._lock:
            credential = self._credential
        if credential is None or credential is stale:
            return None
        if credential.is_expired(self.refresh_buffer_seconds):
            return None
        return credential

    async def _coalesce(
        self,
        kind: str,
        stale: Credential | None,
        token: CancellationToken | None,
    ) -> Credential:
        token = token or NEVER
        token.raise_if_cancelled()

        async with self._refresh_lock:
            if kind == "authenticate" or stale is not None:
                replacement = self._installed_replacement(stale)
                if replacement is not None:
                    return replacement

            if self._inflight is None or self._inflight.done():
                self._inflight = asyncio.create_task(self._run_exchange(kind))
                self._inflight.add_done_callback(_consume_exception)
            else:
                logger.debug(
                    "Joining in-flight credential exchange",
                    extra={"auth_strategy": self._strategy.name, "operation": kind},
                )
            inflight = self._inflight

        # Shielded so one waiter's cancellation leaves the exchange running for the rest
        return await token.run(asyncio.shield(inflight))

    async def _run_exchange(self, kind: str) -> Credential:
        with self._lock:
            previous = self._credential

        logger.debug(
            "Starting credential exchange",
            extra={"auth_strategy": self._strategy.name, "operation": kind},
        )
        try:
            if kind == "refresh" and previous is not None:
                credential = await self._strategy.refresh(previous)
            else:
                credential = await self._strategy.authenticate()
        except ForceLinkError as e:
            logger.error(
                "Credential exchange failed",
                extra={
                    "auth_strategy": self._strategy.name,
                    "operation": kind,
                    "error_type": type(e).__name__,
                    "error_code": getattr(e, "error_code", None),
                    "error_message": e.message[:200],
                },
            )
            raise

        with self._lock:
            self._credential = credential
            self._exchanges += 1

        if previous is not None:
            logger.info(
                "Credential refreshed",
                extra={
                    "auth_strategy": self._strategy.name,
                    "instance_url": credential.base_address,
                },
            )
        return credential

    def token_info(self) -> dict[str, Any] | None:
        """
        Information about the current credential for diagnostics.

        Never includes the access or refresh token.
        """
        with self._lock:
            credential = self._credential
            exchanges = self._exchanges
        if credential is None:
            return None

        remaining = credential.remaining_lifetime
        return {
            "strategy": self._strategy.name,
            "instance_url": credential.base_address,
            "issued_at": credential.issued_at.isoformat(),
            "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
            "remaining_seconds": remaining.total_seconds() if remaining else None,
            "is_expired": credential.is_expired(self.refresh_buffer_seconds),
            "has_refresh_token": credential.refresh_token is not None,
            "token_type": credential.token_type,
            "scope": credential.scope,
            "exchanges": exchanges,
        }

    async def close(self) -> None:
        """Release strategy resources and forget the credential."""
        await self._strategy.close()
        with self._lock:
            self._credential = None
        logger.debug("CredentialProvider closed")


__all__ = ["CredentialProvider"]
