"""Client facade wiring configuration, credentials, transport and bulk jobs."""

import json
import logging
from typing import Any

from forcelink.auth.models import Credential
from forcelink.auth.provider import CredentialProvider
from forcelink.auth.strategies import AuthStrategy, build_strategy
from forcelink.bulk.controller import BulkJobController
from forcelink.config import ClientConfig
from forcelink.executor import RequestExecutor
from forcelink.resilience.cancellation import CancellationToken
from forcelink.resilience.retry import RetryPolicy
from forcelink.transport import AiohttpTransport, HttpResponse
from forcelink.types import Transport

logger = logging.getLogger(__name__)


class ForceClient:
    """
    Entry point for applications.

    Usage:
        async with ForceClient.from_config(load_config("forcelink.yaml")) as client:
            limits = await client.get_limits()
            job = await client.bulk.create_job(spec)

    Resource families without a typed surface (reports, feeds, UI metadata)
    are reached through execute() with a path from api_path().
    """

    def __init__(
        self,
        strategy: AuthStrategy,
        transport: Transport,
        policy: RetryPolicy | None = None,
        api_version: str = "59.0",
        refresh_buffer_seconds: int = 300,
        poll_interval: float = 5.0,
        owns_transport: bool = True,
    ):
        self._transport = transport
        self._owns_transport = owns_transport
        self._provider = CredentialProvider(strategy, refresh_buffer_seconds)
        self._executor = RequestExecutor(
            self._provider,
            transport,
            policy if policy is not None else RetryPolicy(),
            api_version=api_version,
        )
        self._bulk = BulkJobController(
            self._executor, api_version=api_version, poll_interval=poll_interval
        )

    @classmethod
    def from_config(
        cls, config: ClientConfig, transport: Transport | None = None
    ) -> "ForceClient":
        """
        Build a client from configuration.

        Args:
            config: Validated (or validatable) client configuration
            transport: Optional transport to share; one is created otherwise

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config.validate()
        owns_transport = transport is None
        if transport is None:
            transport = AiohttpTransport(
                timeout_seconds=config.timeout_seconds,
                max_concurrent=config.max_concurrent,
            )

        logger.info(
            "ForceClient initialized",
            extra={
                "auth_strategy": config.auth_method,
                "instance_url": config.resolved_instance_url or None,
                "timeout_seconds": config.timeout_seconds,
            },
        )
        return cls(
            strategy=build_strategy(config, transport),
            transport=transport,
            policy=config.retry_policy(),
            api_version=config.api_version,
            refresh_buffer_seconds=config.refresh_buffer_seconds,
            poll_interval=config.poll_interval,
            owns_transport=owns_transport,
        )

    async def __aenter__(self) -> "ForceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    @property
    def provider(self) -> CredentialProvider:
        return self._provider

    @property
    def bulk(self) -> BulkJobController:
        return self._bulk

    @property
    def credential(self) -> Credential | None:
        return self._provider.current()

    @property
    def api_version(self) -> str:
        return self._executor.api_version

    def api_path(self, *segments: str) -> str:
        return self._executor.api_path(*segments)

    async def connect(self, token: CancellationToken | None = None) -> Credential:
        """Authenticate eagerly instead of on the first call."""
        return await self._provider.authenticate(token)

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        token: CancellationToken | None = None,
        content_type: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        return await self._executor.execute(
            method, path, body, token=token, content_type=content_type, headers=headers
        )

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        token: CancellationToken | None = None,
        content_type: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        return await self._executor.request(
            method, path, body, token=token, content_type=content_type, headers=headers
        )

    async def get(self, path: str, *, token: CancellationToken | None = None) -> bytes:
        return await self._executor.get(path, token=token)

    async def post(
        self, path: str, body: Any = None, *, token: CancellationToken | None = None
    ) -> bytes:
        return await self._executor.post(path, body, token=token)

    async def patch(
        self, path: str, body: Any = None, *, token: CancellationToken | None = None
    ) -> bytes:
        return await self._executor.patch(path, body, token=token)

    async def put(
        self,
        path: str,
        body: Any = None,
        *,
        token: CancellationToken | None = None,
        content_type: str | None = None,
    ) -> bytes:
        return await self._executor.put(path, body, token=token, content_type=content_type)

    async def delete(self, path: str, *, token: CancellationToken | None = None) -> bytes:
        return await self._executor.delete(path, token=token)

    async def get_limits(self, token: CancellationToken | None = None) -> dict[str, Any]:
        """Org limits (API requests, storage, bulk jobs) as returned by the platform."""
        raw = await self._executor.get(self.api_path("limits"), token=token)
        return json.loads(raw) if raw else {}

    async def close(self) -> None:
        await self._provider.close()
        if self._owns_transport:
            await self._transport.close()
        logger.debug("ForceClient closed")


__all__ = ["ForceClient"]
