"""
pytest configuration for forcelink tests.

Adds src directory to Python path for imports and provides a scripted fake
transport plus a counting fake strategy, so the whole pipeline runs without
network access.
"""

import asyncio
import json
import sys
from collections import deque
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from forcelink.auth.models import Credential  # noqa: E402
from forcelink.auth.provider import CredentialProvider  # noqa: E402
from forcelink.auth.strategies.base import AuthStrategy  # noqa: E402
from forcelink.bulk.controller import BulkJobController  # noqa: E402
from forcelink.errors.exceptions import TokenAcquisitionError  # noqa: E402
from forcelink.executor import RequestExecutor  # noqa: E402
from forcelink.resilience.retry import RetryPolicy  # noqa: E402
from forcelink.transport import HttpRequest, HttpResponse  # noqa: E402

INSTANCE_URL = "https://acme.my.salesforce.com"
API_VERSION = "59.0"
API_BASE = f"/services/data/v{API_VERSION}"


def json_response(status: int, data: Any = None, headers: dict | None = None) -> HttpResponse:
    body = b"" if data is None else json.dumps(data).encode("utf-8")
    merged = {"content-type": "application/json"}
    merged.update({k.lower(): v for k, v in (headers or {}).items()})
    return HttpResponse(status=status, headers=merged, body=body)


def text_response(status: int, text: str = "", headers: dict | None = None) -> HttpResponse:
    merged = {"content-type": "text/csv"}
    merged.update({k.lower(): v for k, v in (headers or {}).items()})
    return HttpResponse(status=status, headers=merged, body=text.encode("utf-8"))


ResponseItem = HttpResponse | Exception | Callable[[HttpRequest], HttpResponse]


class FakeTransport:
    """
    Scripted transport.

    Routes match on method plus a URL fragment. A fragment that ends the
    URL (or its path) beats one found mid-URL; ties go to the longest.
    Each route replays its queued items in order; the last one repeats.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self.requests: list[HttpRequest] = []
        self._routes: list[tuple[str, str, deque]] = []
        self.closed = False

    def add(self, method: str, fragment: str, *items: ResponseItem) -> "FakeTransport":
        self._routes.append((method.upper(), fragment, deque(items)))
        return self

    def _match(self, request: HttpRequest) -> deque | None:
        candidates = [
            (fragment, queue)
            for method, fragment, queue in self._routes
            if method == request.method and fragment in request.url
        ]
        if not candidates:
            return None
        url = request.url
        path = url.split("?", 1)[0]

        def rank(candidate):
            fragment = candidate[0]
            return (url.endswith(fragment) or path.endswith(fragment), len(fragment))

        return max(candidates, key=rank)[1]

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        if self.latency:
            await asyncio.sleep(self.latency)
        queue = self._match(request)
        if not queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def calls(self, method: str | None = None, fragment: str = "") -> list[HttpRequest]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method.upper()) and fragment in r.url
        ]

    async def close(self) -> None:
        self.closed = True


class CountingStrategy(AuthStrategy):
    """Fake strategy that counts exchanges and can be held open or made to fail."""

    name = "counting"

    def __init__(self, expires_in: int | None = 3600):
        self.authenticate_count = 0
        self.refresh_count = 0
        self.expires_in = expires_in
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.closed = False

    @property
    def exchanges(self) -> int:
        return self.authenticate_count + self.refresh_count

    def _credential(self) -> Credential:
        now = datetime.now(UTC)
        return Credential(
            access_token=f"token-{self.exchanges}",
            base_address=INSTANCE_URL,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.expires_in) if self.expires_in else None,
        )

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

    async def authenticate(self) -> Credential:
        self.authenticate_count += 1
        await self._wait()
        return self._credential()

    async def refresh(self, current: Credential | None) -> Credential:
        self.refresh_count += 1
        await self._wait()
        return self._credential()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def strategy():
    return CountingStrategy()


@pytest.fixture
def provider(strategy):
    return CredentialProvider(strategy)


@pytest.fixture
def fast_policy():
    """Retry policy with millisecond delays so tests stay fast."""
    return RetryPolicy(max_attempts=3, base_delay=0.001, max_delay=0.01, jitter=0.0)


@pytest.fixture
def executor(provider, transport, fast_policy):
    return RequestExecutor(provider, transport, fast_policy, api_version=API_VERSION)


@pytest.fixture
def controller(executor):
    return BulkJobController(executor, api_version=API_VERSION, poll_interval=0.001)


@pytest.fixture
def token_error():
    return TokenAcquisitionError(
        "Token exchange failed (HTTP 400): invalid_grant: expired access/refresh token",
        error_code="invalid_grant",
        description="expired access/refresh token",
        status_code=400,
    )
