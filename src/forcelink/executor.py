"""
Authenticated request execution with retry and refresh-and-replay.

Every API call in the library goes through RequestExecutor:
- Attaches the current credential (authenticating on first use)
- Classifies the response into an Outcome
- Retries transient outcomes with jittered backoff, within the policy
- On an expired session, refreshes once (coalesced) and replays the request
"""

import json
import logging
from typing import Any

from forcelink.auth.models import Credential
from forcelink.auth.provider import CredentialProvider
from forcelink.errors.classifier import (
    AuthExpired,
    Fatal,
    Outcome,
    Retryable,
    Success,
    classify_response,
    classify_transport_error,
)
from forcelink.errors.exceptions import RetryExhaustedError, TransportError
from forcelink.logging.formatters import sanitize_url
from forcelink.resilience.cancellation import NEVER, CancellationToken
from forcelink.resilience.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from forcelink.transport import HttpRequest, HttpResponse
from forcelink.types import Transport
from forcelink.utils.json_serializers import json_serializer

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "59.0"

JSON_CONTENT_TYPE = "application/json"
CSV_CONTENT_TYPE = "text/csv"


def encode_body(body: Any, content_type: str | None = None) -> tuple[bytes | None, str | None]:
    """
    Encode a request body once per logical call.

    Returns:
        (payload, content_type). Raw bytes/str and file-like bodies pass
        through unchanged; anything else is JSON-encoded.
    """
    if body is None:
        return None, content_type
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body), content_type or CSV_CONTENT_TYPE
    if isinstance(body, str):
        return body.encode("utf-8"), content_type or CSV_CONTENT_TYPE
    if hasattr(body, "read"):
        data = body.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return bytes(data), content_type or CSV_CONTENT_TYPE
    payload = json.dumps(body, default=json_serializer, ensure_ascii=False)
    return payload.encode("utf-8"), content_type or JSON_CONTENT_TYPE


class RequestExecutor:
    """
    Executes API calls under the retry policy.

    Holds no mutable state of its own; the credential lives in the provider
    and the policy is read-only, so one executor is shared by all callers.
    """

    def __init__(
        self,
        provider: CredentialProvider,
        transport: Transport,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        api_version: str = DEFAULT_API_VERSION,
    ):
        self._provider = provider
        self._transport = transport
        self._policy = policy
        self.api_version = str(api_version)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def provider(self) -> CredentialProvider:
        return self._provider

    def api_path(self, *segments: str) -> str:
        """Build a versioned REST path, e.g. api_path("jobs", "ingest")."""
        suffix = "/".join(str(s).strip("/") for s in segments if str(s).strip("/"))
        base = f"/services/data/v{self.api_version}"
        return f"{base}/{suffix}" if suffix else base

    @staticmethod
    def _resolve_url(credential: Credential, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{credential.base_address}/{path.lstrip('/')}"

    def _build_request(
        self,
        credential: Credential,
        method: str,
        path: str,
        payload: bytes | None,
        content_type: str | None,
        headers: dict[str, str] | None,
    ) -> HttpRequest:
        request_headers = {
            "Authorization": credential.authorization_header,
            "Accept": JSON_CONTENT_TYPE,
        }
        if content_type and payload is not None:
            request_headers["Content-Type"] = content_type
        if headers:
            request_headers.update(headers)
        return HttpRequest(
            method=method.upper(),
            url=self._resolve_url(credential, path),
            headers=request_headers,
            body=payload,
        )

    async def _attempt(
        self, request: HttpRequest, token: CancellationToken
    ) -> tuple[Outcome, HttpResponse | None]:
        try:
            response = await token.run(self._transport.send(request))
        except TransportError as e:
            return classify_transport_error(e), None
        outcome = classify_response(
            response.status,
            response.headers,
            response.body,
            non_retryable_statuses=self._policy.non_retryable_statuses,
        )
        return outcome, response

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
        """
        Execute one logical call and return the successful response.

        Args:
            method: HTTP method
            path: Path relative to the instance, or an absolute URL
            body: bytes/str/file-like (sent as-is) or a JSON-serializable value
            token: Cancellation token bounding the whole call, backoff included
            content_type: Overrides the inferred Content-Type
            headers: Extra request headers

        Raises:
            SessionExpiredError: Session rejected again after refresh-and-replay
            AuthError: Credential acquisition or refresh failed
            RetryExhaustedError: Every allowed attempt failed transiently
            CancellationError: Token cancelled or deadline elapsed
            APIError: Non-retryable error response (typed subclass)
        """
        token = token or NEVER
        token.raise_if_cancelled()
        payload, content_type = encode_body(body, content_type)

        credential = self._provider.current() or await self._provider.authenticate(token)
        operation = f"{method.upper()} {sanitize_url(path)}"
        replayed = False
        attempt = 0

        while True:
            token.raise_if_cancelled()
            request = self._build_request(
                credential, method, path, payload, content_type, headers
            )
            outcome, response = await self._attempt(request, token)

            if isinstance(outcome, Success):
                if attempt > 0:
                    logger.info(
                        "Retry succeeded for %s after %d attempts",
                        operation,
                        attempt + 1,
                        extra={
                            "operation": operation,
                            "attempt": attempt + 1,
                            "max_attempts": self._policy.max_attempts,
                        },
                    )
                return response

            if isinstance(outcome, AuthExpired):
                if replayed:
                    logger.error(
                        "Session rejected after refresh for %s",
                        operation,
                        extra={
                            "operation": operation,
                            "http_status": outcome.error.status_code,
                            "error_code": outcome.error.error_code,
                        },
                    )
                    raise outcome.error
                logger.info(
                    "Session expired for %s, refreshing credentials",
                    operation,
                    extra={
                        "operation": operation,
                        "http_status": outcome.error.status_code,
                        "error_category": "auth",
                    },
                )
                credential = await self._provider.refresh(token, stale=credential)
                replayed = True
                continue

            if isinstance(outcome, Fatal):
                error = outcome.error
                logger.warning(
                    "Permanent error for %s, not retrying: %s",
                    operation,
                    error.message[:200],
                    extra={
                        "operation": operation,
                        "http_status": getattr(error, "status_code", None),
                        "error_type": type(error).__name__,
                        "error_category": error.category.value,
                        "error_code": getattr(error, "error_code", None),
                    },
                )
                raise error

            # Retryable
            error = outcome.error
            if not self._policy.should_retry(error, attempt):
                logger.error(
                    "Max retries exhausted for %s: %s",
                    operation,
                    error.message[:200],
                    extra={
                        "operation": operation,
                        "error_type": type(error).__name__,
                        "error_category": error.category.value,
                        "max_attempts": self._policy.max_attempts,
                    },
                )
                raise RetryExhaustedError(error, attempt + 1) from error

            delay = self._policy.compute_delay(attempt, outcome.suggested_delay)
            self._log_retry_attempt(operation, attempt, delay, outcome)
            await token.sleep(delay)
            attempt += 1

    def _log_retry_attempt(
        self, operation: str, attempt: int, delay: float, outcome: Retryable
    ) -> None:
        log_extras: dict[str, object] = {
            "operation": operation,
            "attempt": attempt + 1,
            "max_attempts": self._policy.max_attempts,
            "error_type": type(outcome.error).__name__,
            "error_category": outcome.error.category.value,
            "delay_seconds": round(delay, 2),
            "http_status": getattr(outcome.error, "status_code", None),
        }
        if self._policy.uses_server_delay(outcome.suggested_delay):
            log_extras["server_retry_after"] = outcome.suggested_delay
            log_extras["delay_source"] = "server"
            message = "Retryable error for %s, will retry (using server-provided delay)"
        else:
            log_extras["delay_source"] = "exponential_backoff"
            message = "Retryable error for %s, will retry"
        logger.warning(message, operation, extra=log_extras)

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
        """Execute one logical call and return the response body."""
        response = await self.request(
            method,
            path,
            body,
            token=token,
            content_type=content_type,
            headers=headers,
        )
        return response.body

    async def get(self, path: str, *, token: CancellationToken | None = None) -> bytes:
        return await self.execute("GET", path, token=token)

    async def post(
        self, path: str, body: Any = None, *, token: CancellationToken | None = None
    ) -> bytes:
        return await self.execute("POST", path, body, token=token)

    async def patch(
        self, path: str, body: Any = None, *, token: CancellationToken | None = None
    ) -> bytes:
        return await self.execute("PATCH", path, body, token=token)

    async def put(
        self,
        path: str,
        body: Any = None,
        *,
        token: CancellationToken | None = None,
        content_type: str | None = None,
    ) -> bytes:
        return await self.execute("PUT", path, body, token=token, content_type=content_type)

    async def delete(self, path: str, *, token: CancellationToken | None = None) -> bytes:
        return await self.execute("DELETE", path, token=token)


__all__ = [
    "RequestExecutor",
    "DEFAULT_API_VERSION",
    "encode_body",
]
