"""
Response classification for the request pipeline.

Turns (status, headers, body) into an Outcome the executor branches on.
Pure functions: no I/O, no logging, deterministic for a given input.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Union

from forcelink.errors.exceptions import (
    APIError,
    ErrorDetail,
    ForceLinkError,
    MalformedRequestError,
    NotFoundError,
    RateLimitError,
    RowLockError,
    SessionExpiredError,
    TransientServerError,
    TransportError,
    ValidationError,
)

# Platform error codes grouped by how the pipeline reacts to them
SESSION_ERROR_CODES = frozenset({"INVALID_SESSION_ID", "SESSION_EXPIRED"})

RATE_LIMIT_ERROR_CODES = frozenset({"REQUEST_LIMIT_EXCEEDED"})

ROW_LOCK_ERROR_CODES = frozenset({"UNABLE_TO_LOCK_ROW"})

MALFORMED_ERROR_CODES = frozenset(
    {
        "MALFORMED_QUERY",
        "MALFORMED_ID",
        "JSON_PARSER_ERROR",
        "INVALID_TYPE",
        "INVALID_QUERY_FILTER_OPERATOR",
        "INVALID_QUERY_LOCATOR",
        "METHOD_NOT_ALLOWED",
        "UNSUPPORTED_MEDIA_TYPE",
    }
)

VALIDATION_ERROR_CODES = frozenset(
    {
        "INVALID_FIELD",
        "INVALID_FIELD_FOR_INSERT_UPDATE",
        "REQUIRED_FIELD_MISSING",
        "DUPLICATE_VALUE",
        "ENTITY_IS_DELETED",
        "INVALID_CROSS_REFERENCE_KEY",
        "INSUFFICIENT_ACCESS_ON_CROSS_REFERENCE_ENTITY",
        "FIELD_CUSTOM_VALIDATION_EXCEPTION",
        "STRING_TOO_LONG",
        "STORAGE_LIMIT_EXCEEDED",
    }
)


# =============================================================================
# Outcome variants
# =============================================================================


@dataclass(frozen=True)
class Success:
    body: bytes


@dataclass(frozen=True)
class Retryable:
    """Transient failure; suggested_delay is the server's hint in seconds."""

    error: ForceLinkError
    suggested_delay: float | None = None


@dataclass(frozen=True)
class AuthExpired:
    error: SessionExpiredError


@dataclass(frozen=True)
class Fatal:
    error: ForceLinkError


Outcome = Union[Success, Retryable, AuthExpired, Fatal]


# =============================================================================
# Body parsing
# =============================================================================


def _detail_from_dict(item: Mapping[str, Any]) -> ErrorDetail | None:
    """Build an ErrorDetail from one JSON error object, or None if unrecognized."""
    if "errorCode" in item or "message" in item:
        raw_fields = item.get("fields") or []
        if isinstance(raw_fields, str):
            raw_fields = [raw_fields]
        return ErrorDetail(
            message=str(item.get("message", "")),
            error_code=str(item.get("errorCode", "")),
            fields=tuple(str(f) for f in raw_fields),
        )
    if "error" in item:
        # OAuth-style {error, error_description}
        return ErrorDetail(
            message=str(item.get("error_description", "")),
            error_code=str(item["error"]),
        )
    return None


def parse_error_body(body: bytes | str | None) -> list[ErrorDetail]:
    """
    Extract error details from a platform error body.

    Accepts a JSON array of {message, errorCode, fields}, a single such
    object, or an OAuth-style {error, error_description}. Anything else
    (empty, HTML, truncated JSON) yields an empty list.
    """
    if not body:
        return []
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(body)
    except ValueError:
        return []

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        return []

    details = []
    for item in data:
        if isinstance(item, Mapping):
            detail = _detail_from_dict(item)
            if detail is not None:
                details.append(detail)
    return details


def parse_retry_after(value: str | None) -> float | None:
    """
    Parse a Retry-After header value into seconds.

    Accepts delta-seconds or an HTTP date. Returns None for missing or
    unparseable values; dates in the past yield 0.0.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


# =============================================================================
# Classification
# =============================================================================


def _summary(status: int, details: list[ErrorDetail], body: bytes) -> str:
    if details:
        return f"HTTP {status}: " + "; ".join(str(d) for d in details)
    snippet = body[:200].decode("utf-8", errors="replace") if body else ""
    return f"HTTP {status}: {snippet}" if snippet else f"HTTP {status}"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def classify_response(
    status: int,
    headers: Mapping[str, str],
    body: bytes,
    *,
    non_retryable_statuses: frozenset[int] | set[int] | tuple[int, ...] = (),
) -> Outcome:
    """
    Classify an HTTP response into an Outcome.

    Rules are checked in order; the first match wins:
        2xx                                  -> Success
        401 / session codes                  -> AuthExpired
        429 / REQUEST_LIMIT_EXCEEDED         -> Retryable(RateLimitError)
        UNABLE_TO_LOCK_ROW                   -> Retryable(RowLockError)
        5xx (not opted out)                  -> Retryable(TransientServerError)
        404                                  -> Fatal(NotFoundError)
        malformed-request codes              -> Fatal(MalformedRequestError)
        400/422 or field-scoped codes        -> Fatal(ValidationError)
        anything else                        -> Fatal(APIError)

    Args:
        status: HTTP status code
        headers: Response headers (lower-cased keys preferred)
        body: Raw response body
        non_retryable_statuses: 5xx codes the caller wants treated as fatal

    Returns:
        One of Success, Retryable, AuthExpired, Fatal
    """
    if 200 <= status < 300:
        return Success(body)

    details = parse_error_body(body)
    codes = {d.error_code for d in details}
    message = _summary(status, details, body)
    common = {"status_code": status, "errors": details, "raw_body": body}

    if status == 401 or codes & SESSION_ERROR_CODES:
        return AuthExpired(SessionExpiredError(message, **common))

    if status == 429 or codes & RATE_LIMIT_ERROR_CODES:
        retry_after = parse_retry_after(_header(headers, "retry-after"))
        return Retryable(RateLimitError(message, retry_after, **common), retry_after)

    if codes & ROW_LOCK_ERROR_CODES:
        return Retryable(RowLockError(message, **common))

    if 500 <= status < 600:
        if status in non_retryable_statuses:
            return Fatal(APIError(message, **common))
        retry_after = parse_retry_after(_header(headers, "retry-after"))
        return Retryable(TransientServerError(message, **common), retry_after)

    if status == 404:
        return Fatal(NotFoundError(message, **common))

    if codes & MALFORMED_ERROR_CODES:
        return Fatal(MalformedRequestError(message, **common))

    if (
        status in (400, 422)
        or codes & VALIDATION_ERROR_CODES
        or any(d.fields for d in details)
    ):
        return Fatal(ValidationError(message, **common))

    return Fatal(APIError(message, **common))


def classify_transport_error(exc: Exception) -> Retryable:
    """Network failures (no response) are always retryable."""
    if isinstance(exc, TransportError):
        return Retryable(exc)
    return Retryable(TransportError(f"Transport failure: {exc}", cause=exc))


__all__ = [
    "Outcome",
    "Success",
    "Retryable",
    "AuthExpired",
    "Fatal",
    "SESSION_ERROR_CODES",
    "RATE_LIMIT_ERROR_CODES",
    "ROW_LOCK_ERROR_CODES",
    "MALFORMED_ERROR_CODES",
    "VALIDATION_ERROR_CODES",
    "parse_error_body",
    "parse_retry_after",
    "classify_response",
    "classify_transport_error",
]
