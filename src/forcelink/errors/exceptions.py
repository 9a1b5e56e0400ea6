"""
Unified exception hierarchy for forcelink.

Provides typed exceptions with retry classification. Every error that leaves
the library carries the platform's machine-readable codes and, for response
errors, the raw status and body so callers can act without re-parsing logs.
"""

from dataclasses import dataclass, field

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from forcelink.types import ErrorCategory


@dataclass(frozen=True)
class ErrorDetail:
    """
    One error entry from a platform error body.

    Attributes:
        message: Human-readable message from the platform
        error_code: Machine-readable code (e.g. REQUIRED_FIELD_MISSING)
        fields: Offending field names, if the error is field-scoped
    """

    message: str
    error_code: str = ""
    fields: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        if self.fields:
            return f"[{self.error_code}] {self.message} (fields: {', '.join(self.fields)})"
        return f"[{self.error_code}] {self.message}"


class ForceLinkError(Exception):
    """
    Base exception for all forcelink errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    @property
    def should_refresh_auth(self) -> bool:
        return self.category == ErrorCategory.AUTH

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(ForceLinkError):
    """
    Credential exchange or refresh failed.

    error_code/description carry the token endpoint's own classification
    (e.g. invalid_grant, invalid_client) unmodified.
    """

    category = ErrorCategory.AUTH

    def __init__(
        self,
        message: str,
        error_code: str = "",
        description: str = "",
        status_code: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.error_code = error_code
        self.description = description
        self.status_code = status_code

    @property
    def is_invalid_grant(self) -> bool:
        return self.error_code == "invalid_grant"


class TokenAcquisitionError(AuthError):
    """Token endpoint rejected the exchange or could not be reached."""

    pass


class RefreshNotSupportedError(AuthError):
    """The active strategy cannot renew its credential (pre-issued token)."""

    category = ErrorCategory.PERMANENT


class SessionExpiredError(AuthError):
    """The platform rejected the session even after a refresh-and-replay."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: list[ErrorDetail] | None = None,
        raw_body: bytes = b"",
        cause: Exception | None = None,
    ):
        self.errors = list(errors or [])
        self.raw_body = raw_body
        code = self.errors[0].error_code if self.errors else ""
        super().__init__(
            message, error_code=code, status_code=status_code, cause=cause
        )


# =============================================================================
# API Response Errors
# =============================================================================


class APIError(ForceLinkError):
    """
    Error response from a resource endpoint.

    Unrecognized bodies land here with the raw status and bytes preserved.
    """

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: list[ErrorDetail] | None = None,
        raw_body: bytes = b"",
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        self.errors = list(errors or [])
        self.raw_body = raw_body

    @property
    def error_code(self) -> str:
        """Code of the first reported error, or empty string."""
        return self.errors[0].error_code if self.errors else ""

    @property
    def fields(self) -> list[str]:
        """All offending field names across every reported error."""
        names: list[str] = []
        for detail in self.errors:
            names.extend(f for f in detail.fields if f not in names)
        return names


class ValidationError(APIError):
    """Request content or field values rejected by the platform."""

    pass


class MalformedRequestError(APIError):
    """Request could not be parsed (bad query, bad JSON, wrong type)."""

    pass


class NotFoundError(APIError):
    """Resource does not exist (404)."""

    pass


class RateLimitError(APIError):
    """Platform asked the caller to slow down (429 / REQUEST_LIMIT_EXCEEDED)."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        status_code: int | None = None,
        errors: list[ErrorDetail] | None = None,
        raw_body: bytes = b"",
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, status_code, errors, raw_body, cause, context)
        self.retry_after = retry_after  # Seconds to wait if provided


class RowLockError(APIError):
    """Record lock contention (UNABLE_TO_LOCK_ROW) - retry after a pause."""

    category = ErrorCategory.TRANSIENT


class TransientServerError(APIError):
    """5xx from the platform."""

    category = ErrorCategory.TRANSIENT


# =============================================================================
# Transport / Control Errors
# =============================================================================


class TransportError(ForceLinkError):
    """No response was obtained (connection reset, DNS, socket timeout)."""

    category = ErrorCategory.TRANSIENT


class CancellationError(ForceLinkError):
    """
    The caller's cancellation token fired or its deadline elapsed.

    Never retried. Distinguishes "we gave up waiting" from "the remote said no".
    """

    category = ErrorCategory.CANCELLED

    def __init__(self, message: str, reason: str = "cancelled"):
        super().__init__(message)
        self.reason = reason

    @property
    def deadline_exceeded(self) -> bool:
        return self.reason == "deadline"


class RetryExhaustedError(ForceLinkError):
    """Every attempt allowed by the retry policy ended in a retryable error."""

    category = ErrorCategory.PERMANENT

    def __init__(self, last_error: ForceLinkError, attempts: int):
        super().__init__(
            f"Retries exhausted after {attempts} attempts: {last_error.message}",
            cause=last_error,
            context={"attempts": attempts},
        )
        self.last_error = last_error
        self.attempts = attempts


class JobStateError(ForceLinkError):
    """Client-side rejection of a bulk job transition."""

    category = ErrorCategory.PERMANENT

    def __init__(self, message: str, job_id: str, state: str | None = None):
        super().__init__(message, context={"job_id": job_id, "state": state})
        self.job_id = job_id
        self.state = state


class ConfigurationError(ForceLinkError):
    """Client configuration is invalid."""

    category = ErrorCategory.PERMANENT


__all__ = [
    "ErrorCategory",
    "ErrorDetail",
    "ForceLinkError",
    "AuthError",
    "TokenAcquisitionError",
    "RefreshNotSupportedError",
    "SessionExpiredError",
    "APIError",
    "ValidationError",
    "MalformedRequestError",
    "NotFoundError",
    "RateLimitError",
    "RowLockError",
    "TransientServerError",
    "TransportError",
    "CancellationError",
    "RetryExhaustedError",
    "JobStateError",
    "ConfigurationError",
]
