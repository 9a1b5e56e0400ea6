"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- ForceLinkError hierarchy for typed exceptions
- Response classifier producing Outcome variants for the executor
"""

from forcelink.errors.classifier import (
    AuthExpired,
    Fatal,
    Outcome,
    Retryable,
    Success,
    classify_response,
    classify_transport_error,
    parse_error_body,
    parse_retry_after,
)
from forcelink.errors.exceptions import (
    APIError,
    AuthError,
    CancellationError,
    ConfigurationError,
    ErrorCategory,
    ErrorDetail,
    ForceLinkError,
    JobStateError,
    MalformedRequestError,
    NotFoundError,
    RateLimitError,
    RefreshNotSupportedError,
    RetryExhaustedError,
    RowLockError,
    SessionExpiredError,
    TokenAcquisitionError,
    TransientServerError,
    TransportError,
    ValidationError,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "ForceLinkError",
    "ErrorDetail",
    # Auth
    "AuthError",
    "TokenAcquisitionError",
    "RefreshNotSupportedError",
    "SessionExpiredError",
    # API responses
    "APIError",
    "ValidationError",
    "MalformedRequestError",
    "NotFoundError",
    "RateLimitError",
    "RowLockError",
    "TransientServerError",
    # Transport / control
    "TransportError",
    "CancellationError",
    "RetryExhaustedError",
    "JobStateError",
    "ConfigurationError",
    # Classification
    "Outcome",
    "Success",
    "Retryable",
    "AuthExpired",
    "Fatal",
    "classify_response",
    "classify_transport_error",
    "parse_error_body",
    "parse_retry_after",
]
