"""Tests for the exception hierarchy."""

from forcelink.errors.exceptions import (
    APIError,
    AuthError,
    CancellationError,
    ErrorDetail,
    ForceLinkError,
    RateLimitError,
    RefreshNotSupportedError,
    RetryExhaustedError,
    SessionExpiredError,
    TokenAcquisitionError,
    TransportError,
    ValidationError,
)
from forcelink.types import ErrorCategory


class TestForceLinkError:
    def test_str_includes_cause(self):
        """Should chain the cause into the string form."""
        error = ForceLinkError("outer", cause=ValueError("inner"))
        assert str(error) == "outer | Caused by: inner"

    def test_default_category(self):
        error = ForceLinkError("x")
        assert error.category == ErrorCategory.UNKNOWN
        assert not error.is_retryable


class TestCategories:
    """Each error type carries the category the executor branches on."""

    def test_transient(self):
        assert TransportError("x").is_retryable
        assert RateLimitError("x").is_retryable

    def test_auth(self):
        assert AuthError("x").should_refresh_auth
        assert SessionExpiredError("x").category == ErrorCategory.AUTH

    def test_refresh_not_supported_is_permanent(self):
        error = RefreshNotSupportedError("x", error_code="refresh_not_supported")
        assert isinstance(error, AuthError)
        assert error.category == ErrorCategory.PERMANENT

    def test_cancellation_never_retryable(self):
        error = CancellationError("late", reason="deadline")
        assert error.category == ErrorCategory.CANCELLED
        assert not error.is_retryable
        assert error.deadline_exceeded


class TestAPIError:
    def test_fields_deduplicated_across_errors(self):
        error = ValidationError(
            "HTTP 400",
            status_code=400,
            errors=[
                ErrorDetail("a", "REQUIRED_FIELD_MISSING", ("Name", "Phone")),
                ErrorDetail("b", "INVALID_FIELD", ("Name",)),
            ],
        )
        assert error.fields == ["Name", "Phone"]
        assert error.error_code == "REQUIRED_FIELD_MISSING"

    def test_no_errors(self):
        error = APIError("HTTP 500", status_code=500)
        assert error.error_code == ""
        assert error.fields == []

    def test_detail_str(self):
        assert str(ErrorDetail("bad", "INVALID_FIELD", ("Amount",))) == (
            "[INVALID_FIELD] bad (fields: Amount)"
        )


class TestAuthErrors:
    def test_invalid_grant(self):
        error = TokenAcquisitionError("failed", error_code="invalid_grant", status_code=400)
        assert error.is_invalid_grant
        assert error.status_code == 400

    def test_session_expired_takes_first_code(self):
        error = SessionExpiredError(
            "HTTP 401", status_code=401, errors=[ErrorDetail("expired", "INVALID_SESSION_ID")]
        )
        assert error.error_code == "INVALID_SESSION_ID"


class TestRetryExhaustedError:
    def test_wraps_last_error(self):
        last = TransportError("reset")
        error = RetryExhaustedError(last, 3)

        assert error.last_error is last
        assert error.attempts == 3
        assert error.cause is last
        assert "3 attempts" in error.message
        assert not error.is_retryable
