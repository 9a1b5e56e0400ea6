"""Tests for response classification."""

import json
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import pytest

from forcelink.errors.classifier import (
    AuthExpired,
    Fatal,
    Retryable,
    Success,
    classify_response,
    classify_transport_error,
    parse_error_body,
    parse_retry_after,
)
from forcelink.errors.exceptions import (
    APIError,
    MalformedRequestError,
    NotFoundError,
    RateLimitError,
    RowLockError,
    SessionExpiredError,
    TransientServerError,
    TransportError,
    ValidationError,
)


def _body(*errors) -> bytes:
    return json.dumps(list(errors)).encode()


class TestParseErrorBody:
    """Tests for platform error body parsing."""

    def test_array_of_errors(self):
        """Should parse every entry of an error array."""
        body = _body(
            {"message": "Required fields are missing: [Name]", "errorCode": "REQUIRED_FIELD_MISSING", "fields": ["Name"]},
            {"message": "bad value", "errorCode": "INVALID_FIELD", "fields": []},
        )
        details = parse_error_body(body)

        assert len(details) == 2
        assert details[0].error_code == "REQUIRED_FIELD_MISSING"
        assert details[0].fields == ("Name",)
        assert details[1].fields == ()

    def test_single_object(self):
        """Should accept a single error object."""
        details = parse_error_body(b'{"message": "nope", "errorCode": "NOT_FOUND"}')
        assert [d.error_code for d in details] == ["NOT_FOUND"]

    def test_oauth_error(self):
        """Should map OAuth error/error_description."""
        details = parse_error_body(
            b'{"error": "invalid_grant", "error_description": "expired access/refresh token"}'
        )
        assert details[0].error_code == "invalid_grant"
        assert details[0].message == "expired access/refresh token"

    @pytest.mark.parametrize(
        "body",
        [b"", None, b"<html>Service Unavailable</html>", b'[{"message": "trunc', b"42", b'["x"]'],
    )
    def test_unrecognized_bodies(self, body):
        """Should yield no details for bodies that are not error JSON."""
        assert parse_error_body(body) == []


class TestParseRetryAfter:
    """Tests for Retry-After parsing."""

    def test_seconds(self):
        assert parse_retry_after("7") == 7.0
        assert parse_retry_after(" 1.5 ") == 1.5

    def test_negative_seconds_clamped(self):
        assert parse_retry_after("-3") == 0.0

    def test_http_date_in_future(self):
        """Should convert an HTTP date to seconds from now."""
        when = datetime.now(UTC) + timedelta(seconds=30)
        delay = parse_retry_after(format_datetime(when, usegmt=True))
        assert 25 <= delay <= 31

    def test_http_date_in_past(self):
        when = datetime.now(UTC) - timedelta(hours=1)
        assert parse_retry_after(format_datetime(when, usegmt=True)) == 0.0

    @pytest.mark.parametrize("value", [None, "", "soon", "not a date"])
    def test_unparseable(self, value):
        assert parse_retry_after(value) is None


class TestClassifyResponse:
    """Tests for the ordered classification rules."""

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success(self, status):
        outcome = classify_response(status, {}, b"ok")
        assert outcome == Success(b"ok")

    def test_401_is_auth_expired(self):
        body = _body({"message": "Session expired or invalid", "errorCode": "INVALID_SESSION_ID"})
        outcome = classify_response(401, {}, body)

        assert isinstance(outcome, AuthExpired)
        assert isinstance(outcome.error, SessionExpiredError)
        assert outcome.error.error_code == "INVALID_SESSION_ID"
        assert outcome.error.status_code == 401

    def test_session_code_on_other_status(self):
        """Session codes mean auth expiry whatever the status."""
        body = _body({"message": "expired", "errorCode": "INVALID_SESSION_ID"})
        assert isinstance(classify_response(403, {}, body), AuthExpired)

    def test_429_with_retry_after(self):
        outcome = classify_response(429, {"retry-after": "12"}, b"")

        assert isinstance(outcome, Retryable)
        assert isinstance(outcome.error, RateLimitError)
        assert outcome.suggested_delay == 12.0
        assert outcome.error.retry_after == 12.0

    def test_request_limit_code(self):
        """REQUEST_LIMIT_EXCEEDED is rate limiting even on 403."""
        body = _body({"message": "TotalRequests Limit exceeded.", "errorCode": "REQUEST_LIMIT_EXCEEDED"})
        outcome = classify_response(403, {}, body)

        assert isinstance(outcome, Retryable)
        assert isinstance(outcome.error, RateLimitError)
        assert outcome.suggested_delay is None

    def test_row_lock(self):
        body = _body({"message": "unable to obtain exclusive access", "errorCode": "UNABLE_TO_LOCK_ROW"})
        outcome = classify_response(400, {}, body)

        assert isinstance(outcome, Retryable)
        assert isinstance(outcome.error, RowLockError)

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_5xx_retryable(self, status):
        outcome = classify_response(status, {"Retry-After": "3"}, b"")

        assert isinstance(outcome, Retryable)
        assert isinstance(outcome.error, TransientServerError)
        assert outcome.suggested_delay == 3.0

    def test_5xx_opted_out(self):
        """Configured 5xx statuses are fatal."""
        outcome = classify_response(501, {}, b"", non_retryable_statuses=frozenset({501}))

        assert isinstance(outcome, Fatal)
        assert type(outcome.error) is APIError
        assert outcome.error.status_code == 501

    def test_404(self):
        body = _body({"message": "The requested resource does not exist", "errorCode": "NOT_FOUND"})
        outcome = classify_response(404, {}, body)

        assert isinstance(outcome, Fatal)
        assert isinstance(outcome.error, NotFoundError)

    def test_malformed_query(self):
        body = _body({"message": "unexpected token: FORM", "errorCode": "MALFORMED_QUERY"})
        outcome = classify_response(400, {}, body)

        assert isinstance(outcome, Fatal)
        assert isinstance(outcome.error, MalformedRequestError)

    def test_validation_with_fields(self):
        body = _body(
            {"message": "Required fields are missing: [LastName]", "errorCode": "REQUIRED_FIELD_MISSING", "fields": ["LastName"]}
        )
        outcome = classify_response(400, {}, body)

        assert isinstance(outcome, Fatal)
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.fields == ["LastName"]
        assert outcome.error.error_code == "REQUIRED_FIELD_MISSING"
        assert "[REQUIRED_FIELD_MISSING]" in outcome.error.message

    def test_field_scoped_error_on_other_status(self):
        """Any field-scoped error is a validation failure."""
        body = _body({"message": "bad", "errorCode": "CUSTOM_THING", "fields": ["Amount"]})
        outcome = classify_response(403, {}, body)
        assert isinstance(outcome.error, ValidationError)

    def test_unrecognized_body_preserved(self):
        """Unknown errors keep raw status and body."""
        outcome = classify_response(418, {}, b"<html>teapot</html>")

        assert isinstance(outcome, Fatal)
        assert type(outcome.error) is APIError
        assert outcome.error.status_code == 418
        assert outcome.error.raw_body == b"<html>teapot</html>"
        assert outcome.error.errors == []

    def test_deterministic(self):
        """Same input gives the same classification."""
        body = _body({"message": "x", "errorCode": "INVALID_FIELD"})
        first = classify_response(400, {}, body)
        second = classify_response(400, {}, body)
        assert type(first) is type(second)
        assert first.error.message == second.error.message


class TestClassifyTransportError:
    def test_transport_error_passthrough(self):
        error = TransportError("reset")
        outcome = classify_transport_error(error)
        assert isinstance(outcome, Retryable)
        assert outcome.error is error

    def test_other_exception_wrapped(self):
        outcome = classify_transport_error(ConnectionResetError("peer"))
        assert isinstance(outcome.error, TransportError)
        assert isinstance(outcome.error.cause, ConnectionResetError)
