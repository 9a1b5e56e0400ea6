"""Tests for credential strategies."""

import json
from urllib.parse import parse_qs

import pytest
from conftest import FakeTransport, json_response

from forcelink.auth.strategies import (
    PasswordStrategy,
    RefreshTokenStrategy,
    StaticTokenStrategy,
    build_strategy,
)
from forcelink.config import ClientConfig
from forcelink.errors.exceptions import (
    ConfigurationError,
    RefreshNotSupportedError,
    TokenAcquisitionError,
    TransportError,
)
from forcelink.transport import HttpResponse

TOKEN_URL = "https://login.salesforce.com/services/oauth2/token"


def _token_body(access_token="00Dxx!new", **extra):
    data = {
        "access_token": access_token,
        "instance_url": "https://acme.my.salesforce.com",
        "token_type": "Bearer",
        "issued_at": "1700000000000",
    }
    data.update(extra)
    return data


def _form(request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.body.decode()).items()}


class TestRefreshTokenStrategy:
    @pytest.mark.asyncio
    async def test_exchanges_refresh_token(self):
        transport = FakeTransport().add("POST", "/oauth2/token", json_response(200, _token_body()))
        strategy = RefreshTokenStrategy("cid", "csecret", "rt-1", TOKEN_URL, transport)

        credential = await strategy.authenticate()

        assert credential.access_token == "00Dxx!new"
        assert credential.refresh_token == "rt-1"
        request = transport.requests[0]
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert _form(request) == {
            "grant_type": "refresh_token",
            "client_id": "cid",
            "client_secret": "csecret",
            "refresh_token": "rt-1",
        }

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_used_next_time(self):
        transport = FakeTransport().add(
            "POST",
            "/oauth2/token",
            json_response(200, _token_body(refresh_token="rt-2")),
            json_response(200, _token_body()),
        )
        strategy = RefreshTokenStrategy("cid", "", "rt-1", TOKEN_URL, transport)

        await strategy.authenticate()
        credential = await strategy.refresh(None)

        assert _form(transport.requests[1])["refresh_token"] == "rt-2"
        assert "client_secret" not in _form(transport.requests[1])
        assert credential.refresh_token == "rt-2"

    @pytest.mark.asyncio
    async def test_invalid_grant_surfaces_error_code(self):
        """The endpoint's own error code reaches the caller unmodified."""
        transport = FakeTransport().add(
            "POST",
            "/oauth2/token",
            json_response(
                400, {"error": "invalid_grant", "error_description": "expired access/refresh token"}
            ),
        )
        strategy = RefreshTokenStrategy("cid", "csecret", "rt-1", TOKEN_URL, transport)

        with pytest.raises(TokenAcquisitionError) as exc_info:
            await strategy.refresh(None)

        error = exc_info.value
        assert error.error_code == "invalid_grant"
        assert error.description == "expired access/refresh token"
        assert error.status_code == 400
        assert error.is_invalid_grant
        assert "rt-1" not in str(error)

    @pytest.mark.asyncio
    async def test_unreachable_endpoint(self):
        transport = FakeTransport().add("POST", "/oauth2/token", TransportError("Connection error"))
        strategy = RefreshTokenStrategy("cid", "csecret", "rt-1", TOKEN_URL, transport)

        with pytest.raises(TokenAcquisitionError) as exc_info:
            await strategy.authenticate()
        assert isinstance(exc_info.value.cause, TransportError)

    @pytest.mark.asyncio
    async def test_unusable_success_body(self):
        transport = FakeTransport().add(
            "POST", "/oauth2/token", HttpResponse(200, {}, json.dumps({"token_type": "Bearer"}).encode())
        )
        strategy = RefreshTokenStrategy("cid", "csecret", "rt-1", TOKEN_URL, transport)

        with pytest.raises(TokenAcquisitionError, match="unusable body"):
            await strategy.authenticate()

    def test_requires_refresh_token(self):
        with pytest.raises(TokenAcquisitionError):
            RefreshTokenStrategy("cid", "csecret", "", TOKEN_URL, FakeTransport())

    @pytest.mark.asyncio
    async def test_close_leaves_shared_transport_open(self):
        transport = FakeTransport()
        strategy = RefreshTokenStrategy("cid", "csecret", "rt-1", TOKEN_URL, transport)
        await strategy.close()
        assert not transport.closed


class TestPasswordStrategy:
    @pytest.mark.asyncio
    async def test_password_includes_security_token(self):
        transport = FakeTransport().add("POST", "/oauth2/token", json_response(200, _token_body()))
        strategy = PasswordStrategy(
            "cid", "csecret", "ops@acme.com", "hunter2", TOKEN_URL, "XYZ", transport
        )

        await strategy.authenticate()

        form = _form(transport.requests[0])
        assert form["grant_type"] == "password"
        assert form["username"] == "ops@acme.com"
        assert form["password"] == "hunter2XYZ"

    @pytest.mark.asyncio
    async def test_refresh_reauthenticates(self):
        transport = FakeTransport().add("POST", "/oauth2/token", json_response(200, _token_body()))
        strategy = PasswordStrategy("cid", "csecret", "ops@acme.com", "pw", TOKEN_URL, transport=transport)

        await strategy.refresh(None)
        assert _form(transport.requests[0])["grant_type"] == "password"


class TestStaticTokenStrategy:
    @pytest.mark.asyncio
    async def test_authenticate_returns_token(self):
        strategy = StaticTokenStrategy("00Dxx!static", "https://acme.my.salesforce.com/")
        credential = await strategy.authenticate()

        assert credential.access_token == "00Dxx!static"
        assert credential.base_address == "https://acme.my.salesforce.com"
        assert credential.expires_at is None

    @pytest.mark.asyncio
    async def test_refresh_not_supported(self):
        strategy = StaticTokenStrategy("00Dxx!static", "https://acme.my.salesforce.com")
        with pytest.raises(RefreshNotSupportedError) as exc_info:
            await strategy.refresh(None)
        assert exc_info.value.error_code == "refresh_not_supported"


class TestBuildStrategy:
    """Tests for strategy selection from configuration."""

    def test_refresh_token_wins(self):
        config = ClientConfig(
            client_id="cid", refresh_token="rt", username="u", password="p", access_token="at",
            instance_url="https://acme.my.salesforce.com",
        )
        strategy = build_strategy(config, FakeTransport())
        assert isinstance(strategy, RefreshTokenStrategy)
        assert strategy.token_url == TOKEN_URL

    def test_password(self):
        config = ClientConfig(client_id="cid", username="u", password="p", sandbox=True)
        strategy = build_strategy(config, FakeTransport())
        assert isinstance(strategy, PasswordStrategy)
        assert strategy.token_url == "https://test.salesforce.com/services/oauth2/token"

    def test_access_token(self):
        config = ClientConfig(access_token="at", instance_url="https://acme.my.salesforce.com")
        assert isinstance(build_strategy(config), StaticTokenStrategy)

    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError):
            build_strategy(ClientConfig())
