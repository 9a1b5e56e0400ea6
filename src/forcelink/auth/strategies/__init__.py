"""Credential strategies and the factory that picks one from configuration."""

from typing import TYPE_CHECKING

from forcelink.auth.strategies.base import AuthStrategy, TokenEndpointStrategy
from forcelink.auth.strategies.password import PasswordStrategy
from forcelink.auth.strategies.refresh_token import RefreshTokenStrategy
from forcelink.auth.strategies.static import StaticTokenStrategy
from forcelink.errors.exceptions import ConfigurationError
from forcelink.types import Transport

if TYPE_CHECKING:
    from forcelink.config import ClientConfig


def build_strategy(
    config: "ClientConfig", transport: Transport | None = None
) -> AuthStrategy:
    """
    Choose exactly one strategy from configuration.

    Precedence: refresh token, then username/password, then a pre-issued
    access token.

    Raises:
        ConfigurationError: If no authentication method is configured
    """
    config.validate()
    token_url = config.resolved_token_url

    if config.refresh_token:
        return RefreshTokenStrategy(
            client_id=config.client_id,
            client_secret=config.client_secret,
            refresh_token=config.refresh_token,
            token_url=token_url,
            transport=transport,
        )
    if config.username and config.password:
        return PasswordStrategy(
            client_id=config.client_id,
            client_secret=config.client_secret,
            username=config.username,
            password=config.password,
            security_token=config.security_token,
            token_url=token_url,
            transport=transport,
        )
    if config.access_token:
        return StaticTokenStrategy(config.access_token, config.resolved_instance_url)

    raise ConfigurationError("No authentication method configured")


__all__ = [
    "AuthStrategy",
    "TokenEndpointStrategy",
    "RefreshTokenStrategy",
    "PasswordStrategy",
    "StaticTokenStrategy",
    "build_strategy",
]
