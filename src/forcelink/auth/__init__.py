"""
Credential acquisition and refresh.

Provides:
- Credential: immutable access credential
- AuthStrategy implementations (refresh token, password, pre-issued token)
- CredentialProvider: single owner of the credential with refresh coalescing
"""

from forcelink.auth.models import DEFAULT_REFRESH_BUFFER_SECONDS, Credential
from forcelink.auth.provider import CredentialProvider
from forcelink.auth.strategies import (
    AuthStrategy,
    PasswordStrategy,
    RefreshTokenStrategy,
    StaticTokenStrategy,
    TokenEndpointStrategy,
    build_strategy,
)

__all__ = [
    "Credential",
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    "CredentialProvider",
    "AuthStrategy",
    "TokenEndpointStrategy",
    "RefreshTokenStrategy",
    "PasswordStrategy",
    "StaticTokenStrategy",
    "build_strategy",
]
