"""Pre-issued access token strategy."""

from datetime import UTC, datetime

from forcelink.auth.models import Credential
from forcelink.auth.strategies.base import AuthStrategy
from forcelink.errors.exceptions import RefreshNotSupportedError, TokenAcquisitionError


class StaticTokenStrategy(AuthStrategy):
    """Wraps an access token obtained elsewhere. Cannot be renewed."""

    name = "token"

    def __init__(self, access_token: str, instance_url: str):
        if not access_token or not instance_url:
            raise TokenAcquisitionError("access_token and instance_url are required")
        self._credential = Credential(
            access_token=access_token,
            base_address=instance_url.rstrip("/"),
            issued_at=datetime.now(UTC),
        )

    async def authenticate(self) -> Credential:
        return self._credential

    async def refresh(self, current: Credential | None) -> Credential:
        raise RefreshNotSupportedError(
            "Token refresh not supported for a pre-issued access token",
            error_code="refresh_not_supported",
        )
