"""Refresh-token grant strategy."""

from forcelink.auth.models import Credential
from forcelink.auth.strategies.base import TokenEndpointStrategy
from forcelink.errors.exceptions import TokenAcquisitionError
from forcelink.types import Transport


class RefreshTokenStrategy(TokenEndpointStrategy):
    """
    OAuth refresh_token grant.

    Both authenticate and refresh exchange the stored refresh token. If the
    endpoint rotates the refresh token, the new one is used from then on.
    """

    name = "refresh_token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str,
        transport: Transport | None = None,
    ):
        super().__init__(client_id, client_secret, token_url, transport)
        if not refresh_token:
            raise TokenAcquisitionError("refresh_token is required")
        self._refresh_token = refresh_token

    async def authenticate(self) -> Credential:
        form = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "refresh_token": self._refresh_token,
        }
        if self.client_secret:
            form["client_secret"] = self.client_secret

        credential = await self._exchange(form, carry_refresh_token=self._refresh_token)
        if credential.refresh_token:
            self._refresh_token = credential.refresh_token
        return credential

    async def refresh(self, current: Credential | None) -> Credential:
        return await self.authenticate()
