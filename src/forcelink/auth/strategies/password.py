"""Username-password grant strategy."""

from forcelink.auth.models import Credential
from forcelink.auth.strategies.base import TokenEndpointStrategy
from forcelink.errors.exceptions import TokenAcquisitionError
from forcelink.types import Transport


class PasswordStrategy(TokenEndpointStrategy):
    """
    OAuth password grant.

    The security token, when configured, is appended to the password as the
    platform requires. There is no refresh token, so refresh re-authenticates.
    """

    name = "password"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        token_url: str,
        security_token: str = "",
        transport: Transport | None = None,
    ):
        super().__init__(client_id, client_secret, token_url, transport)
        if not username or not password:
            raise TokenAcquisitionError("username and password are required")
        self.username = username
        self._password = password
        self._security_token = security_token or ""

    async def authenticate(self) -> Credential:
        form = {
            "grant_type": "password",
            "client_id": self.client_id,
            "username": self.username,
            "password": self._password + self._security_token,
        }
        if self.client_secret:
            form["client_secret"] = self.client_secret
        return await self._exchange(form)

    async def refresh(self, current: Credential | None) -> Credential:
        return await self.authenticate()
