"""Credential model for the token endpoint's responses."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# Default token refresh buffer (5 minutes before expiry)
DEFAULT_REFRESH_BUFFER_SECONDS = 300


def _parse_issued_at(value: Any) -> datetime:
    """
    Parse the endpoint's issued_at value.

    The platform sends epoch milliseconds as a string; ISO-8601 is accepted
    as well. Anything else falls back to now.
    """
    if value is None or value == "":
        return datetime.now(UTC)
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        pass
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(UTC)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class Credential:
    """
    Access credential for one org session.

    Immutable: a refresh produces a new Credential that replaces the old one
    wholesale.

    Attributes:
        access_token: Bearer token for resource calls
        base_address: Instance URL that resource paths are joined onto
        issued_at: UTC time the token was issued
        expires_at: UTC expiry, or None if the endpoint did not say
        refresh_token: Long-lived token for the refresh-token grant
        token_type: Authorization scheme (typically "Bearer")
        identity_url: Identity service URL for the authenticated user
        scope: Space-separated scopes granted
    """

    access_token: str
    base_address: str
    issued_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime | None = None
    refresh_token: str | None = field(default=None, repr=False)
    token_type: str = "Bearer"
    identity_url: str | None = None
    scope: str | None = None

    @classmethod
    def from_response(
        cls, response: dict, refresh_token: str | None = None
    ) -> "Credential":
        """
        Create a credential from a token endpoint response.

        Args:
            response: Parsed JSON body of a successful exchange
            refresh_token: Refresh token to carry over when the response omits one

        Returns:
            Credential instance

        Raises:
            KeyError: If access_token or instance_url is missing
        """
        issued_at = _parse_issued_at(response.get("issued_at"))
        expires_in = response.get("expires_in")
        expires_at = (
            issued_at + timedelta(seconds=int(expires_in))
            if expires_in not in (None, "")
            else None
        )

        return cls(
            access_token=response["access_token"],
            base_address=response["instance_url"].rstrip("/"),
            issued_at=issued_at,
            expires_at=expires_at,
            refresh_token=response.get("refresh_token") or refresh_token,
            token_type=response.get("token_type") or "Bearer",
            identity_url=response.get("id"),
            scope=response.get("scope"),
        )

    def is_expired(self, buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS) -> bool:
        """
        Check if the credential is expired or close to expiry.

        A credential without a known expiry is never considered expired here;
        the platform's 401 is what invalidates it.

        Args:
            buffer_seconds: Safety buffer before actual expiry (default: 5 minutes)
        """
        if self.expires_at is None:
            return False
        return datetime.now(UTC) >= self.expires_at - timedelta(seconds=buffer_seconds)

    @property
    def remaining_lifetime(self) -> timedelta | None:
        """Remaining time before expiry, or None if unknown."""
        if self.expires_at is None:
            return None
        return self.expires_at - datetime.now(UTC)

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type or 'Bearer'} {self.access_token}"

    def __repr__(self) -> str:
        return (
            f"Credential(base_address={self.base_address!r}, "
            f"issued_at={self.issued_at.isoformat()}, "
            f"expires_at={self.expires_at.isoformat() if self.expires_at else None})"
        )


__all__ = ["Credential", "DEFAULT_REFRESH_BUFFER_SECONDS"]
