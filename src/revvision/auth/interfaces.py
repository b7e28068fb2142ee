"""Interfaces for the auth module."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from revvision.shared.models import CredentialRecord, Identity


@runtime_checkable
class CredentialStore(Protocol):
    """Persistence for the single credential record."""

    def get(self) -> CredentialRecord | None:
        """Return the stored record, or None when nothing is stored.

        Raises:
            ValueError: If a stored value exists but cannot be parsed.
        """
        ...

    def set(self, record: CredentialRecord) -> None:
        """Replace the stored record."""
        ...

    def clear(self) -> None:
        """Delete the stored record."""
        ...


@runtime_checkable
class OAuthProvider(Protocol):
    """Protocol for the OAuth 2.0 authorization server."""

    def authorization_url(self, state: str | None = None) -> str:
        """Return the consent URL the browser should be sent to."""
        ...

    async def exchange_code(self, code: str) -> CredentialRecord:
        """Exchange an authorization code for an initial credential record.

        Raises:
            OAuthError: If the token endpoint rejects the code.
        """
        ...

    async def refresh(self, refresh_token: str) -> CredentialRecord:
        """Obtain a fresh access token.

        The returned record's ``refresh_token`` may be None when the server
        does not reissue one.

        Raises:
            OAuthError: If the refresh token is invalid or revoked.
        """
        ...

    async def fetch_identity(self, access_token: str) -> Identity:
        """Return the user the access token belongs to.

        Raises:
            OAuthError: If the token is rejected.
        """
        ...
