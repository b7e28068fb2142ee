"""Google OAuth 2.0 client for the authorization-code and refresh flows."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from revvision.config import Settings
from revvision.shared.exceptions import OAuthError
from revvision.shared.models import CredentialRecord, Identity, utc_now

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/auth/google/callback"


class GoogleOAuthClient:
    """OAuth client bound to one client id/secret/redirect URI.

    Implements the ``OAuthProvider`` protocol. Construct per request via
    :func:`build_oauth_client`; instances hold no token state.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        scopes: Sequence[str],
        auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth",
        token_url: str = "https://oauth2.googleapis.com/token",
        userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo",
        timeout: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._scopes = tuple(scopes)
        self._auth_url = auth_url
        self._token_url = token_url
        self._userinfo_url = userinfo_url
        self._timeout = timeout
        self._clock = clock

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    def authorization_url(self, state: str | None = None) -> str:
        """Build the consent URL requesting offline access to the Drive scopes."""
        params: dict[str, str] = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{self._auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> CredentialRecord:
        payload = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )
        record = CredentialRecord.from_token_response(payload, now=self._clock())
        logger.info("exchanged authorization code (refresh_token=%s)", "yes" if record.refresh_token else "no")
        return record

    async def refresh(self, refresh_token: str) -> CredentialRecord:
        payload = await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        record = CredentialRecord.from_token_response(payload, now=self._clock())
        logger.info("refreshed access token (expires=%s)", record.expiry.isoformat() if record.expiry else "unknown")
        return record

    async def fetch_identity(self, access_token: str) -> Identity:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    self._userinfo_url,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise OAuthError(
                f"Google userinfo returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise OAuthError(f"Google userinfo request failed: {exc!r}", network=True) from exc

        return Identity(name=data.get("name"), email=data.get("email"), image=data.get("picture"))

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        body = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            **form,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._token_url, data=body)
                resp.raise_for_status()
                data: dict[str, Any] = resp.json()
        except httpx.HTTPStatusError as exc:
            # Token endpoint errors carry {"error": "invalid_grant", ...}; never echo the request.
            raise OAuthError(
                f"Google token endpoint returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise OAuthError(f"Google token request failed: {exc!r}", network=True) from exc

        if not data.get("access_token"):
            raise OAuthError("Google token endpoint returned no access_token")
        return data


def redirect_uri_for(settings: Settings, base_url: str) -> str:
    """Return the configured redirect URI, or derive it from the request base URL."""
    configured = settings.oauth_redirect_uri.strip()
    if configured:
        return configured
    return f"{base_url.rstrip('/')}{CALLBACK_PATH}"


def build_oauth_client(settings: Settings, redirect_uri: str) -> GoogleOAuthClient:
    """Build one OAuth client per request from explicit configuration."""
    return GoogleOAuthClient(
        settings.google_client_id,
        settings.google_client_secret,
        redirect_uri,
        scopes=settings.scopes,
        auth_url=settings.oauth_auth_url,
        token_url=settings.oauth_token_url,
        userinfo_url=settings.oauth_userinfo_url,
        timeout=settings.http_timeout_seconds,
    )
