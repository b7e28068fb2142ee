"""Request-scoped session plumbing: cookie store, OAuth manager, Drive client."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from revvision.auth.oauth import GoogleOAuthClient, build_oauth_client, redirect_uri_for
from revvision.auth.session import OAuthSessionManager
from revvision.auth.singleflight import SingleFlight
from revvision.auth.store import CookieCredentialStore, MemoryCredentialStore
from revvision.config import Settings
from revvision.drive.client import GoogleDriveClient


def _state(request: Request, key: str) -> Any:
    return getattr(request.app.state, key, None)


def get_app_settings(request: Request) -> Settings:
    settings: Settings = _state(request, "settings")
    return settings


@dataclass
class RequestSession:
    """Everything an endpoint needs to act on behalf of the browser's credential."""

    settings: Settings
    store: CookieCredentialStore
    oauth: GoogleOAuthClient
    manager: OAuthSessionManager
    guard: SingleFlight

    def drive(self) -> GoogleDriveClient:
        """Drive client that refreshes through (and persists to) this request's cookie."""
        return _drive_client(self.settings, self.manager)

    async def background_drive(self) -> GoogleDriveClient | None:
        """Drive client for work that outlives the request.

        The current (possibly just refreshed) record is copied into a
        process-local store; later refreshes stay in memory and the next
        request refreshes its own cookie.
        """
        record = await self.manager.get_credentials()
        if record is None:
            return None
        manager = OAuthSessionManager(
            MemoryCredentialStore(record),
            self.oauth,
            refresh_window=timedelta(seconds=self.settings.token_refresh_window_seconds),
            guard=self.guard,
        )
        return _drive_client(self.settings, manager)

    def respond(self, content: Any, status_code: int = 200) -> JSONResponse:
        response = JSONResponse(content=content, status_code=status_code)
        self.store.apply(response)
        return response

    def finish(self, response: Response) -> Response:
        self.store.apply(response)
        return response


def _drive_client(settings: Settings, manager: OAuthSessionManager) -> GoogleDriveClient:
    return GoogleDriveClient(
        manager,
        api_url=settings.drive_api_url,
        upload_url=settings.drive_upload_url,
        folder_name=settings.drive_folder_name,
        timeout=settings.http_timeout_seconds,
        chunk_size=settings.drive_upload_chunk_bytes,
    )


def request_session(request: Request) -> RequestSession:
    """FastAPI dependency building a fresh session for this request."""
    settings = get_app_settings(request)
    store = CookieCredentialStore(
        request.cookies.get(settings.token_cookie_name),
        cookie_name=settings.token_cookie_name,
        max_age_seconds=settings.token_cookie_max_age_days * 24 * 3600,
        secure=settings.is_production,
    )
    oauth = build_oauth_client(settings, redirect_uri_for(settings, str(request.base_url)))
    guard: SingleFlight = _state(request, "refresh_guard") or SingleFlight()
    manager = OAuthSessionManager(
        store,
        oauth,
        refresh_window=timedelta(seconds=settings.token_refresh_window_seconds),
        guard=guard,
    )
    return RequestSession(settings=settings, store=store, oauth=oauth, manager=manager, guard=guard)
