"""OAuth session manager: the token check-and-refresh state machine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from revvision.auth.interfaces import CredentialStore, OAuthProvider
from revvision.auth.singleflight import SingleFlight
from revvision.shared.enums import SessionState
from revvision.shared.exceptions import AuthenticationError, OAuthError
from revvision.shared.models import CredentialRecord, SessionInfo, utc_now

logger = logging.getLogger(__name__)

_DEFAULT_WINDOW = timedelta(minutes=5)


class OAuthSessionManager:
    """Keep the stored credential usable for every authenticated operation.

    States::

        UNAUTHENTICATED --(code exchange)--> VALID
        VALID --(expiring within window)--> REFRESHING
        REFRESHING --ok--> VALID
        REFRESHING --rejected--> UNAUTHENTICATED  (stored record deleted)
        REFRESHING --unreachable--> UNAUTHENTICATED  (record kept for the next try)

    A malformed stored record is treated like a missing one and deleted.
    Refreshes go through a shared :class:`SingleFlight` so concurrent
    operations observing the same expiring token trigger one refresh call.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth: OAuthProvider,
        *,
        refresh_window: timedelta = _DEFAULT_WINDOW,
        guard: SingleFlight | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._oauth = oauth
        self._window = refresh_window
        self._guard = guard or SingleFlight()
        self._clock = clock
        self._state = SessionState.UNAUTHENTICATED

    @property
    def state(self) -> SessionState:
        return self._state

    def authorization_url(self, state: str | None = None) -> str:
        return self._oauth.authorization_url(state)

    async def complete_authorization(self, code: str) -> CredentialRecord:
        """Exchange ``code`` and persist the resulting record.

        Nothing is persisted when the exchange fails.

        Raises:
            OAuthError: If the code exchange fails.
        """
        record = await self._oauth.exchange_code(code)
        self._store.set(record)
        self._state = SessionState.VALID
        return record

    def sign_out(self) -> None:
        self._store.clear()
        self._state = SessionState.UNAUTHENTICATED

    async def get_credentials(self) -> CredentialRecord | None:
        """Return a non-expiring record, refreshing it first if needed.

        Returns None (never raises) when there is no usable credential.
        """
        try:
            record = self._store.get()
        except ValueError as exc:
            logger.warning("stored credential is malformed, clearing it: %s", type(exc).__name__)
            self._store.clear()
            self._state = SessionState.UNAUTHENTICATED
            return None

        if record is None:
            self._state = SessionState.UNAUTHENTICATED
            return None

        if not record.is_expiring(self._clock(), self._window):
            self._state = SessionState.VALID
            return record

        return await self._refresh(record)

    async def require_access_token(self) -> str:
        """Return a valid access token.

        Raises:
            AuthenticationError: If no usable credential is available.
        """
        record = await self.get_credentials()
        if record is None:
            raise AuthenticationError("Google Drive not connected.")
        return record.access_token

    async def is_connected(self) -> bool:
        return await self.get_credentials() is not None

    async def current_session(self) -> SessionInfo | None:
        """Validate the credential by fetching the identity it belongs to.

        A rejected token clears the stored record.
        """
        record = await self.get_credentials()
        if record is None:
            return None
        try:
            identity = await self._oauth.fetch_identity(record.access_token)
        except OAuthError as exc:
            if exc.network:
                raise
            logger.warning("stored credential rejected by userinfo, clearing it: %s", exc)
            self.sign_out()
            return None
        return SessionInfo(user=identity, expires=record.expiry)

    async def _refresh(self, record: CredentialRecord) -> CredentialRecord | None:
        refresh_token = record.refresh_token
        if not refresh_token:
            logger.warning("access token expiring and no refresh token stored, clearing credential")
            self.sign_out()
            return None

        self._state = SessionState.REFRESHING
        try:
            refreshed: CredentialRecord = await self._guard.run(
                refresh_token,
                lambda: self._oauth.refresh(refresh_token),
            )
        except OAuthError as exc:
            if exc.network:
                # Google unreachable; the refresh token may still be good.
                logger.warning("token refresh could not reach google, keeping credential: %s", exc)
                self._state = SessionState.UNAUTHENTICATED
                return None
            logger.warning("token refresh failed, clearing stored credential: %s", exc)
            self.sign_out()
            return None

        # Refresh responses usually omit refresh_token; keep the original.
        merged = record.merged_with(refreshed)
        self._store.set(merged)
        self._state = SessionState.VALID
        return merged
