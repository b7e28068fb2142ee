"""Frozen Pydantic domain models shared by all modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import AwareDatetime, BaseModel, Field

from revvision.shared.enums import EntryStatus, NoticeLevel, SourceKind


def utc_now() -> datetime:
    """Return timezone-aware UTC timestamps for model defaults."""
    return datetime.now(timezone.utc)


class EntrySource(BaseModel):
    """Origin of an entry's bytes.

    Local sources are spooled to ``path`` on intake; remote sources carry a
    Drive ``file_id`` and are downloaded lazily by the pipeline.
    """

    model_config = {"frozen": True}

    kind: SourceKind
    path: str | None = None
    file_id: str | None = None


class VideoEntry(BaseModel):
    """One user-submitted or Drive-picked video tracked by the queue."""

    model_config = {"frozen": True}

    id: str
    filename: str
    mime_type: str = "video/mp4"
    source: EntrySource
    display_reference: str | None = None
    thumbnail: str | None = None
    tags: str | None = None
    status: EntryStatus = EntryStatus.QUEUED
    upload_progress: int = 0
    remote_file_id: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = None


class CredentialRecord(BaseModel):
    """OAuth access/refresh token pair and expiry."""

    model_config = {"frozen": True}

    access_token: str
    refresh_token: str | None = None
    expiry: AwareDatetime | None = None
    token_type: str = "Bearer"
    scope: str | None = None
    id_token: str | None = None

    def is_expiring(self, now: datetime, window: timedelta) -> bool:
        """True when the access token expires within ``window`` of ``now``.

        A record without an expiry is never considered expiring.
        """
        if self.expiry is None:
            return False
        return self.expiry <= now + window

    @classmethod
    def from_token_response(cls, payload: dict[str, Any], *, now: datetime) -> CredentialRecord:
        """Build a record from a Google token endpoint JSON body."""
        expires_in = payload.get("expires_in")
        expiry = now + timedelta(seconds=int(expires_in)) if expires_in is not None else None
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expiry=expiry,
            token_type=payload.get("token_type", "Bearer"),
            scope=payload.get("scope"),
            id_token=payload.get("id_token"),
        )

    def merged_with(self, refreshed: CredentialRecord) -> CredentialRecord:
        """Overlay a refresh result, keeping fields the refresh response omitted."""
        update = refreshed.model_dump(exclude_none=True)
        return self.model_copy(update=update)


class DriveFile(BaseModel):
    """A file (or folder) in Google Drive."""

    model_config = {"frozen": True}

    id: str
    name: str
    mime_type: str | None = None


class Identity(BaseModel):
    """The authenticated Google user, as shown to the browser."""

    model_config = {"frozen": True}

    name: str | None = None
    email: str | None = None
    image: str | None = None


class Notice(BaseModel):
    """A user-facing message produced by a pipeline or refine operation."""

    model_config = {"frozen": True}

    level: NoticeLevel = NoticeLevel.INFO
    title: str
    message: str
    entry_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class SessionInfo(BaseModel):
    """Derived session facts that may cross into the browser."""

    model_config = {"frozen": True}

    user: Identity
    expires: datetime | None = None


class LocalFile(BaseModel):
    """A browser-selected file as received by the intake endpoint."""

    model_config = {"frozen": True}

    filename: str
    data: bytes
    mime_type: str = ""
    # Milliseconds since the epoch, as reported by the browser.
    modified_ms: int = 0
