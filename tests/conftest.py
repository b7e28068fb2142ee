"""Shared pytest fixtures for the revvision test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from revvision.config import Settings
from revvision.shared.models import CredentialRecord, DriveFile, Identity

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Return a Settings instance with test defaults."""
    return Settings(
        google_client_id="client-id",
        google_client_secret="client-secret",
        gemini_api_key="gemini-key",
        media_dir=str(tmp_path / "media"),
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def valid_record() -> CredentialRecord:
    return CredentialRecord(
        access_token="access-1",
        refresh_token="refresh-1",
        expiry=NOW + timedelta(hours=1),
        scope="https://www.googleapis.com/auth/drive.file",
    )


@pytest.fixture()
def expiring_record() -> CredentialRecord:
    return CredentialRecord(
        access_token="access-old",
        refresh_token="refresh-1",
        expiry=NOW + timedelta(minutes=2),
    )


@pytest.fixture()
def mock_oauth() -> AsyncMock:
    """Mock OAuthProvider."""
    mock = AsyncMock()
    mock.authorization_url = lambda state=None: "https://accounts.google.com/o/oauth2/v2/auth?client_id=client-id"
    mock.refresh.return_value = CredentialRecord(access_token="access-new", expiry=NOW + timedelta(hours=1))
    mock.exchange_code.return_value = CredentialRecord(
        access_token="access-1", refresh_token="refresh-1", expiry=NOW + timedelta(hours=1)
    )
    mock.fetch_identity.return_value = Identity(name="Agent", email="agent@example.com", image=None)
    return mock


@pytest.fixture()
def mock_storage() -> AsyncMock:
    """Mock RemoteStorage."""
    mock = AsyncMock()
    mock.managed_folder_id.return_value = "folder-1"
    mock.download_file.return_value = b"drive video bytes"
    mock.create_file.return_value = DriveFile(id="drive-new", name="tags.mp4", mime_type="video/mp4")
    mock.rename_file.return_value = None
    return mock
