"""Tests for GoogleDriveClient."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from revvision.drive.client import FOLDER_MIME_TYPE, GoogleDriveClient, build_multipart_body
from revvision.shared.exceptions import AuthenticationError, StorageError

API = "https://www.googleapis.com/drive/v3"
UPLOAD = "https://www.googleapis.com/upload/drive/v3"


class StaticTokens:
    def __init__(self, token: str | None = "access-1") -> None:
        self.token = token
        self.calls = 0

    async def require_access_token(self) -> str:
        self.calls += 1
        if self.token is None:
            raise AuthenticationError("Google Drive not connected.")
        return self.token


@pytest.fixture
def tokens() -> StaticTokens:
    return StaticTokens()


@pytest.fixture
def client(tokens: StaticTokens) -> GoogleDriveClient:
    return GoogleDriveClient(tokens, folder_name="RevspotVision-Uploads", timeout=5, chunk_size=16)


class TestFolders:
    @respx.mock
    async def test_existing_folder_is_reused(self, client: GoogleDriveClient) -> None:
        listing = respx.get(f"{API}/files").mock(
            return_value=httpx.Response(200, json={"files": [{"id": "folder-1", "name": "RevspotVision-Uploads"}]})
        )
        create = respx.post(f"{API}/files").mock(return_value=httpx.Response(200, json={"id": "never"}))

        assert await client.find_or_create_folder("RevspotVision-Uploads") == "folder-1"
        assert not create.called
        q = listing.calls.last.request.url.params["q"]
        assert f"mimeType='{FOLDER_MIME_TYPE}'" in q
        assert "name='RevspotVision-Uploads'" in q
        assert "trashed=false" in q

    @respx.mock
    async def test_missing_folder_is_created(self, client: GoogleDriveClient) -> None:
        respx.get(f"{API}/files").mock(return_value=httpx.Response(200, json={"files": []}))
        create = respx.post(f"{API}/files").mock(return_value=httpx.Response(200, json={"id": "folder-2"}))

        assert await client.find_or_create_folder("RevspotVision-Uploads") == "folder-2"
        body = json.loads(create.calls.last.request.content)
        assert body == {"name": "RevspotVision-Uploads", "mimeType": FOLDER_MIME_TYPE}

    @respx.mock
    async def test_managed_folder_resolved_once(self, client: GoogleDriveClient) -> None:
        listing = respx.get(f"{API}/files").mock(
            return_value=httpx.Response(200, json={"files": [{"id": "folder-1", "name": "RevspotVision-Uploads"}]})
        )

        assert await client.managed_folder_id() == "folder-1"
        assert await client.managed_folder_id() == "folder-1"
        assert listing.call_count == 1

    @respx.mock
    async def test_quotes_are_escaped(self, client: GoogleDriveClient) -> None:
        listing = respx.get(f"{API}/files").mock(
            return_value=httpx.Response(200, json={"files": [{"id": "f", "name": "Bob's"}]})
        )
        await client.find_or_create_folder("Bob's")
        assert "name='Bob\\'s'" in listing.calls.last.request.url.params["q"]


class TestListing:
    @respx.mock
    async def test_paginates_and_filters(self, client: GoogleDriveClient) -> None:
        respx.get(f"{API}/files").mock(
            side_effect=[
                httpx.Response(
                    200,
                    json={
                        "files": [{"id": "1", "name": "a.mp4", "mimeType": "video/mp4"}],
                        "nextPageToken": "page-2",
                    },
                ),
                httpx.Response(200, json={"files": [{"id": "2", "name": "notes.txt", "mimeType": "text/plain"}]}),
            ]
        )

        files = await client.list_files("folder-1", lambda f: (f.mime_type or "").startswith("video/"))

        assert [f.id for f in files] == ["1"]
        assert files[0].name == "a.mp4"

    @respx.mock
    async def test_download(self, client: GoogleDriveClient) -> None:
        route = respx.get(f"{API}/files/file-1").mock(return_value=httpx.Response(200, content=b"video"))
        assert await client.download_file("file-1") == b"video"
        assert route.calls.last.request.url.params["alt"] == "media"


class TestUpload:
    @respx.mock
    async def test_create_file_reports_progress_to_completion(self, client: GoogleDriveClient) -> None:
        route = respx.post(f"{UPLOAD}/files").mock(
            return_value=httpx.Response(200, json={"id": "new-1", "name": "20240501_Kitchen.mp4"})
        )
        progress: list[int] = []

        created = await client.create_file(b"x" * 200, "video/mp4", "20240501_Kitchen.mp4", "folder-1", progress.append)

        assert created.id == "new-1"
        assert created.name == "20240501_Kitchen.mp4"
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert all(0 <= p <= 100 for p in progress)
        request = route.calls.last.request
        assert request.url.params["uploadType"] == "multipart"
        assert request.headers["content-type"].startswith("multipart/related; boundary=")
        assert request.headers["authorization"] == "Bearer access-1"

    @respx.mock
    async def test_upload_goes_into_managed_folder(self, client: GoogleDriveClient) -> None:
        listing = respx.get(f"{API}/files").mock(
            return_value=httpx.Response(200, json={"files": [{"id": "folder-1", "name": "RevspotVision-Uploads"}]})
        )
        route = respx.post(f"{UPLOAD}/files").mock(
            return_value=httpx.Response(200, json={"id": "new-1", "name": "tags.mp4"})
        )

        created = await client.upload(b"data", "video/mp4", "tags.mp4")

        assert created.id == "new-1"
        assert listing.call_count == 1
        assert route.call_count == 1

    @respx.mock
    async def test_missing_id_in_response_raises(self, client: GoogleDriveClient) -> None:
        respx.post(f"{UPLOAD}/files").mock(return_value=httpx.Response(200, json={"name": "x"}))
        progress: list[int] = []

        with pytest.raises(StorageError, match="file id or name"):
            await client.create_file(b"data", "video/mp4", "x", "folder-1", progress.append)
        assert 100 not in progress

    @respx.mock
    async def test_server_error_raises_storage_error(self, client: GoogleDriveClient) -> None:
        respx.post(f"{UPLOAD}/files").mock(return_value=httpx.Response(403, text="insufficient permissions"))

        with pytest.raises(StorageError, match="Google Drive returned 403") as exc_info:
            await client.create_file(b"data", "video/mp4", "x", "folder-1")
        assert exc_info.value.status_code == 403

    def test_multipart_body_layout(self) -> None:
        body, content_type = build_multipart_body({"name": "a.mp4"}, b"VIDEO", "video/mp4")
        boundary = content_type.split("boundary=")[1]
        assert body.startswith(f"--{boundary}\r\n".encode())
        assert b'{"name": "a.mp4"}' in body
        assert b"Content-Type: video/mp4\r\n\r\nVIDEO" in body
        assert body.endswith(f"\r\n--{boundary}--\r\n".encode())


class TestRename:
    @respx.mock
    async def test_rename_patches_name(self, client: GoogleDriveClient) -> None:
        route = respx.patch(f"{API}/files/file-1").mock(
            return_value=httpx.Response(200, json={"id": "file-1", "name": "new.mp4"})
        )

        await client.rename_file("file-1", "new.mp4")

        assert json.loads(route.calls.last.request.content) == {"name": "new.mp4"}

    @respx.mock
    async def test_rename_network_error(self, client: GoogleDriveClient) -> None:
        respx.patch(f"{API}/files/file-1").mock(side_effect=httpx.ConnectTimeout("slow"))

        with pytest.raises(StorageError, match="request failed") as exc_info:
            await client.rename_file("file-1", "new.mp4")
        assert exc_info.value.network

    async def test_no_credentials_makes_no_request(self) -> None:
        client = GoogleDriveClient(StaticTokens(token=None))
        with respx.mock(assert_all_called=False) as router:
            route = router.patch(f"{API}/files/file-1")
            with pytest.raises(AuthenticationError):
                await client.rename_file("file-1", "new.mp4")
            assert not route.called
