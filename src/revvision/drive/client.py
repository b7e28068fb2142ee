"""Google Drive v3 REST client."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from revvision.drive.interfaces import FilePredicate, ProgressCallback
from revvision.shared.exceptions import StorageError
from revvision.shared.models import DriveFile

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class AccessTokenSource(Protocol):
    async def require_access_token(self) -> str: ...


def _quote(value: str) -> str:
    """Escape a literal for a Drive ``q`` expression."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_multipart_body(metadata: dict[str, Any], data: bytes, mime_type: str) -> tuple[bytes, str]:
    """Build a ``multipart/related`` upload body.

    Returns:
        (body, content_type header value)
    """
    boundary = f"revvision-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + data + tail, f"multipart/related; boundary={boundary}"


class GoogleDriveClient:
    """Google Drive client authenticated through the OAuth session manager.

    Implements the ``RemoteStorage`` protocol. Every call asks the token
    source for a fresh access token first, so expiring credentials are
    refreshed before use.
    """

    def __init__(
        self,
        tokens: AccessTokenSource,
        *,
        api_url: str = "https://www.googleapis.com/drive/v3",
        upload_url: str = "https://www.googleapis.com/upload/drive/v3",
        folder_name: str = "RevspotVision-Uploads",
        timeout: int = 60,
        chunk_size: int = 256 * 1024,
    ) -> None:
        self._tokens = tokens
        self._api_url = api_url.rstrip("/")
        self._upload_url = upload_url.rstrip("/")
        self._folder_name = folder_name
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._folder_id: str | None = None
        self._folder_lock = asyncio.Lock()

    @property
    def folder_name(self) -> str:
        return self._folder_name

    async def _headers(self) -> dict[str, str]:
        token = await self._tokens.require_access_token()
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = await self._headers()
        headers.update(kwargs.pop("headers", {}) or {})
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
                resp.raise_for_status()
                return resp
        except httpx.HTTPStatusError as exc:
            raise StorageError(
                f"Google Drive returned {exc.response.status_code}: {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise StorageError(f"Google Drive request failed: {exc!r}", network=True) from exc

    async def find_or_create_folder(self, name: str) -> str:
        """Return the folder id for ``name``; list first, create only if absent."""
        query = f"mimeType='{FOLDER_MIME_TYPE}' and name='{_quote(name)}' and trashed=false"
        found = await self._query(query)
        if found:
            return found[0].id

        try:
            resp = await self._request(
                "POST",
                f"{self._api_url}/files",
                params={"fields": "id"},
                json={"name": name, "mimeType": FOLDER_MIME_TYPE},
            )
        except StorageError as exc:
            if exc.status_code != 409:
                raise
            # Someone else created it between our list and create.
            logger.info("folder %r created concurrently, re-listing", name)
            found = await self._query(query)
            if not found:
                raise
            return found[0].id

        folder_id = str(resp.json()["id"])
        logger.info("created drive folder %r (%s)", name, folder_id)
        return folder_id

    async def managed_folder_id(self) -> str:
        """Resolve (once per client) the folder uploads go into."""
        async with self._folder_lock:
            if self._folder_id is None:
                self._folder_id = await self.find_or_create_folder(self._folder_name)
            return self._folder_id

    async def list_files(self, folder_id: str, predicate: FilePredicate | None = None) -> list[DriveFile]:
        query = f"'{_quote(folder_id)}' in parents and trashed=false"
        files = await self._query(query)
        if predicate is None:
            return files
        return [f for f in files if predicate(f)]

    async def _query(self, query: str) -> list[DriveFile]:
        files: list[DriveFile] = []
        page_token: str | None = None
        while True:
            params: dict[str, str] = {"q": query, "fields": "nextPageToken, files(id, name, mimeType)"}
            if page_token:
                params["pageToken"] = page_token
            resp = await self._request("GET", f"{self._api_url}/files", params=params)
            data = resp.json()
            for item in data.get("files", []):
                files.append(DriveFile(id=item["id"], name=item.get("name", ""), mime_type=item.get("mimeType")))
            page_token = data.get("nextPageToken")
            if not page_token:
                return files

    async def download_file(self, file_id: str) -> bytes:
        resp = await self._request("GET", f"{self._api_url}/files/{file_id}", params={"alt": "media"})
        logger.info("downloaded drive file %s (%.1f MB)", file_id, len(resp.content) / 1_048_576)
        return resp.content

    async def create_file(
        self,
        data: bytes,
        mime_type: str,
        name: str,
        parent_folder_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> DriveFile:
        body, content_type = build_multipart_body({"name": name, "parents": [parent_folder_id]}, data, mime_type)
        total = len(body)

        async def _stream() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, self._chunk_size):
                chunk = body[offset : offset + self._chunk_size]
                sent += len(chunk)
                if on_progress is not None:
                    on_progress(min(99, sent * 100 // total))
                yield chunk

        resp = await self._request(
            "POST",
            f"{self._upload_url}/files",
            params={"uploadType": "multipart", "fields": "id, name"},
            headers={"Content-Type": content_type, "Content-Length": str(total)},
            content=_stream(),
        )
        payload = resp.json()
        if not payload.get("id") or not payload.get("name"):
            raise StorageError("Google Drive response did not include the file id or name")

        if on_progress is not None:
            on_progress(100)
        logger.info("uploaded %r to drive as %s", name, payload["id"])
        return DriveFile(id=payload["id"], name=payload["name"], mime_type=mime_type)

    async def upload(
        self,
        data: bytes,
        mime_type: str,
        name: str,
        on_progress: ProgressCallback | None = None,
    ) -> DriveFile:
        """Upload into the managed folder, creating the folder on first use."""
        folder_id = await self.managed_folder_id()
        return await self.create_file(data, mime_type, name, folder_id, on_progress)

    async def rename_file(self, file_id: str, new_name: str) -> None:
        await self._request(
            "PATCH",
            f"{self._api_url}/files/{file_id}",
            params={"fields": "id, name"},
            json={"name": new_name},
        )
        logger.info("renamed drive file %s → %r", file_id, new_name)
