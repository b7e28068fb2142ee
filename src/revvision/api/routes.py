"""Auth and Google Drive routes."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, Field

from revvision.api.session import RequestSession, request_session
from revvision.shared.exceptions import AuthenticationError, OAuthError, RemoteServiceError
from revvision.shared.models import DriveFile

logger = logging.getLogger(__name__)

router = APIRouter()

Session = Annotated[RequestSession, Depends(request_session)]


class RenameRequest(BaseModel):
    model_config = {"populate_by_name": True}

    file_id: str | None = Field(default=None, alias="fileId")
    new_name: str | None = Field(default=None, alias="newName")


def _is_video(file: DriveFile) -> bool:
    return bool(file.mime_type and file.mime_type.startswith("video/"))


# ── Auth ────────────────────────────────────────────────────────


@router.get("/api/auth/url")
async def auth_url(session: Session) -> Response:
    """Return the Google consent URL."""
    if not session.settings.google_client_id:
        logger.error("auth url requested but REVVISION_GOOGLE_CLIENT_ID is not set")
        return session.respond({"error": "Failed to get auth URL"}, status_code=500)
    return session.respond({"url": session.manager.authorization_url()})


@router.get("/api/auth/google/callback")
async def auth_callback(session: Session, code: str | None = None) -> Response:
    """Exchange the authorization code and persist the credential cookie."""
    if not code:
        return RedirectResponse(url="/?error=Missing-code", status_code=302)

    try:
        await session.manager.complete_authorization(code)
    except OAuthError as exc:
        logger.warning("authorization code exchange failed: %s", exc)
        return RedirectResponse(url="/?error=Authentication-failed", status_code=302)

    return session.finish(RedirectResponse(url="/", status_code=302))


@router.get("/api/auth/session")
async def auth_session(session: Session) -> Response:
    """Validate the cookie by fetching the identity it belongs to."""
    try:
        info = await session.manager.current_session()
    except RemoteServiceError as exc:
        return session.respond({"error": "Could not reach Google", "details": str(exc)}, status_code=502)

    if info is None:
        # Drop whatever the browser sent, even if it was never parseable.
        session.store.clear()
        return session.respond({"error": "Not authenticated"}, status_code=401)

    return session.respond(
        {
            "session": {
                "user": info.user.model_dump(),
                "expires": info.expires.isoformat() if info.expires else None,
            }
        }
    )


@router.get("/api/auth/signout")
async def auth_signout(session: Session) -> Response:
    session.manager.sign_out()
    return session.respond({"success": True})


# ── Drive ───────────────────────────────────────────────────────


@router.get("/api/drive/status")
async def drive_status(session: Session) -> Response:
    return session.respond({"connected": await session.manager.is_connected()})


@router.get("/api/drive/files")
async def drive_files(session: Session) -> Response:
    """List the videos waiting in the managed Drive folder."""
    if not await session.manager.is_connected():
        return session.respond({"error": "Not authenticated"}, status_code=401)

    drive = session.drive()
    try:
        folder_id = await drive.managed_folder_id()
        files = await drive.list_files(folder_id, _is_video)
    except AuthenticationError:
        return session.respond({"error": "Not authenticated"}, status_code=401)
    except RemoteServiceError as exc:
        return session.respond({"error": str(exc)}, status_code=502)

    return session.respond(
        {
            "folder": {"id": folder_id, "name": drive.folder_name},
            "files": [f.model_dump() for f in files],
        }
    )


@router.post("/api/upload-to-drive")
async def upload_to_drive(
    session: Session,
    file: Annotated[UploadFile | None, File()] = None,
    new_name: Annotated[str | None, Form(alias="newName")] = None,
) -> Response:
    """Store an uploaded video in the managed folder under ``newName``."""
    if file is None or not new_name:
        return session.respond({"error": "Missing file or newName"}, status_code=400)
    mime_type = file.content_type or ""
    if not mime_type.startswith("video/"):
        return session.respond({"error": f"Only video files are accepted (got {mime_type or 'unknown'})"}, 400)

    if not await session.manager.is_connected():
        return session.respond({"error": "Not authenticated"}, status_code=401)

    data = await file.read()
    try:
        created = await session.drive().upload(data, mime_type, new_name)
    except AuthenticationError:
        return session.respond({"error": "Not authenticated"}, status_code=401)
    except RemoteServiceError as exc:
        logger.error("upload to drive failed: %s", exc)
        return session.respond({"error": "Failed to upload to Google Drive.", "details": str(exc)}, 500)

    return session.respond({"id": created.id, "name": created.name})


@router.post("/api/rename-drive-file")
async def rename_drive_file(session: Session, body: RenameRequest) -> Response:
    if not await session.manager.is_connected():
        return session.respond({"error": "Not authenticated"}, status_code=401)
    if not body.file_id or not body.new_name:
        return session.respond({"error": "Missing fileId or newName"}, status_code=400)

    try:
        await session.drive().rename_file(body.file_id, body.new_name)
    except AuthenticationError:
        return session.respond({"error": "Not authenticated"}, status_code=401)
    except RemoteServiceError as exc:
        logger.error("rename in drive failed: %s", exc)
        return session.respond({"error": str(exc)}, status_code=500)

    return session.respond({"success": True})


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
