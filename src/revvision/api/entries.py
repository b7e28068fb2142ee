"""Processing-queue routes: intake, listing, refine, playback, notices."""

from __future__ import annotations

import logging
import os
from typing import Annotated, Any
from urllib.parse import quote

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, Response
from pydantic import BaseModel, Field

from revvision.api.routes import Session
from revvision.pipeline.orchestrator import ProcessingOrchestrator
from revvision.pipeline.queue import filter_entries, hero_entry
from revvision.shared.enums import PipelineMode
from revvision.shared.exceptions import InputValidationError
from revvision.shared.models import DriveFile, LocalFile, VideoEntry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class PickedFile(BaseModel):
    model_config = {"populate_by_name": True}

    id: str
    name: str
    mime_type: str | None = Field(default=None, alias="mimeType")


class PickRequest(BaseModel):
    files: list[PickedFile] = []


class RefineRequest(BaseModel):
    model_config = {"populate_by_name": True}

    feedback: str = ""
    tolerate_rename_failure: bool = Field(default=False, alias="tolerateRenameFailure")


def _orchestrator(request: Request) -> ProcessingOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="processing queue unavailable")
    return orchestrator


def entry_payload(entry: VideoEntry) -> dict[str, Any]:
    """Browser view of an entry; server paths never leave the process."""
    payload = entry.model_dump(mode="json", exclude={"source", "display_reference"})
    payload["source"] = entry.source.kind.value
    payload["media_url"] = f"/api/entries/{quote(entry.id, safe='')}/media" if entry.display_reference else None
    return payload


@router.get("/entries")
async def list_entries(request: Request, q: str = "") -> dict[str, Any]:
    """List entries, optionally filtered by a case-insensitive tag substring."""
    orchestrator = _orchestrator(request)
    entries = filter_entries(orchestrator.queue.snapshot(), q)
    return {
        "entries": [entry_payload(e) for e in entries],
        "processing": orchestrator.is_processing,
    }


@router.get("/entries/hero")
async def get_hero(request: Request) -> dict[str, Any]:
    hero = hero_entry(_orchestrator(request).queue.snapshot())
    return {"entry": entry_payload(hero) if hero else None}


@router.post("/entries", status_code=202)
async def add_local_entries(
    request: Request,
    session: Session,
    files: Annotated[list[UploadFile], File()],
    last_modified: Annotated[list[int] | None, Form(alias="lastModified")] = None,
) -> Response:
    """Queue browser-selected videos and start processing them."""
    orchestrator = _orchestrator(request)
    modified = last_modified or []

    local_files: list[LocalFile] = []
    for idx, upload in enumerate(files):
        local_files.append(
            LocalFile(
                filename=upload.filename or f"video-{idx}",
                data=await upload.read(),
                mime_type=upload.content_type or "",
                modified_ms=modified[idx] if idx < len(modified) else 0,
            )
        )

    try:
        entries = await orchestrator.add_local(local_files)
    except InputValidationError as exc:
        return session.respond({"error": str(exc)}, status_code=400)

    storage = await session.background_drive() if orchestrator.mode == PipelineMode.PERSIST else None
    orchestrator.dispatch(storage)
    return session.respond(
        {
            "entries": [entry_payload(orchestrator.queue.get(e.id) or e) for e in entries],
            "ignored": len(local_files) - len(entries),
        },
        status_code=202,
    )


@router.post("/entries/drive", status_code=202)
async def add_drive_entries(request: Request, session: Session, body: PickRequest) -> Response:
    """Queue videos picked from the managed Drive folder."""
    orchestrator = _orchestrator(request)
    if not body.files:
        return session.respond({"error": "No files selected"}, status_code=400)

    storage = await session.background_drive()
    if storage is None:
        return session.respond({"error": "Not authenticated"}, status_code=401)

    entries = orchestrator.add_remote(
        [DriveFile(id=f.id, name=f.name, mime_type=f.mime_type) for f in body.files]
    )
    orchestrator.dispatch(storage)
    return session.respond(
        {"entries": [entry_payload(orchestrator.queue.get(e.id) or e) for e in entries]},
        status_code=202,
    )


@router.delete("/entries/{entry_id}")
async def discard_entry(entry_id: str, request: Request) -> dict[str, bool]:
    if not _orchestrator(request).discard(entry_id):
        raise HTTPException(status_code=404, detail="entry not found")
    return {"success": True}


@router.get("/entries/{entry_id}/media")
async def entry_media(entry_id: str, request: Request) -> FileResponse:
    """Stream an entry's video bytes for playback."""
    orchestrator = _orchestrator(request)
    entry = orchestrator.queue.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="entry not found")
    path = entry.display_reference
    if not path:
        raise HTTPException(status_code=409, detail="video is not available yet")
    if not orchestrator.media.owns(path) or not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="video file missing on server")
    return FileResponse(path=path, media_type=entry.mime_type, filename=entry.tags or entry.filename)


@router.post("/entries/{entry_id}/refine")
async def refine_entry(entry_id: str, request: Request, session: Session, body: RefineRequest) -> Response:
    """Refine an entry's tags from user feedback (renaming it in Drive if stored there)."""
    orchestrator = _orchestrator(request)
    entry = orchestrator.queue.get(entry_id)
    if entry is None:
        return session.respond({"error": "entry not found"}, status_code=404)

    storage = session.drive() if entry.remote_file_id else None
    try:
        ok = await orchestrator.refine(
            entry_id,
            body.feedback,
            storage=storage,
            tolerate_rename_failure=body.tolerate_rename_failure,
        )
    except InputValidationError as exc:
        return session.respond({"success": False, "error": str(exc)}, status_code=400)

    if not ok:
        notice = orchestrator.notifier.latest(entry_id)
        message = notice.message if notice else "refinement failed"
        return session.respond({"success": False, "error": message}, status_code=502)

    updated = orchestrator.queue.get(entry_id)
    return session.respond({"success": True, "entry": entry_payload(updated) if updated else None})


@router.get("/notices")
async def drain_notices(request: Request) -> dict[str, Any]:
    notices = _orchestrator(request).notifier.drain()
    return {"notices": [n.model_dump(mode="json") for n in notices]}
