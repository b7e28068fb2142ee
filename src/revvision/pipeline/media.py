"""On-disk spool for entry video bytes (the playback display reference)."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)


def suffix_for(filename: str, default: str = ".mp4") -> str:
    suffix = Path(filename).suffix.lower()
    if not suffix or len(suffix) > 8 or not suffix[1:].isalnum():
        return default
    return suffix


class MediaStore:
    """Spool video bytes to ``media_dir`` and hand out file paths.

    Paths are random, so a discarded entry's file never collides with a
    later one. Every path handed out must be given back to :meth:`release`.
    """

    def __init__(self, media_dir: str) -> None:
        self._dir = Path(media_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    async def put(self, data: bytes, *, suffix: str = ".mp4") -> str:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / f"{uuid.uuid4().hex}{suffix}"
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        logger.debug("spooled %d bytes → %s", len(data), path)
        return str(path)

    async def read(self, path: str) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            data: bytes = await f.read()
        return data

    def owns(self, path: str) -> bool:
        try:
            return Path(path).resolve().parent == self._dir.resolve()
        except OSError:
            return False

    def release(self, path: str | None) -> None:
        if not path:
            return
        try:
            os.remove(path)
            logger.debug("released %s", path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("failed to release %s: %s", path, exc)
