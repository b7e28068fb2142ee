"""FFmpeg-based representative frame extraction."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import math
import os
import shutil
import tempfile
from typing import Any

import aiofiles  # type: ignore[import-untyped]

from revvision.shared.exceptions import ExtractionError

logger = logging.getLogger(__name__)

FALLBACK_TIMESTAMP = 1.0


def choose_probe_timestamp(duration: float | None) -> float:
    """Pick the seek position for the representative frame.

    ``min(1s, duration/3)`` when the duration is finite and known, else 1s.
    """
    if duration is None or math.isnan(duration) or math.isinf(duration) or duration < 0:
        return FALLBACK_TIMESTAMP
    return min(FALLBACK_TIMESTAMP, duration / 3)


def frame_data_uri(jpeg: bytes) -> str:
    """Encode JPEG bytes as a ``data:`` URI."""
    return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")


def _parse_duration(raw: Any) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        # ffprobe reports "N/A" for streams without a known duration
        return None


class FFmpegFrameExtractor:
    """Frame extractor implementation using ffprobe + ffmpeg subprocesses.

    Implements the ``FrameExtractor`` protocol. Each call spools the bytes
    into a private temp directory that is removed on every exit path.
    """

    def __init__(
        self,
        *,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        timeout: int = 60,
        quality: int = 3,
    ) -> None:
        self._ffmpeg_bin = ffmpeg_bin
        self._ffprobe_bin = ffprobe_bin
        self._timeout = timeout
        self._quality = quality

    async def extract(self, data: bytes, *, suffix: str = ".mp4") -> bytes:
        """Decode one representative frame and return it as JPEG bytes.

        Raises:
            ExtractionError: If the source is empty or unreadable, the
                decoder is missing, or the frame has no pixels.
        """
        if not data:
            raise ExtractionError("video source is empty")

        tmp_dir = tempfile.mkdtemp(prefix="revvision-frame-")
        try:
            path = os.path.join(tmp_dir, f"source{suffix or '.mp4'}")
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)

            duration, width, height = await self._probe(path)
            if width <= 0 or height <= 0:
                raise ExtractionError(f"video frame has zero dimensions ({width}x{height})")

            timestamp = choose_probe_timestamp(duration)
            jpeg = await self._grab(path, timestamp)
            logger.info(
                "extracted frame at %.3fs from %dx%d source (%d bytes)", timestamp, width, height, len(jpeg)
            )
            return jpeg
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

    async def _probe(self, path: str) -> tuple[float | None, int, int]:
        cmd = [
            self._ffprobe_bin,
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=width,height:format=duration",
            "-of",
            "json",
            path,
        ]
        stdout = await self._run(cmd, "ffprobe")
        try:
            info = json.loads(stdout.decode(errors="replace") or "{}")
        except json.JSONDecodeError as exc:
            raise ExtractionError("ffprobe produced unreadable output") from exc

        streams = info.get("streams") or []
        if not streams:
            raise ExtractionError(
                "Failed to load or process video file. It might be corrupt or an unsupported format."
            )
        stream = streams[0]
        duration = _parse_duration((info.get("format") or {}).get("duration"))
        return duration, int(stream.get("width") or 0), int(stream.get("height") or 0)

    async def _grab(self, path: str, timestamp: float) -> bytes:
        cmd = [
            self._ffmpeg_bin,
            "-v",
            "error",
            "-ss",
            f"{timestamp:.3f}",
            "-i",
            path,
            "-frames:v",
            "1",
            "-q:v",
            str(self._quality),
            "-f",
            "image2pipe",
            "-vcodec",
            "mjpeg",
            "pipe:1",
        ]
        jpeg = await self._run(cmd, "ffmpeg")
        if not jpeg:
            raise ExtractionError(f"no frame decoded at {timestamp:.3f}s")
        return jpeg

    async def _run(self, cmd: list[str], label: str) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ExtractionError(f"{label} binary not found: {cmd[0]}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            await self._kill(proc)
            raise ExtractionError(f"{label} timed out after {self._timeout}s") from exc
        except BaseException:
            # Cancelled mid-run: the child must not outlive the spooled file.
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            err_msg = stderr.decode(errors="replace")[-500:] if stderr else "unknown error"
            raise ExtractionError(f"{label} failed (rc={proc.returncode}): {err_msg}")
        return stdout

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
