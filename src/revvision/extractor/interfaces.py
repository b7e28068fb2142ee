"""Interfaces for the extractor module."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class FrameExtractor(Protocol):
    """Protocol for representative-frame extraction."""

    async def extract(self, data: bytes, *, suffix: str = ".mp4") -> bytes:
        """Decode one still frame from a video.

        Args:
            data: Complete video bytes.
            suffix: File extension hint for the decoder.

        Returns:
            JPEG-encoded frame.

        Raises:
            ExtractionError: On any failure.
        """
        ...
