"""Interfaces for the tagging module."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TaggingClient(Protocol):
    """Protocol for frame → filename tag generation."""

    async def generate_tags(self, frame_data_uri: str, filename: str) -> str:
        """Return a generated filename-like tag string.

        Raises:
            TaggingError: If the remote call fails or returns nothing usable.
        """
        ...


@runtime_checkable
class RefinementClient(Protocol):
    """Protocol for feedback-driven tag refinement."""

    async def refine_tags(self, original_tags: str, user_feedback: str) -> str:
        """Return updated tags incorporating ``user_feedback``.

        Raises:
            RefinementError: If the remote call fails or returns nothing usable.
        """
        ...
