"""Interfaces for the drive module."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from revvision.shared.models import DriveFile

ProgressCallback = Callable[[int], None]
FilePredicate = Callable[[DriveFile], bool]


@runtime_checkable
class RemoteStorage(Protocol):
    """Protocol for the cloud file store."""

    async def find_or_create_folder(self, name: str) -> str:
        """Return the id of the folder called ``name``, creating it if absent."""
        ...

    async def managed_folder_id(self) -> str:
        """Return the id of the folder this application uploads into."""
        ...

    async def list_files(self, folder_id: str, predicate: FilePredicate | None = None) -> list[DriveFile]:
        """List non-trashed files directly inside ``folder_id``."""
        ...

    async def download_file(self, file_id: str) -> bytes:
        """Return the content of ``file_id``."""
        ...

    async def create_file(
        self,
        data: bytes,
        mime_type: str,
        name: str,
        parent_folder_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> DriveFile:
        """Upload ``data`` as a new file and return its id and name.

        ``on_progress`` receives integer percentages in [0, 100].
        """
        ...

    async def rename_file(self, file_id: str, new_name: str) -> None:
        """Rename ``file_id`` to ``new_name``."""
        ...
