"""In-memory entry list with keyed partial updates."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from revvision.shared.enums import EntryStatus
from revvision.shared.exceptions import InvalidTransitionError
from revvision.shared.models import VideoEntry, utc_now

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[EntryStatus, frozenset[EntryStatus]] = {
    EntryStatus.QUEUED: frozenset({EntryStatus.PROCESSING}),
    EntryStatus.PROCESSING: frozenset({EntryStatus.UPLOADING, EntryStatus.SUCCESS, EntryStatus.ERROR}),
    EntryStatus.UPLOADING: frozenset({EntryStatus.SUCCESS, EntryStatus.ERROR}),
    EntryStatus.SUCCESS: frozenset(),
    EntryStatus.ERROR: frozenset(),
}

_MUTABLE_FIELDS = frozenset(
    {"display_reference", "thumbnail", "tags", "status", "upload_progress", "remote_file_id", "error"}
)


def filter_entries(entries: Sequence[VideoEntry], term: str) -> list[VideoEntry]:
    """Entries whose tags contain ``term`` case-insensitively.

    An empty term returns every entry in order; untagged entries never
    match a non-empty term.
    """
    if not term:
        return list(entries)
    needle = term.lower()
    return [e for e in entries if e.tags is not None and needle in e.tags.lower()]


def hero_entry(entries: Iterable[VideoEntry]) -> VideoEntry | None:
    """First successfully tagged entry in display order."""
    return next((e for e in entries if e.status == EntryStatus.SUCCESS), None)


class EntryQueue:
    """Ordered collection of :class:`VideoEntry`, newest batch first.

    Every mutation is a read-modify-write of one entry by id, so pipeline
    tasks finishing in any order never overwrite each other's fields.
    None of the methods await, which makes each one atomic on the loop.
    """

    def __init__(self) -> None:
        self._entries: dict[str, VideoEntry] = {}
        self._order: list[str] = []
        self._issued: set[str] = set()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def issue_id(self, base: str) -> str:
        """Reserve an id derived from ``base`` that was never handed out before."""
        candidate = base
        n = 1
        while candidate in self._issued:
            n += 1
            candidate = f"{base}#{n}"
        self._issued.add(candidate)
        return candidate

    def add(self, entries: Sequence[VideoEntry]) -> None:
        """Insert a batch ahead of existing entries, keeping the batch's order."""
        for entry in entries:
            if entry.id in self._entries:
                raise InvalidTransitionError(f"duplicate entry id {entry.id}")
            if entry.status != EntryStatus.QUEUED:
                raise InvalidTransitionError(f"new entry {entry.id} must be queued, got {entry.status.value}")
            if entry.remote_file_id and self.find_by_remote_id(entry.remote_file_id) is not None:
                raise InvalidTransitionError(f"remote file {entry.remote_file_id} is already tracked")
            self._issued.add(entry.id)
        for entry in entries:
            self._entries[entry.id] = entry
        self._order[:0] = [e.id for e in entries]

    def get(self, entry_id: str) -> VideoEntry | None:
        return self._entries.get(entry_id)

    def snapshot(self) -> list[VideoEntry]:
        return [self._entries[i] for i in self._order]

    def with_status(self, status: EntryStatus) -> list[VideoEntry]:
        return [e for e in self.snapshot() if e.status == status]

    def find_by_remote_id(self, file_id: str) -> VideoEntry | None:
        for entry in self._entries.values():
            if entry.remote_file_id == file_id:
                return entry
        return None

    def remove(self, entry_id: str) -> VideoEntry | None:
        entry = self._entries.pop(entry_id, None)
        if entry is not None:
            self._order.remove(entry_id)
        return entry

    def claim_queued(self) -> list[VideoEntry]:
        """Move every queued entry to processing in one step and return them."""
        claimed: list[VideoEntry] = []
        for entry in self.with_status(EntryStatus.QUEUED):
            updated = self.update(entry.id, status=EntryStatus.PROCESSING)
            if updated is not None:
                claimed.append(updated)
        return claimed

    def update(self, entry_id: str, **fields: Any) -> VideoEntry | None:
        """Apply a partial update to one entry.

        Returns the updated entry, or None if the entry was discarded.

        Raises:
            InvalidTransitionError: If the update breaks the status state
                machine or an entry invariant.
        """
        current = self._entries.get(entry_id)
        if current is None:
            logger.debug("dropping update for discarded entry %s: %s", entry_id, sorted(fields))
            return None

        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise InvalidTransitionError(f"fields not updatable: {sorted(unknown)}")

        new_status = fields.get("status", current.status)
        if new_status != current.status and new_status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"entry {entry_id}: {current.status.value} → {EntryStatus(new_status).value} is not allowed"
            )

        if "upload_progress" in fields:
            fields["upload_progress"] = max(0, min(100, int(fields["upload_progress"])))

        candidate = current.model_copy(update={**fields, "updated_at": utc_now()})
        self._check_invariants(candidate)
        self._entries[entry_id] = candidate
        return candidate

    def _check_invariants(self, entry: VideoEntry) -> None:
        if entry.status in (EntryStatus.SUCCESS, EntryStatus.UPLOADING) and entry.tags is None:
            raise InvalidTransitionError(f"entry {entry.id}: {entry.status.value} requires tags")
        if entry.error is not None and entry.status != EntryStatus.ERROR:
            raise InvalidTransitionError(f"entry {entry.id}: error set while {entry.status.value}")
        if entry.remote_file_id:
            holder = self.find_by_remote_id(entry.remote_file_id)
            if holder is not None and holder.id != entry.id:
                raise InvalidTransitionError(
                    f"remote file {entry.remote_file_id} already belongs to entry {holder.id}"
                )
