"""Processing orchestrator: drives entries through extract → tag → persist."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import TypeVar

from revvision.drive.interfaces import RemoteStorage
from revvision.extractor.frame import frame_data_uri
from revvision.extractor.interfaces import FrameExtractor
from revvision.pipeline.media import MediaStore, suffix_for
from revvision.pipeline.notify import Notifier
from revvision.pipeline.queue import EntryQueue
from revvision.shared.enums import EntryStatus, NoticeLevel, PipelineMode, SourceKind
from revvision.shared.exceptions import AuthenticationError, InputValidationError, RevvisionError
from revvision.shared.models import DriveFile, EntrySource, LocalFile, VideoEntry
from revvision.tagging.interfaces import RefinementClient, TaggingClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcessingOrchestrator:
    """Own the entry queue and run one pipeline task per claimed entry.

    Flow per entry:
    1. Obtain bytes (spooled on intake, or downloaded from Drive)
    2. Extract a representative frame → thumbnail
    3. Generate tags from the frame and original filename
    4. ``local`` mode: success. ``persist`` mode: upload (or rename a
       Drive-picked file) with progress, then success.

    Any failure moves only that entry to ``error``. Tasks share nothing but
    the queue, and all queue writes are keyed partial updates.
    """

    def __init__(
        self,
        *,
        extractor: FrameExtractor,
        tagger: TaggingClient,
        refiner: RefinementClient,
        media: MediaStore,
        storage: RemoteStorage | None = None,
        notifier: Notifier | None = None,
        queue: EntryQueue | None = None,
        mode: PipelineMode = PipelineMode.LOCAL,
        concurrency: int = 4,
        stage_timeout: float = 300,
        feedback_min_length: int = 5,
    ) -> None:
        self._extractor = extractor
        self._tagger = tagger
        self._refiner = refiner
        self._media = media
        self._storage = storage
        self._notifier = notifier or Notifier()
        self._queue = queue or EntryQueue()
        self._mode = mode
        self._sem = asyncio.Semaphore(max(1, concurrency))
        self._stage_timeout = stage_timeout
        self._feedback_min_length = feedback_min_length
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def queue(self) -> EntryQueue:
        return self._queue

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def mode(self) -> PipelineMode:
        return self._mode

    @property
    def media(self) -> MediaStore:
        return self._media

    @property
    def is_processing(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    # ── Intake ──────────────────────────────────────────────────

    async def add_local(self, files: Sequence[LocalFile]) -> list[VideoEntry]:
        """Queue browser-selected files; non-video files are ignored with a notice.

        Raises:
            InputValidationError: If no file was given.
        """
        if not files:
            raise InputValidationError("no files were provided")

        videos = [f for f in files if f.mime_type.startswith("video/")]
        ignored = len(files) - len(videos)
        if ignored:
            self._notifier.push(
                "Invalid File Type",
                f"Only video files are accepted. {ignored} file(s) were ignored.",
                level=NoticeLevel.ERROR,
            )

        entries: list[VideoEntry] = []
        for f in videos:
            path = await self._media.put(f.data, suffix=suffix_for(f.filename))
            entries.append(
                VideoEntry(
                    id=self._queue.issue_id(f"{f.filename}-{f.modified_ms}"),
                    filename=f.filename,
                    mime_type=f.mime_type,
                    source=EntrySource(kind=SourceKind.LOCAL, path=path),
                    display_reference=path,
                )
            )
        self._queue.add(entries)
        logger.info("queued %d local file(s), ignored %d", len(entries), ignored)
        return entries

    def add_remote(self, files: Sequence[DriveFile]) -> list[VideoEntry]:
        """Queue Drive-picked files. Files already tracked by an entry are skipped."""
        entries: list[VideoEntry] = []
        seen: set[str] = set()
        for f in files:
            if f.id in seen or self._queue.find_by_remote_id(f.id) is not None:
                logger.info("drive file %s already queued, skipping", f.id)
                continue
            seen.add(f.id)
            entries.append(
                VideoEntry(
                    id=self._queue.issue_id(f.id),
                    filename=f.name,
                    mime_type=f.mime_type or "video/mp4",
                    source=EntrySource(kind=SourceKind.REMOTE, file_id=f.id),
                    remote_file_id=f.id,
                )
            )
        self._queue.add(entries)
        logger.info("queued %d drive file(s)", len(entries))
        return entries

    def discard(self, entry_id: str) -> bool:
        """Remove an entry, cancel its in-flight task, and release its bytes."""
        task = self._tasks.pop(entry_id, None)
        if task is not None and not task.done():
            task.cancel()
        entry = self._queue.remove(entry_id)
        if entry is None:
            return False
        self._media.release(entry.display_reference)
        logger.info("discarded entry %s", entry_id)
        return True

    # ── Scan & dispatch ─────────────────────────────────────────

    def dispatch(self, storage: RemoteStorage | None = None) -> list[str]:
        """Claim every queued entry and start one task per entry.

        ``storage`` is the Drive client bound to the caller's current
        credential; it falls back to the one given at construction.
        Must be called from inside the running event loop.
        """
        store = storage or self._storage
        claimed = self._queue.claim_queued()
        for entry in claimed:
            task = asyncio.create_task(self._run_entry(entry.id, store), name=f"entry:{entry.id}")
            self._tasks[entry.id] = task
            task.add_done_callback(lambda t, eid=entry.id: self._forget(eid, t))
        if claimed:
            logger.info("dispatched %d entries (mode=%s)", len(claimed), self._mode.value)
        return [e.id for e in claimed]

    async def wait_idle(self) -> None:
        """Block until every dispatched task has finished."""
        while True:
            pending = [t for t in self._tasks.values() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight tasks and release every entry's spooled bytes."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for entry in self._queue.snapshot():
            self._queue.remove(entry.id)
            self._media.release(entry.display_reference)
        logger.info("orchestrator shut down (%d task(s) cancelled)", len(tasks))

    def _forget(self, entry_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(entry_id) is task:
            del self._tasks[entry_id]

    async def _stage(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._stage_timeout)

    async def _run_entry(self, entry_id: str, storage: RemoteStorage | None) -> None:
        async with self._sem:
            try:
                await self._pipeline(entry_id, storage)
            except asyncio.CancelledError:
                logger.info("pipeline for %s cancelled", entry_id)
                raise
            except asyncio.TimeoutError:
                self._fail(entry_id, f"timed out after {self._stage_timeout:g}s")
            except RevvisionError as exc:
                self._fail(entry_id, str(exc))
            except Exception as exc:
                logger.exception("unexpected pipeline error for %s", entry_id)
                self._fail(entry_id, f"{type(exc).__name__}: {exc}")

    async def _pipeline(self, entry_id: str, storage: RemoteStorage | None) -> None:
        entry = self._queue.get(entry_id)
        if entry is None:
            return

        # 1. Bytes
        data = await self._obtain_bytes(entry, storage)
        if data is None:
            return

        # 2. Frame
        jpeg = await self._stage(self._extractor.extract(data, suffix=suffix_for(entry.filename)))
        thumbnail = frame_data_uri(jpeg)
        if self._queue.update(entry_id, thumbnail=thumbnail) is None:
            return

        # 3. Tags
        tags = await self._stage(self._tagger.generate_tags(thumbnail, entry.filename))

        if self._mode == PipelineMode.LOCAL:
            if self._queue.update(entry_id, tags=tags, status=EntryStatus.SUCCESS) is not None:
                self._complete(entry)
            return

        # 4. Persist
        if storage is None:
            raise AuthenticationError("Google Drive not connected.")
        if self._queue.update(entry_id, tags=tags, status=EntryStatus.UPLOADING, upload_progress=0) is None:
            return

        if entry.source.kind == SourceKind.REMOTE and entry.remote_file_id:
            await self._stage(storage.rename_file(entry.remote_file_id, tags))
            remote_id = entry.remote_file_id
        else:

            def _progress(pct: int) -> None:
                self._queue.update(entry_id, upload_progress=pct)

            folder_id = await self._stage(storage.managed_folder_id())
            created = await self._stage(storage.create_file(data, entry.mime_type, tags, folder_id, _progress))
            remote_id = created.id

        if self._queue.update(
            entry_id, remote_file_id=remote_id, upload_progress=100, status=EntryStatus.SUCCESS
        ) is not None:
            self._complete(entry)

    async def _obtain_bytes(self, entry: VideoEntry, storage: RemoteStorage | None) -> bytes | None:
        if entry.source.kind == SourceKind.LOCAL:
            if not entry.source.path:
                raise InputValidationError("local entry has no spooled file")
            return await self._media.read(entry.source.path)

        if storage is None:
            raise AuthenticationError("Google Drive not connected.")
        if not entry.source.file_id:
            raise InputValidationError("remote entry has no file id")
        data = await self._stage(storage.download_file(entry.source.file_id))
        path = await self._media.put(data, suffix=suffix_for(entry.filename))
        if self._queue.update(entry.id, display_reference=path) is None:
            self._media.release(path)
            return None
        return data

    def _complete(self, entry: VideoEntry) -> None:
        self._notifier.push(
            "Analysis Complete!",
            f"Generated filename for {entry.filename}.",
            entry_id=entry.id,
        )

    def _fail(self, entry_id: str, message: str) -> None:
        entry = self._queue.get(entry_id)
        if entry is None or entry.status in (EntryStatus.SUCCESS, EntryStatus.ERROR):
            return
        self._queue.update(entry_id, status=EntryStatus.ERROR, error=message)
        self._notifier.push(
            "Processing Failed",
            f"Could not process {entry.filename}. {message}",
            level=NoticeLevel.ERROR,
            entry_id=entry_id,
        )

    # ── Refine ──────────────────────────────────────────────────

    async def refine(
        self,
        entry_id: str,
        feedback: str,
        *,
        storage: RemoteStorage | None = None,
        tolerate_rename_failure: bool = False,
    ) -> bool:
        """Refine a successful entry's tags from free-text feedback.

        Drive-backed entries are renamed first; local tags change only after
        the rename succeeds, unless ``tolerate_rename_failure`` is set.

        Returns:
            True if the entry's tags were updated.

        Raises:
            InputValidationError: If the feedback is too short or the entry
                is not a successfully tagged one. Nothing remote is called.
        """
        feedback = feedback.strip()
        if len(feedback) < self._feedback_min_length:
            raise InputValidationError(f"Feedback must be at least {self._feedback_min_length} characters.")

        entry = self._queue.get(entry_id)
        if entry is None:
            raise InputValidationError(f"unknown entry {entry_id}")
        if entry.status != EntryStatus.SUCCESS or entry.tags is None:
            raise InputValidationError("only successfully tagged videos can be refined")

        try:
            refined = await self._stage(self._refiner.refine_tags(entry.tags, feedback))
        except (RevvisionError, asyncio.TimeoutError) as exc:
            self._refine_failed(entry, exc)
            return False

        if entry.remote_file_id:
            store = storage or self._storage
            try:
                if store is None:
                    raise AuthenticationError("Google Drive not connected.")
                await self._stage(store.rename_file(entry.remote_file_id, refined))
            except (RevvisionError, asyncio.TimeoutError) as exc:
                if not tolerate_rename_failure:
                    self._refine_failed(entry, exc)
                    return False
                self._notifier.push(
                    "Rename Failed",
                    f"Tags for {entry.filename} were updated locally, but Google Drive was not renamed. {exc}",
                    level=NoticeLevel.WARNING,
                    entry_id=entry.id,
                )

        if self._queue.update(entry_id, tags=refined) is None:
            self._notifier.push(
                "Refinement Failed",
                f"{entry.filename} was discarded before its tags could be updated.",
                level=NoticeLevel.ERROR,
                entry_id=entry_id,
            )
            return False
        self._notifier.push("Tags Refined!", f"Updated filename for {entry.filename}.", entry_id=entry_id)
        return True

    def _refine_failed(self, entry: VideoEntry, exc: BaseException) -> None:
        message = str(exc) or type(exc).__name__
        self._notifier.push(
            "Refinement Failed",
            f"Could not refine tags for {entry.filename}. {message}",
            level=NoticeLevel.ERROR,
            entry_id=entry.id,
        )
