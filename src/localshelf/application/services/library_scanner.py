# Hey future me - this is the scanner! It walks a watch folder, reads tags for every supported
# audio file and upserts them into the catalog. Key features:
# 1. INCREMENTAL - a file whose mtime equals the stored modified_at is skipped without reading tags
# 2. SINGLE-FLIGHT - one scan per scanner instance, a second caller gets ScanInProgressError
# 3. ABORTABLE - abort() is checked between files, so cancellation latency is one file
# 4. NON-BLOCKING - the walk, stat calls and tag reads all run in worker threads
"""Library scanner for indexing local audio files into the catalog."""

import asyncio
import inspect
import logging
import os
import time
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path

from localshelf.domain.entities import (
    ChangeAction,
    ChangeResult,
    ChangeType,
    LocalTrack,
    ProcessOutcome,
    ScanResult,
)
from localshelf.domain.exceptions import ScanInProgressError
from localshelf.domain.ports import ITagReader
from localshelf.domain.value_objects import FOLDER_ART_FILENAMES, is_hidden
from localshelf.infrastructure.observability.log_messages import LogMessages
from localshelf.infrastructure.observability.logging import set_correlation_id
from localshelf.infrastructure.persistence.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

# (processed, total, current_path), may be sync or async
ProgressCallback = Callable[[int, int, str], Awaitable[None] | None]


class LibraryScanner:
    """Indexes the audio files of a folder tree into the catalog store."""

    def __init__(self, store: CatalogStore, tag_reader: ITagReader) -> None:
        self.store = store
        self.tag_reader = tag_reader
        self._scanning = False
        self._aborted = False

    @property
    def is_scanning(self) -> bool:
        """True while a scan_folder call is running."""
        return self._scanning

    def abort(self) -> None:
        """Ask the running scan to stop before its next file."""
        if self._scanning:
            logger.info("Scan abort requested")
        self._aborted = True

    # =========================================================================
    # MAIN SCAN METHOD
    # =========================================================================

    async def scan_folder(
        self,
        folder_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> ScanResult:
        """Scan a folder tree and index every supported audio file.

        Args:
            folder_path: Root of the tree to scan
            on_progress: Called as (processed, total, current_path) before each file

        Returns:
            ScanResult with per-outcome counts

        Raises:
            ScanInProgressError: if this scanner is already running a scan
        """
        if self._scanning:
            raise ScanInProgressError(folder_path)

        self._scanning = True
        self._aborted = False
        set_correlation_id()
        started = time.monotonic()
        result = ScanResult(folder_path=folder_path)

        try:
            logger.info(f"Starting scan of: {folder_path}")

            # Enumeration is pure filesystem work, keep it off the event loop
            files = await asyncio.to_thread(lambda: list(self.walk_audio_files(folder_path)))
            result.total = len(files)
            logger.debug(f"Found {result.total} audio files under {folder_path}")

            for file_path in files:
                if self._aborted:
                    result.aborted = True
                    logger.info(f"Scan of {folder_path} aborted after {result.processed} files")
                    break

                result.processed += 1
                if on_progress is not None:
                    await self._report_progress(on_progress, result.processed, result.total, file_path)

                try:
                    outcome = await self.process_file(file_path)
                except Exception as e:
                    # One bad file must not kill the scan. Count it and move on.
                    result.errors += 1
                    logger.warning(
                        LogMessages.file_operation_failed(
                            operation="Index", filename=file_path, error=str(e)
                        )
                    )
                    continue

                if outcome is ProcessOutcome.ADDED:
                    result.added += 1
                elif outcome is ProcessOutcome.UPDATED:
                    result.updated += 1
                else:
                    result.skipped += 1

            # Hey future me - this runs even after an abort, the count just reflects what's indexed so far
            track_count = await self.store.count_tracks_under(folder_path)
            await self.store.update_watch_folder_stats(folder_path, track_count)

            logger.info(
                LogMessages.scan_completed(
                    folder=folder_path,
                    added=result.added,
                    updated=result.updated,
                    skipped=result.skipped,
                    errors=result.errors,
                    aborted=result.aborted,
                    duration=time.monotonic() - started,
                )
            )
            return result
        finally:
            self._scanning = False

    async def _report_progress(
        self, on_progress: ProgressCallback, processed: int, total: int, file_path: str
    ) -> None:
        try:
            maybe_awaitable = on_progress(processed, total, file_path)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception as e:
            # A broken progress listener is the host's problem, not the scan's
            logger.warning(f"Progress callback failed: {e}")

    # =========================================================================
    # FILE ENUMERATION
    # =========================================================================

    def walk_audio_files(self, folder_path: str) -> Iterator[str]:
        """Yield supported audio files under folder_path, depth-first.

        Hey future me - this is a lazy generator with an explicit stack, NOT os.walk.
        Hidden entries (name starts with ".") are skipped at every level, which also
        prunes whole hidden directories. Unreadable directories are logged and skipped.
        Directory symlinks are followed, but each real directory is visited once so a
        link loop can't make the walk infinite.
        """
        stack = [folder_path]
        visited: set[str] = set()

        while stack:
            directory = stack.pop()
            real = os.path.realpath(directory)
            if real in visited:
                continue
            visited.add(real)

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda entry: entry.name)
            except OSError as e:
                logger.warning(f"Cannot read directory {directory}: {e}")
                continue

            subdirs: list[str] = []
            for entry in entries:
                if is_hidden(entry.name):
                    continue
                try:
                    if entry.is_dir():
                        subdirs.append(entry.path)
                    elif entry.is_file() and self.tag_reader.is_supported(entry.path):
                        yield entry.path
                except OSError as e:
                    logger.debug(f"Cannot stat {entry.path}: {e}")

            # Reversed so the stack pops them in name order
            stack.extend(reversed(subdirs))

    # =========================================================================
    # SINGLE FILE INDEXING
    # =========================================================================

    async def process_file(self, file_path: str) -> ProcessOutcome:
        """Index one file, skipping it if its mtime hasn't changed.

        Raises:
            OSError: the file vanished or can't be read
            TagReadError: the tags can't be parsed
        """
        existing = await self.store.get_track_by_path(file_path)
        stat = await asyncio.to_thread(os.stat, file_path)

        # Fast path: mtime equality only, the stored fingerprint is not consulted
        if existing is not None and existing.modified_at == stat.st_mtime:
            return ProcessOutcome.SKIPPED

        await self._index(file_path)
        return ProcessOutcome.UPDATED if existing is not None else ProcessOutcome.ADDED

    async def _index(self, file_path: str) -> LocalTrack:
        tags = await self.tag_reader.read_file(file_path)
        folder_art = await asyncio.to_thread(self.find_folder_art, file_path)
        return await self.store.upsert_track(LocalTrack.from_tags(tags, folder_art))

    def find_folder_art(self, file_path: str) -> str | None:
        """First existing well-known art file in the audio file's directory."""
        directory = Path(file_path).parent
        for name in FOLDER_ART_FILENAMES:
            candidate = directory / name
            if candidate.is_file():
                return str(candidate)
        return None

    async def process_file_change(
        self, file_path: str, change_type: ChangeType
    ) -> ChangeResult | None:
        """Apply one watcher change to the catalog.

        Never raises: any failure comes back as a ChangeResult with action ERROR.

        Returns:
            The result, or None if the file isn't a supported audio file.
        """
        try:
            if change_type is ChangeType.REMOVE:
                await self.store.remove_track(file_path)
                logger.debug(f"Removed from index: {file_path}")
                return ChangeResult(action=ChangeAction.REMOVED, file_path=file_path)

            if not self.tag_reader.is_supported(file_path):
                return None

            track = await self._index(file_path)
            logger.debug(f"Indexed: {track.title} by {track.artist}")
            action = ChangeAction.ADDED if change_type is ChangeType.ADD else ChangeAction.UPDATED
            return ChangeResult(action=action, file_path=file_path, track=track)
        except Exception as e:
            logger.warning(
                LogMessages.file_operation_failed(
                    operation="Change Processing", filename=file_path, error=str(e)
                )
            )
            return ChangeResult(action=ChangeAction.ERROR, file_path=file_path, error=str(e))
