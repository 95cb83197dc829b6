"""Change observer: keeps the catalog in sync with the filesystem.

Hey future me - this runs in one of two modes and NEVER both at once:

LIVE (foreground, the initial mode)
    One recursive watchdog Observer per enabled watch folder. Observer callbacks fire on
    watchdog's own threads, so AudioFileEventHandler only forwards events onto the event
    loop with call_soon_threadsafe - every bit of watcher state is touched on the loop only.
    Created/modified files must stop growing before they're queued (write stability),
    deletes are queued right away, moves become remove(src) + add(dest).

POLL (background)
    No observers (OS file watchers get throttled or killed for background apps). Instead one
    asyncio task re-runs scan_folder for every enabled folder every poll_interval_seconds.
    The scanner's mtime fast path makes that cheap for an unchanged library.

Coalescing: every queued change re-arms ONE shared debounce timer. When things have been
quiet for debounce_seconds the whole queue is drained in one pass and the host gets ONE
on_library_changed call for the batch. Drains are serialized with a lock, so events that
arrive mid-drain simply wait for the next cycle.
"""

import asyncio
import inspect
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from localshelf.application.services.library_scanner import LibraryScanner
from localshelf.config import WatcherSettings
from localshelf.domain.entities import (
    ChangeAction,
    ChangeResult,
    ChangeType,
    PendingChange,
)
from localshelf.domain.exceptions import ScanInProgressError
from localshelf.domain.value_objects import is_hidden
from localshelf.infrastructure.observability.log_messages import LogMessages
from localshelf.infrastructure.observability.logging import set_correlation_id
from localshelf.infrastructure.persistence.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

LibraryChangedCallback = Callable[[list[ChangeResult]], Awaitable[None] | None]
ObserverFactory = Callable[[], BaseObserver]

# Seconds to wait for an observer thread to exit on teardown
OBSERVER_JOIN_TIMEOUT = 5.0


class PendingChangeQueue:
    """FIFO of changes waiting for the debounce window. Loop-thread only."""

    def __init__(self) -> None:
        self._items: list[PendingChange] = []

    def add(self, change_type: ChangeType, file_path: str) -> PendingChange:
        change = PendingChange(change_type=change_type, file_path=file_path)
        self._items.append(change)
        return change

    def drain(self) -> list[PendingChange]:
        """Take everything queued so far, leaving the queue empty."""
        items, self._items = self._items, []
        return items

    def __len__(self) -> int:
        return len(self._items)


class AudioFileEventHandler(FileSystemEventHandler):
    """Watchdog handler that forwards audio file events to the event loop.

    Runs on the observer thread! Don't touch watcher state here, only filter and hand off.
    """

    def __init__(
        self,
        root: str,
        loop: asyncio.AbstractEventLoop,
        dispatch: Callable[[ChangeType, str], None],
        is_supported: Callable[[str], bool],
    ) -> None:
        super().__init__()
        self.root = Path(root)
        self.loop = loop
        self.dispatch = dispatch
        self.is_supported = is_supported

    def _is_relevant(self, path: str) -> bool:
        """Supported audio file, and no hidden component below the watch root."""
        if not self.is_supported(path):
            return False
        try:
            parts = Path(path).relative_to(self.root).parts
        except ValueError:
            parts = Path(path).parts
        return not any(is_hidden(part) for part in parts)

    def _forward(self, change_type: ChangeType, raw_path: Any) -> None:
        path = os.fsdecode(raw_path)
        if not self._is_relevant(path):
            return
        try:
            self.loop.call_soon_threadsafe(self.dispatch, change_type, path)
        except RuntimeError:
            # Loop already closed, we're shutting down
            logger.debug(f"Dropped {change_type.value} for {path}: event loop closed")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(ChangeType.ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(ChangeType.CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(ChangeType.REMOVE, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Rename = the old path is gone + a new file appeared
        if event.is_directory:
            return
        self._forward(ChangeType.REMOVE, event.src_path)
        self._forward(ChangeType.ADD, event.dest_path)


def _file_size(path: str) -> int | None:
    try:
        return os.stat(path).st_size
    except OSError:
        return None


class LibraryWatcher:
    """Live/poll change observer for the enabled watch folders."""

    def __init__(
        self,
        store: CatalogStore,
        scanner: LibraryScanner,
        settings: WatcherSettings | None = None,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.settings = settings or WatcherSettings()
        self._observer_factory: ObserverFactory = observer_factory or Observer
        self.on_library_changed: LibraryChangedCallback | None = None

        self._foreground = True
        self._observers: dict[str, BaseObserver] = {}
        self._pending = PendingChangeQueue()
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._drain_lock = asyncio.Lock()
        # Held across a whole mode switch so live and poll never overlap
        self._mode_lock = asyncio.Lock()
        self._poll_task: asyncio.Task[None] | None = None
        # path -> (settle task, change type to queue once stable)
        self._settling: dict[str, tuple[asyncio.Task[None], ChangeType]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_foreground(self) -> bool:
        return self._foreground

    @property
    def handle_count(self) -> int:
        """Number of live filesystem observers."""
        return len(self._observers)

    @property
    def watched_folders(self) -> list[str]:
        return sorted(self._observers)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # LIVE MODE
    # =========================================================================

    async def start_watching(self) -> int:
        """Start observers for every enabled folder. Returns the handle count."""
        for folder in await self.store.get_enabled_watch_folders():
            await self.watch_folder(folder.path)
        logger.info(LogMessages.watch_mode_changed(mode="live", folders=self.handle_count))
        return self.handle_count

    async def watch_folder(self, folder_path: str) -> bool:
        """Start a recursive observer for one folder.

        Returns:
            True if the folder is watched after the call. False outside live mode,
            for missing directories, or if the observer can't start.
        """
        if not self._foreground:
            logger.debug(f"Not watching {folder_path}: watcher is in poll mode")
            return False
        if folder_path in self._observers:
            return True
        if not os.path.isdir(folder_path):
            logger.warning(f"Cannot watch {folder_path}: not a directory")
            return False

        loop = asyncio.get_running_loop()
        handler = AudioFileEventHandler(
            root=folder_path,
            loop=loop,
            dispatch=self._on_fs_event,
            is_supported=self.scanner.tag_reader.is_supported,
        )
        observer = self._observer_factory()
        observer.schedule(handler, folder_path, recursive=True)
        # Claim the slot before awaiting so a concurrent call sees it
        self._observers[folder_path] = observer

        try:
            # Recursive inotify setup walks the whole tree, keep it off the loop
            await asyncio.to_thread(observer.start)
        except OSError as e:
            self._observers.pop(folder_path, None)
            logger.error(
                LogMessages.file_operation_failed(
                    operation="Watch",
                    filename=folder_path,
                    error=str(e),
                    hint="On Linux, raise fs.inotify.max_user_watches",
                )
            )
            return False

        if self._observers.get(folder_path) is not observer:
            # Torn down (unwatch or background) while we were starting
            await self._stop_observer(observer)
            return False

        logger.info(f"Watching: {folder_path}")
        return True

    async def unwatch_folder(self, folder_path: str) -> bool:
        """Stop the observer for one folder. Returns True if one was running."""
        observer = self._observers.pop(folder_path, None)
        if observer is None:
            return False
        self._cancel_settling(under=folder_path)
        await self._stop_observer(observer)
        logger.info(f"Stopped watching: {folder_path}")
        return True

    async def _stop_observer(self, observer: BaseObserver) -> None:
        observer.stop()
        await asyncio.to_thread(observer.join, OBSERVER_JOIN_TIMEOUT)

    async def _stop_all_observers(self) -> None:
        observers = list(self._observers.values())
        self._observers.clear()
        self._cancel_settling()
        for observer in observers:
            await self._stop_observer(observer)

    def _on_fs_event(self, change_type: ChangeType, file_path: str) -> None:
        """Loop-side entry point for observer events."""
        if not self._foreground:
            return

        if change_type is ChangeType.REMOVE:
            self._cancel_settling(path=file_path)
            self.queue_change(ChangeType.REMOVE, file_path)
            return

        if self.settings.write_stability_seconds <= 0:
            self.queue_change(change_type, file_path)
            return

        settling = self._settling.get(file_path)
        if settling is not None:
            task, pending_type = settling
            # A file created and then written to is still an ADD
            if pending_type is ChangeType.ADD:
                change_type = ChangeType.ADD
            self._settling[file_path] = (task, change_type)
            return

        task = asyncio.get_running_loop().create_task(self._await_write_finish(file_path))
        self._settling[file_path] = (task, change_type)

    async def _await_write_finish(self, file_path: str) -> None:
        """Queue the file once its size stops changing across a settle delay."""
        delay = self.settings.write_stability_seconds
        try:
            size = await asyncio.to_thread(_file_size, file_path)
            while True:
                await asyncio.sleep(delay)
                current = await asyncio.to_thread(_file_size, file_path)
                if current is None:
                    # Gone again before it settled, the delete event covers it
                    return
                if current == size:
                    break
                size = current
        finally:
            settling = self._settling.get(file_path)
            if settling is not None and settling[0] is asyncio.current_task():
                del self._settling[file_path]

        if settling is not None:
            self.queue_change(settling[1], file_path)

    def _cancel_settling(self, path: str | None = None, under: str | None = None) -> None:
        prefix = under.rstrip(os.sep) + os.sep if under else None
        for file_path in list(self._settling):
            if path is not None and file_path != path:
                continue
            if prefix is not None and not file_path.startswith(prefix):
                continue
            task, _ = self._settling.pop(file_path)
            task.cancel()

    # =========================================================================
    # DEBOUNCED BATCH PROCESSING
    # =========================================================================

    def queue_change(self, change_type: ChangeType, file_path: str) -> None:
        """Queue a change and (re)arm the debounce timer. Call on the loop thread."""
        self._pending.add(change_type, file_path)
        logger.debug(f"Queued {change_type.value}: {file_path}")

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(
            self.settings.debounce_seconds, self._on_debounce_elapsed
        )

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._spawn(self.process_pending_changes())

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def process_pending_changes(self) -> list[ChangeResult]:
        """Drain the queue, apply every change and notify the host once.

        Returns:
            The non-empty results of this pass ([] if the queue was empty).
        """
        async with self._drain_lock:
            changes = self._pending.drain()
            if not changes:
                return []

            set_correlation_id()
            logger.info(f"Processing {len(changes)} file changes")

            results: list[ChangeResult] = []
            for change in changes:
                result = await self.scanner.process_file_change(
                    change.file_path, change.change_type
                )
                if result is not None:
                    results.append(result)

            if results:
                await self.notify_library_changed(results)
            return results

    async def notify_library_changed(self, results: list[ChangeResult]) -> None:
        """Hand a batch to on_library_changed (sync or async). Callback errors are logged."""
        callback = self.on_library_changed
        if callback is None:
            return
        try:
            maybe_awaitable = callback(results)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception as e:
            logger.error(f"Library changed callback failed: {e}", exc_info=True)

    # =========================================================================
    # POLL MODE + TRANSITIONS
    # =========================================================================

    async def on_app_background(self) -> None:
        """Switch to poll mode: observers down, poll task up."""
        async with self._mode_lock:
            if not self._foreground:
                return
            self._foreground = False

            folders = self.handle_count
            await self._stop_all_observers()

            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
            logger.info(
                LogMessages.watch_mode_changed(
                    mode="poll",
                    folders=folders,
                    detail=f"rescan every {self.settings.poll_interval_seconds:g}s",
                )
            )

    async def on_app_foreground(self) -> None:
        """Switch back to live mode: poll task down, observers up."""
        async with self._mode_lock:
            if self._foreground:
                return
            self._foreground = True

            await self._cancel_poll_task()
            await self.start_watching()

    async def _cancel_poll_task(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.poll_interval_seconds)
            try:
                await self.poll_for_changes()
            except Exception as e:
                # Keep polling, the next tick may well succeed
                logger.error(f"Background poll failed: {e}", exc_info=True)

    async def poll_for_changes(self) -> None:
        """Rescan every enabled folder, then emit one POLL_COMPLETE."""
        logger.debug("Polling for changes...")
        folders = await self.store.get_enabled_watch_folders()
        scanned = 0
        for folder in folders:
            try:
                await self.scanner.scan_folder(folder.path)
                scanned += 1
            except ScanInProgressError:
                logger.info(f"Poll skipped {folder.path}: a scan is already running")

        await self.notify_library_changed(
            [ChangeResult(action=ChangeAction.POLL_COMPLETE, details={"folders": scanned})]
        )

    async def stop_all(self) -> None:
        """Tear everything down: timers, poll task, settle tasks, observers, drains."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        async with self._mode_lock:
            await self._cancel_poll_task()
            await self._stop_all_observers()

        # Let an in-flight drain finish so its batch isn't half-applied
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        logger.info("Library watcher stopped")
