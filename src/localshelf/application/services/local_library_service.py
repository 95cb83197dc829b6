# Hey future me - this is THE entry point for the host app. It wires the catalog store, scanner,
# watcher and art resolver together and is the only thing that hands rows to the outside world
# (always through LocalTrackDTO, never raw entities). Every "library changed" notification goes
# through the watcher's callback, so the host subscribes in ONE place.
"""Local library facade."""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any

from localshelf.application.services.album_art_resolver import AlbumArtResolver
from localshelf.application.services.library_scanner import LibraryScanner, ProgressCallback
from localshelf.application.services.library_watcher import (
    LibraryChangedCallback,
    LibraryWatcher,
    ObserverFactory,
)
from localshelf.config import Settings, get_settings
from localshelf.domain.dtos import LocalTrackDTO
from localshelf.domain.entities import (
    ChangeAction,
    ChangeResult,
    LibraryStats,
    LocalTrack,
    ScanResult,
    WatchFolder,
)
from localshelf.domain.exceptions import InvalidStateException, TagWriteError
from localshelf.domain.ports import ICoverArtClient, ITagReader, TagUpdate
from localshelf.infrastructure.integrations.coverartarchive_client import (
    CoverArtArchiveClient,
)
from localshelf.infrastructure.observability.log_messages import LogMessages
from localshelf.infrastructure.persistence.catalog_store import CatalogStore
from localshelf.infrastructure.tagging.mutagen_reader import MutagenTagReader

logger = logging.getLogger(__name__)

EDITABLE_TAG_FIELDS = ("title", "artist", "album", "track_number", "year")


@dataclass
class TagSaveResult:
    """Outcome of save_tags()."""

    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.error:
            data["error"] = self.error
        return data


class LocalLibraryService:
    """Facade over the local audio library.

    Usage:
        service = LocalLibraryService(settings)
        await service.init()
        service.set_library_changed_callback(on_changed)
        await service.add_watch_folder("~/Music")
        matches = await service.resolve("Radiohead", "Airbag")
        await service.shutdown()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tag_reader: ITagReader | None = None,
        cover_art_client: ICoverArtClient | None = None,
        observer_factory: ObserverFactory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.tag_reader: ITagReader = tag_reader or MutagenTagReader()
        self.cover_art_client: ICoverArtClient = cover_art_client or CoverArtArchiveClient(
            self.settings.artwork
        )
        self._observer_factory = observer_factory

        self.store = CatalogStore(self.settings)
        self.scanner: LibraryScanner | None = None
        self.watcher: LibraryWatcher | None = None
        self.art_resolver: AlbumArtResolver | None = None

        self._library_changed: LibraryChangedCallback | None = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def init(self) -> "LocalLibraryService":
        """Bring the library up. Idempotent, concurrent callers share one init.

        Raises:
            CatalogUnavailableError: the catalog store can't be opened. Fatal.
        """
        async with self._init_lock:
            if self._initialized:
                return self

            logger.info("Initializing local library...")
            await self.store.init()

            self.scanner = LibraryScanner(self.store, self.tag_reader)
            self.watcher = LibraryWatcher(
                self.store,
                self.scanner,
                self.settings.watcher,
                observer_factory=self._observer_factory,
            )
            self.watcher.on_library_changed = self._library_changed
            self.art_resolver = AlbumArtResolver(
                self.store,
                self.tag_reader,
                self.cover_art_client,
                cache_dir=self.settings.storage.art_cache_path,
                cover_art_size=self.settings.artwork.cover_art_size,
            )

            await self.watcher.start_watching()

            self._initialized = True
            logger.info("Local library initialized")
            return self

    async def shutdown(self) -> None:
        """Stop watching, close the CoverArtArchive client and the catalog store."""
        logger.info("Shutting down local library...")
        if self.watcher is not None:
            await self.watcher.stop_all()
        await self.cover_art_client.close()
        await self.store.close()
        self._initialized = False

    async def __aenter__(self) -> "LocalLibraryService":
        return await self.init()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    def set_library_changed_callback(self, callback: LibraryChangedCallback | None) -> None:
        """Subscribe to change batches (sync or async callable)."""
        self._library_changed = callback
        if self.watcher is not None:
            self.watcher.on_library_changed = callback

    async def on_app_foreground(self) -> None:
        if self.watcher is not None:
            await self.watcher.on_app_foreground()

    async def on_app_background(self) -> None:
        if self.watcher is not None:
            await self.watcher.on_app_background()

    def _components(self) -> tuple[LibraryScanner, LibraryWatcher, AlbumArtResolver]:
        if self.scanner is None or self.watcher is None or self.art_resolver is None:
            raise InvalidStateException("Local library not initialized, call init() first")
        return self.scanner, self.watcher, self.art_resolver

    async def _notify(self, result: ChangeResult) -> None:
        _, watcher, _ = self._components()
        await watcher.notify_library_changed([result])

    # =========================================================================
    # WATCH FOLDERS + SCANNING
    # =========================================================================

    async def add_watch_folder(
        self, folder_path: str, on_progress: ProgressCallback | None = None
    ) -> ScanResult:
        """Register a folder, start watching it and run the initial scan."""
        _, watcher, _ = self._components()
        folder = os.path.abspath(os.path.expanduser(folder_path))
        logger.info(f"Adding watch folder: {folder}")

        await self.store.add_watch_folder(folder)
        await watcher.watch_folder(folder)
        return await self.scan_folder(folder, on_progress)

    async def remove_watch_folder(self, folder_path: str) -> int:
        """Stop watching a folder and delete it with all of its tracks.

        Returns:
            Number of tracks removed from the catalog.
        """
        _, watcher, _ = self._components()
        folder = os.path.abspath(os.path.expanduser(folder_path))
        logger.info(f"Removing watch folder: {folder}")

        await watcher.unwatch_folder(folder)
        removed = await self.store.remove_watch_folder(folder)
        await self._notify(
            ChangeResult(
                action=ChangeAction.FOLDER_REMOVED,
                file_path=folder,
                details={"folder": folder, "removed_tracks": removed},
            )
        )
        return removed

    async def get_watch_folders(self) -> list[WatchFolder]:
        return await self.store.get_watch_folders()

    async def set_watch_folder_enabled(self, folder_path: str, enabled: bool) -> bool:
        """Enable/disable a folder. Live watching follows the flag immediately."""
        _, watcher, _ = self._components()
        folder = os.path.abspath(os.path.expanduser(folder_path))
        changed = await self.store.set_watch_folder_enabled(folder, enabled)
        if changed:
            if enabled:
                await watcher.watch_folder(folder)
            else:
                await watcher.unwatch_folder(folder)
        return changed

    async def scan_folder(
        self, folder_path: str, on_progress: ProgressCallback | None = None
    ) -> ScanResult:
        """Scan one folder, notifying the host if anything was added or updated.

        Raises:
            ScanInProgressError: another scan is running
        """
        scanner, _, _ = self._components()
        result = await scanner.scan_folder(folder_path, on_progress)
        if result.has_changes:
            await self._notify(
                ChangeResult(
                    action=ChangeAction.SCAN_COMPLETE,
                    file_path=folder_path,
                    details=result.to_dict(),
                )
            )
        return result

    async def rescan_all(self, on_progress: ProgressCallback | None = None) -> list[ScanResult]:
        """Scan every enabled folder, then notify once if anything changed."""
        scanner, _, _ = self._components()
        results: list[ScanResult] = []
        for folder in await self.store.get_enabled_watch_folders():
            results.append(await scanner.scan_folder(folder.path, on_progress))

        if any(result.has_changes for result in results):
            await self._notify(
                ChangeResult(
                    action=ChangeAction.RESCAN_COMPLETE,
                    details={"results": [result.to_dict() for result in results]},
                )
            )
        return results

    def abort_scan(self) -> None:
        scanner, _, _ = self._components()
        scanner.abort()

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Substring search. Art is NOT resolved here, search stays cheap."""
        tracks = await self.store.search(query)
        return [LocalTrackDTO.from_track(track).to_dict() for track in tracks]

    async def resolve(
        self, artist: str, title: str, album: str | None = None
    ) -> list[dict[str, Any]] | None:
        """Match external metadata against the catalog, best first, with art attached.

        Returns:
            Up to 5 matches, or None when nothing matches.
        """
        _, _, art_resolver = self._components()
        logger.debug(f"Resolving: artist={artist!r} title={title!r} album={album!r}")
        matches = await self.store.resolve(artist, title, album)
        if not matches:
            return None

        formatted: list[dict[str, Any]] = []
        for match in matches:
            album_art = await art_resolver.resolve_art(match.track)
            formatted.append(
                LocalTrackDTO.from_track(
                    match.track,
                    confidence=match.confidence,
                    album_art=album_art,
                    include_art=True,
                ).to_dict()
            )
        return formatted

    async def get_track_by_path(self, file_path: str) -> dict[str, Any] | None:
        track = await self.store.get_track_by_path(file_path)
        return LocalTrackDTO.from_track(track).to_dict() if track else None

    async def get_stats(self) -> LibraryStats:
        return await self.store.get_stats()

    # =========================================================================
    # ENRICHMENT + MAINTENANCE
    # =========================================================================

    async def get_tracks_needing_enrichment(self, limit: int = 100) -> list[LocalTrack]:
        """Tracks an enrichment pass hasn't looked at yet (newest first).

        Returns entities, not DTO dicts: the enrichment pass needs the integer row id
        for update_track_musicbrainz, the host never sees these.
        """
        return await self.store.get_tracks_needing_enrichment(limit)

    async def update_track_musicbrainz(
        self,
        track_id: int,
        track_mbid: str | None = None,
        artist_mbid: str | None = None,
        release_mbid: str | None = None,
    ) -> bool:
        return await self.store.update_track_musicbrainz(
            track_id, track_mbid, artist_mbid, release_mbid
        )

    async def clean_art_cache(self, max_age_days: int | None = None) -> int:
        """Delete stale art cache files. Defaults to artwork.cache_max_age_days."""
        _, _, art_resolver = self._components()
        days = max_age_days if max_age_days is not None else self.settings.artwork.cache_max_age_days
        return await art_resolver.clean_cache(days)

    async def save_tags(self, file_path: str, tags: TagUpdate) -> TagSaveResult:
        """Write edited tags into the file, then into the catalog row.

        Hey future me - file FIRST. If mutagen can't write the file we return a failure and
        the row keeps its old values, so the catalog never claims tags the file doesn't have.
        """
        self._components()
        update: dict[str, Any] = {
            key: tags[key]  # type: ignore[literal-required]
            for key in EDITABLE_TAG_FIELDS
            if key in tags and tags[key] not in (None, "")  # type: ignore[literal-required]
        }
        if not update:
            return TagSaveResult(success=False, error="No tags to save")
        if not os.path.isfile(file_path):
            return TagSaveResult(success=False, error="File not found")
        if not self.tag_reader.is_supported(file_path):
            return TagSaveResult(success=False, error="Unsupported file format")

        try:
            await self.tag_reader.write_tags(file_path, update)  # type: ignore[arg-type]
        except (TagWriteError, OSError) as e:
            logger.error(
                LogMessages.file_operation_failed(
                    operation="Tag Write", filename=file_path, error=str(e)
                )
            )
            return TagSaveResult(success=False, error=str(e))

        await self.store.update_track_metadata(file_path, **update)
        logger.info(f"Saved tags {sorted(update)} for {file_path}")
        await self._notify(
            ChangeResult(
                action=ChangeAction.TAGS_UPDATED,
                file_path=file_path,
                details={"tags": update},
            )
        )
        return TagSaveResult(success=True)


__all__ = ["LocalLibraryService", "TagSaveResult"]
