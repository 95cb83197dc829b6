"""Catalog store - the single owner of localshelf persistence.

Hey future me - every public method here is ONE unit of work with its own session.
There are deliberately no multi-statement transactions across methods: a track upsert
and the folder count refresh that follows it are separate writes. If the process dies
in between, a folder's cached count is briefly stale - track data is never corrupted.
"""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from localshelf.config import Settings
from localshelf.domain.entities import LibraryStats, LocalTrack, TrackMatch, WatchFolder
from localshelf.domain.exceptions import (
    CatalogUnavailableError,
    EntityNotFoundException,
)
from localshelf.infrastructure.persistence.database import Database
from localshelf.infrastructure.persistence.repositories import (
    LocalTrackRepository,
    WatchFolderRepository,
)

logger = logging.getLogger(__name__)

# Sentinel for "argument not passed" where None is a meaningful value
UNSET: Any = object()


class CatalogStore:
    """Embedded relational store for tracks and watch folders."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._db: Database | None = None

    @property
    def db(self) -> Database:
        """The open database. Raises if init() hasn't run."""
        if self._db is None:
            raise CatalogUnavailableError(self.settings.database_url, "store not initialized")
        return self._db

    async def init(self) -> "CatalogStore":
        """Open (and create if needed) the catalog.

        Raises:
            CatalogUnavailableError: the store cannot be opened or created. Fatal.
        """
        url = self.settings.database_url
        try:
            db = Database(self.settings)
            if db.file_path is not None:
                db.file_path.parent.mkdir(parents=True, exist_ok=True)
            await db.create_tables()
            async with db.session_scope() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.critical(f"Catalog store cannot be opened at {url}: {e}")
            raise CatalogUnavailableError(url, str(e)) from e

        self._db = db
        logger.info(f"Catalog store ready: {url}")
        return self

    async def close(self) -> None:
        """Close the underlying engine."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    # =========================================================================
    # TRACKS
    # =========================================================================

    async def upsert_track(self, track: LocalTrack) -> LocalTrack:
        """Insert or replace a track (keyed by path) and return the stored row."""
        async with self.db.session_scope() as session:
            repo = LocalTrackRepository(session)
            await repo.upsert(track)
            stored = await repo.get_by_path(track.file_path)
        if stored is None:
            raise EntityNotFoundException("LocalTrack", track.file_path)
        return stored

    async def remove_track(self, file_path: str) -> bool:
        """Remove a track by path."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).delete_by_path(file_path)

    async def get_track_by_path(self, file_path: str) -> LocalTrack | None:
        """Fetch a track by path."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).get_by_path(file_path)

    async def get_track_by_id(self, track_id: int) -> LocalTrack | None:
        """Fetch a track by row id."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).get_by_id(track_id)

    async def get_all_tracks(self) -> list[LocalTrack]:
        """Every track, ordered by artist/album/track number."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).list_all()

    async def search(self, query: str) -> list[LocalTrack]:
        """Normalized substring search, title hits first, capped at 50."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).search(query)

    async def resolve(
        self, artist: str, title: str, album: str | None = None
    ) -> list[TrackMatch]:
        """Top 5 weighted matches for externally-sourced metadata."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).resolve(artist, title, album)

    async def count_tracks_under(self, folder_path: str) -> int:
        """Number of tracks inside a folder."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).count_under(folder_path)

    async def get_tracks_needing_enrichment(self, limit: int = 100) -> list[LocalTrack]:
        """Tracks whose cross-reference IDs were never looked up."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).list_needing_enrichment(limit)

    async def update_track_musicbrainz(
        self,
        track_id: int,
        track_mbid: str | None = None,
        artist_mbid: str | None = None,
        release_mbid: str | None = None,
    ) -> bool:
        """Record cross-reference IDs from an enrichment pass."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).update_musicbrainz(
                track_id, track_mbid, artist_mbid, release_mbid
            )

    async def update_track_art(
        self,
        track_id: int,
        folder_art_path: str | None = UNSET,
        musicbrainz_art_url: str | None = UNSET,
    ) -> bool:
        """Update art bookkeeping columns. Only passed arguments are written."""
        values: dict[str, Any] = {}
        if folder_art_path is not UNSET:
            values["folder_art_path"] = folder_art_path
        if musicbrainz_art_url is not UNSET:
            values["musicbrainz_art_url"] = musicbrainz_art_url
        if not values:
            return False
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).update_columns(track_id, values)

    async def update_track_has_embedded_art(self, file_path: str, has_art: bool) -> bool:
        """Set the embedded-art flag."""
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).update_has_embedded_art(
                file_path, has_art
            )

    async def update_track_metadata(self, file_path: str, **changes: Any) -> bool:
        """Partial metadata edit (title, artist, album, track_number, year)."""
        allowed = {"title", "artist", "album", "track_number", "year"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unsupported metadata fields: {sorted(unknown)}")
        async with self.db.session_scope() as session:
            return await LocalTrackRepository(session).update_metadata(file_path, changes)

    # =========================================================================
    # WATCH FOLDERS
    # =========================================================================

    async def add_watch_folder(self, folder_path: str) -> bool:
        """Register a folder (no-op if it already exists)."""
        async with self.db.session_scope() as session:
            return await WatchFolderRepository(session).add(folder_path)

    # Hey future me - this cascades! Every track under the folder goes too. Two statements in one
    # session, but the caller only ever sees it as "the folder and its tracks are gone".
    async def remove_watch_folder(self, folder_path: str) -> int:
        """Delete a folder and all tracks inside it. Returns removed track count."""
        async with self.db.session_scope() as session:
            removed = await LocalTrackRepository(session).delete_under(folder_path)
            await WatchFolderRepository(session).delete(folder_path)
        logger.info(f"Removed watch folder {folder_path} ({removed} tracks)")
        return removed

    async def get_watch_folder(self, folder_path: str) -> WatchFolder | None:
        """Fetch one folder."""
        async with self.db.session_scope() as session:
            return await WatchFolderRepository(session).get(folder_path)

    async def get_watch_folders(self) -> list[WatchFolder]:
        """All folders ordered by path."""
        async with self.db.session_scope() as session:
            return await WatchFolderRepository(session).list_all()

    async def get_enabled_watch_folders(self) -> list[WatchFolder]:
        """Enabled folders ordered by path."""
        async with self.db.session_scope() as session:
            return await WatchFolderRepository(session).list_all(enabled_only=True)

    async def set_watch_folder_enabled(self, folder_path: str, enabled: bool) -> bool:
        """Enable or disable a folder."""
        async with self.db.session_scope() as session:
            return await WatchFolderRepository(session).set_enabled(folder_path, enabled)

    async def update_watch_folder_stats(self, folder_path: str, track_count: int) -> bool:
        """Persist a folder's track count with the current time as last scan."""
        async with self.db.session_scope() as session:
            return await WatchFolderRepository(session).update_stats(folder_path, track_count)

    async def get_stats(self) -> LibraryStats:
        """Totals for the whole catalog."""
        async with self.db.session_scope() as session:
            total_tracks = await LocalTrackRepository(session).count()
            return await WatchFolderRepository(session).stats(total_tracks)
