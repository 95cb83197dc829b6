"""Repository implementations for the local library catalog."""

import os
from dataclasses import fields
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, literal, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from localshelf.domain.entities import LibraryStats, LocalTrack, TrackMatch, WatchFolder
from localshelf.domain.value_objects import (
    LIKE_ESCAPE_CHAR,
    contains_pattern,
    escape_like,
    normalize_text,
)
from localshelf.infrastructure.persistence.models import (
    LocalTrackModel,
    WatchFolderModel,
    ensure_utc_aware,
    utc_now,
)

SEARCH_LIMIT = 50
RESOLVE_LIMIT = 5

# Resolve scoring weights
EXACT_ARTIST_POINTS = 40
EXACT_TITLE_POINTS = 40
EXACT_ALBUM_POINTS = 15
PARTIAL_ARTIST_POINTS = 20
PARTIAL_TITLE_POINTS = 20

_TRACK_COLUMNS = tuple(
    f.name for f in fields(LocalTrack) if f.name not in ("id", "indexed_at")
)


# Hey future me - "/music/rock" must NOT match "/music/rock2/song.mp3"! We always append the
# separator before building the LIKE prefix, and escape %/_ so a folder literally named
# "100%_hits" doesn't turn into a wildcard that eats half the library.
def folder_prefix_pattern(folder_path: str) -> str:
    """Escaped LIKE pattern matching every path inside folder_path."""
    prefix = folder_path.rstrip("/" + os.sep) + os.sep
    return escape_like(prefix) + "%"


class LocalTrackRepository:
    """SQLAlchemy repository for indexed tracks."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _to_entity(model: LocalTrackModel) -> LocalTrack:
        return LocalTrack(
            id=model.id,
            file_path=model.file_path,
            file_hash=model.file_hash,
            modified_at=model.modified_at,
            title=model.title,
            artist=model.artist,
            album=model.album,
            album_artist=model.album_artist,
            track_number=model.track_number,
            disc_number=model.disc_number,
            year=model.year,
            genre=model.genre,
            duration=model.duration or 0.0,
            format=model.format,
            bitrate=model.bitrate,
            sample_rate=model.sample_rate,
            has_embedded_art=bool(model.has_embedded_art),
            folder_art_path=model.folder_art_path,
            musicbrainz_art_url=model.musicbrainz_art_url,
            musicbrainz_track_id=model.musicbrainz_track_id,
            musicbrainz_artist_id=model.musicbrainz_artist_id,
            musicbrainz_release_id=model.musicbrainz_release_id,
            enriched_at=ensure_utc_aware(model.enriched_at),
            indexed_at=ensure_utc_aware(model.indexed_at),
            title_normalized=model.title_normalized,
            artist_normalized=model.artist_normalized,
            album_normalized=model.album_normalized,
        )

    # Listen up, this is INSERT OR REPLACE semantics keyed on file_path, but done as an upsert so
    # the row id stays stable (the host keeps "local-<id>" references around). Every column comes
    # from the record - including the enrichment columns - so a changed file starts fresh.
    # Normalized columns are ALWAYS recomputed here, whatever the caller passed.
    async def upsert(self, track: LocalTrack) -> None:
        """Insert the track or replace the row with the same path."""
        values: dict[str, Any] = {name: getattr(track, name) for name in _TRACK_COLUMNS}
        values.update(track.normalized_fields())
        values["indexed_at"] = utc_now()

        stmt = sqlite_insert(LocalTrackModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[LocalTrackModel.file_path],
            set_={
                name: stmt.excluded[name] for name in values if name != "file_path"
            },
        )
        await self.session.execute(stmt)

    async def delete_by_path(self, file_path: str) -> bool:
        """Delete a track by path. Returns True if a row was removed."""
        stmt = delete(LocalTrackModel).where(LocalTrackModel.file_path == file_path)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def get_by_path(self, file_path: str) -> LocalTrack | None:
        """Get a track by path."""
        stmt = select(LocalTrackModel).where(LocalTrackModel.file_path == file_path)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_id(self, track_id: int) -> LocalTrack | None:
        """Get a track by row id."""
        model = await self.session.get(LocalTrackModel, track_id)
        return self._to_entity(model) if model else None

    async def list_all(self) -> list[LocalTrack]:
        """All tracks, ordered for browsing."""
        stmt = select(LocalTrackModel).order_by(
            LocalTrackModel.artist,
            LocalTrackModel.album,
            LocalTrackModel.track_number,
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self) -> int:
        """Count all tracks."""
        result = await self.session.execute(select(func.count(LocalTrackModel.id)))
        return result.scalar() or 0

    # Yo, search is plain substring matching on the normalized columns. Title hits rank above
    # artist hits, which rank above album-only hits. Inside a bucket we sort like a record shelf.
    async def search(self, query: str, limit: int = SEARCH_LIMIT) -> list[LocalTrack]:
        """Substring search over normalized title/artist/album."""
        pattern = contains_pattern(normalize_text(query))
        title_hit = LocalTrackModel.title_normalized.like(pattern, escape=LIKE_ESCAPE_CHAR)
        artist_hit = LocalTrackModel.artist_normalized.like(
            pattern, escape=LIKE_ESCAPE_CHAR
        )
        album_hit = LocalTrackModel.album_normalized.like(pattern, escape=LIKE_ESCAPE_CHAR)

        stmt = (
            select(LocalTrackModel)
            .where(or_(title_hit, artist_hit, album_hit))
            .order_by(
                case((title_hit, 1), (artist_hit, 2), else_=3),
                LocalTrackModel.artist,
                LocalTrackModel.album,
                LocalTrackModel.track_number,
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    # Hey future me - this is the cross-reference entry point! Given artist/title (and maybe album)
    # from some external source, find the local file. Candidates MUST contain both artist and
    # title; album only adds points. An exact hit also counts as a substring hit, so:
    #   exact artist + exact title = 40+40+20+20 = 120 -> confidence capped at 1.0
    #   substring artist + substring title = 20+20 = 40 -> confidence 0.45
    async def resolve(
        self,
        artist: str,
        title: str,
        album: str | None = None,
        limit: int = RESOLVE_LIMIT,
    ) -> list[TrackMatch]:
        """Weighted fuzzy lookup of a track by artist/title/album."""
        artist_norm = normalize_text(artist)
        title_norm = normalize_text(title)
        album_norm = normalize_text(album)

        artist_like = LocalTrackModel.artist_normalized.like(
            contains_pattern(artist_norm), escape=LIKE_ESCAPE_CHAR
        )
        title_like = LocalTrackModel.title_normalized.like(
            contains_pattern(title_norm), escape=LIKE_ESCAPE_CHAR
        )

        album_points = (
            case((LocalTrackModel.album_normalized == album_norm, EXACT_ALBUM_POINTS), else_=0)
            if album_norm
            else literal(0)
        )
        score = (
            case((LocalTrackModel.artist_normalized == artist_norm, EXACT_ARTIST_POINTS), else_=0)
            + case((LocalTrackModel.title_normalized == title_norm, EXACT_TITLE_POINTS), else_=0)
            + album_points
            + case((artist_like, PARTIAL_ARTIST_POINTS), else_=0)
            + case((title_like, PARTIAL_TITLE_POINTS), else_=0)
        ).label("score")

        stmt = (
            select(LocalTrackModel, score)
            .where(artist_like, title_like)
            .order_by(score.desc(), LocalTrackModel.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [
            TrackMatch(track=self._to_entity(model), score=int(points))
            for model, points in result.all()
        ]

    async def count_under(self, folder_path: str) -> int:
        """Count tracks located inside folder_path (recursively)."""
        stmt = select(func.count(LocalTrackModel.id)).where(
            LocalTrackModel.file_path.like(
                folder_prefix_pattern(folder_path), escape=LIKE_ESCAPE_CHAR
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def delete_under(self, folder_path: str) -> int:
        """Delete every track inside folder_path. Returns the number removed."""
        stmt = delete(LocalTrackModel).where(
            LocalTrackModel.file_path.like(
                folder_prefix_pattern(folder_path), escape=LIKE_ESCAPE_CHAR
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def list_needing_enrichment(self, limit: int = 100) -> list[LocalTrack]:
        """Tracks never enriched, newest first."""
        stmt = (
            select(LocalTrackModel)
            .where(LocalTrackModel.enriched_at.is_(None))
            .order_by(LocalTrackModel.indexed_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update_musicbrainz(
        self,
        track_id: int,
        track_mbid: str | None,
        artist_mbid: str | None,
        release_mbid: str | None,
    ) -> bool:
        """Store cross-reference IDs and stamp enriched_at."""
        stmt = (
            update(LocalTrackModel)
            .where(LocalTrackModel.id == track_id)
            .values(
                musicbrainz_track_id=track_mbid,
                musicbrainz_artist_id=artist_mbid,
                musicbrainz_release_id=release_mbid,
                enriched_at=utc_now(),
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def update_columns(self, track_id: int, values: dict[str, Any]) -> bool:
        """Update arbitrary non-normalized columns of one row."""
        if not values:
            return False
        stmt = update(LocalTrackModel).where(LocalTrackModel.id == track_id).values(**values)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def update_has_embedded_art(self, file_path: str, has_art: bool) -> bool:
        """Flip the embedded-art flag of one row."""
        stmt = (
            update(LocalTrackModel)
            .where(LocalTrackModel.file_path == file_path)
            .values(has_embedded_art=has_art)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    # Hey - partial metadata edit! Only the keys passed in change, and whenever title/artist/album
    # change their *_normalized twin changes in the SAME statement, so they can never drift.
    async def update_metadata(self, file_path: str, changes: dict[str, Any]) -> bool:
        """Apply a partial metadata edit, keeping normalized columns in sync."""
        values: dict[str, Any] = {}
        for key, value in changes.items():
            values[key] = value
            if key in ("title", "artist", "album"):
                values[f"{key}_normalized"] = normalize_text(value)
        if not values:
            return False
        stmt = (
            update(LocalTrackModel)
            .where(LocalTrackModel.file_path == file_path)
            .values(**values)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]


class WatchFolderRepository:
    """SQLAlchemy repository for watch folders."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _to_entity(model: WatchFolderModel) -> WatchFolder:
        return WatchFolder(
            id=model.id,
            path=model.path,
            enabled=bool(model.enabled),
            last_scan_at=ensure_utc_aware(model.last_scan_at),
            track_count=model.track_count or 0,
        )

    async def add(self, path: str) -> bool:
        """Insert the folder if missing. Returns True if a row was created."""
        stmt = (
            sqlite_insert(WatchFolderModel)
            .values(path=path, enabled=True, last_scan_at=None, track_count=0)
            .on_conflict_do_nothing(index_elements=[WatchFolderModel.path])
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def delete(self, path: str) -> bool:
        """Delete the folder row."""
        stmt = delete(WatchFolderModel).where(WatchFolderModel.path == path)
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def get(self, path: str) -> WatchFolder | None:
        """Get a folder by path."""
        stmt = select(WatchFolderModel).where(WatchFolderModel.path == path)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_all(self, enabled_only: bool = False) -> list[WatchFolder]:
        """All folders ordered by path."""
        stmt = select(WatchFolderModel).order_by(WatchFolderModel.path)
        if enabled_only:
            stmt = stmt.where(WatchFolderModel.enabled.is_(True))
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def set_enabled(self, path: str, enabled: bool) -> bool:
        """Enable or disable a folder."""
        stmt = (
            update(WatchFolderModel)
            .where(WatchFolderModel.path == path)
            .values(enabled=enabled)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def update_stats(
        self, path: str, track_count: int, scanned_at: datetime | None = None
    ) -> bool:
        """Persist the cached track count and scan time."""
        stmt = (
            update(WatchFolderModel)
            .where(WatchFolderModel.path == path)
            .values(track_count=track_count, last_scan_at=scanned_at or utc_now())
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def stats(self, total_tracks: int) -> LibraryStats:
        """Folder-side totals combined with the given track count."""
        enabled_count = await self.session.execute(
            select(func.count(WatchFolderModel.id)).where(
                WatchFolderModel.enabled.is_(True)
            )
        )
        last_scan = await self.session.execute(select(func.max(WatchFolderModel.last_scan_at)))
        return LibraryStats(
            total_tracks=total_tracks,
            total_folders=enabled_count.scalar() or 0,
            last_scan_at=ensure_utc_aware(last_scan.scalar()),
        )
