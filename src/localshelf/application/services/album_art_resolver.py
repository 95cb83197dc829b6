"""Album art resolution with an on-disk cache.

Hey future me - resolve_art() walks a WATERFALL and the first tier that produces something wins:

1. Embedded picture  - cached as embedded-<md5(file path)>.jpg|png, extracted on cache miss
2. Folder art        - cover.jpg & friends next to the file (found by the scanner)
3. Stored remote URL - musicbrainz_art_url already on the row
4. CoverArtArchive   - by musicbrainz_release_id, cached as caa-<release id>.jpg
5. None              - the host shows its placeholder

Cache hits are decided by file EXISTENCE only, no metadata lookup. The cache is never
trimmed automatically, clean_cache() is there for the host to call when it likes.
Every tier failure is logged and treated as "nothing here", resolve_art never raises.
"""

import asyncio
import hashlib
import logging
import os
import time
from pathlib import Path

import httpx
from sqlalchemy.exc import SQLAlchemyError

from localshelf.domain.dtos import file_uri
from localshelf.domain.entities import LocalTrack
from localshelf.domain.ports import ICoverArtClient, ITagReader
from localshelf.infrastructure.observability.log_messages import LogMessages
from localshelf.infrastructure.persistence.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

EMBEDDED_PREFIX = "embedded-"
CAA_PREFIX = "caa-"
SECONDS_PER_DAY = 24 * 60 * 60


class ArtCache:
    """Flat directory of cached images, keyed by file name."""

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.cache_dir / name

    def find(self, *names: str) -> Path | None:
        """First of names that exists in the cache."""
        for name in names:
            candidate = self.path_for(name)
            if candidate.is_file():
                return candidate
        return None

    async def put(self, name: str, data: bytes) -> Path:
        """Write an entry (off the event loop) and return its path."""
        path = self.path_for(name)
        await asyncio.to_thread(path.write_bytes, data)
        return path

    def entries(self) -> list[Path]:
        """Every regular file in the cache."""
        try:
            return [p for p in self.cache_dir.iterdir() if p.is_file()]
        except FileNotFoundError:
            return []


def embedded_cache_key(file_path: str) -> str:
    """md5 of the audio file path, the stable name of its extracted picture."""
    return hashlib.md5(file_path.encode("utf-8")).hexdigest()


class AlbumArtResolver:
    """Finds the best available cover art for a track."""

    def __init__(
        self,
        store: CatalogStore,
        tag_reader: ITagReader,
        cover_art_client: ICoverArtClient,
        cache_dir: Path,
        cover_art_size: int = 250,
    ) -> None:
        self.store = store
        self.tag_reader = tag_reader
        self.cover_art_client = cover_art_client
        self.cache = ArtCache(cache_dir)
        self.cover_art_size = cover_art_size

    async def resolve_art(self, track: LocalTrack) -> str | None:
        """Return a URI for the track's art, or None if no tier has any."""
        if track.has_embedded_art:
            cached = await self._get_or_extract_embedded_art(track.file_path)
            if cached is not None:
                return file_uri(str(cached))

        if track.folder_art_path and os.path.isfile(track.folder_art_path):
            return file_uri(track.folder_art_path)

        if track.musicbrainz_art_url:
            return track.musicbrainz_art_url

        if track.musicbrainz_release_id:
            cached = await self._fetch_from_cover_art_archive(
                track.id, track.musicbrainz_release_id
            )
            if cached is not None:
                return file_uri(str(cached))

        return None

    async def _get_or_extract_embedded_art(self, file_path: str) -> Path | None:
        key = embedded_cache_key(file_path)
        cached = self.cache.find(f"{EMBEDDED_PREFIX}{key}.jpg", f"{EMBEDDED_PREFIX}{key}.png")
        if cached is not None:
            return cached

        try:
            art = await self.tag_reader.extract_embedded_art(file_path)
        except Exception as e:
            # Malformed files raise all sorts of things, fall through to folder art
            logger.warning(
                LogMessages.file_operation_failed(
                    operation="Embedded Art Extract", filename=file_path, error=str(e)
                )
            )
            return None
        if art is None or not art.data:
            return None

        ext = "png" if "png" in art.mime_type.lower() else "jpg"
        try:
            return await self.cache.put(f"{EMBEDDED_PREFIX}{key}.{ext}", art.data)
        except OSError as e:
            logger.warning(
                LogMessages.file_operation_failed(
                    operation="Art Cache Write", filename=file_path, error=str(e)
                )
            )
            return None

    async def _fetch_from_cover_art_archive(
        self, track_id: int | None, release_id: str
    ) -> Path | None:
        name = f"{CAA_PREFIX}{release_id}.jpg"
        cached = self.cache.find(name)
        if cached is not None:
            return cached

        try:
            logger.debug(f"Fetching album art from CoverArtArchive: {release_id}")
            data = await self.cover_art_client.fetch_front_cover(
                release_id, size=self.cover_art_size
            )
        except httpx.HTTPError as e:
            logger.warning(
                LogMessages.connection_failed(
                    service="CoverArtArchive",
                    target=f"release {release_id}",
                    error=str(e),
                    hint="Remote art is skipped for this track, the next resolve retries",
                )
            )
            return None

        if not data:
            # 404 - CAA simply has no art for this release, that's normal
            logger.debug(f"No CoverArtArchive art for release {release_id}")
            return None

        try:
            path = await self.cache.put(name, data)
        except OSError as e:
            logger.warning(
                LogMessages.file_operation_failed(
                    operation="Art Cache Write", filename=name, error=str(e)
                )
            )
            return None

        if track_id is not None:
            try:
                await self.store.update_track_art(
                    track_id, musicbrainz_art_url=file_uri(str(path))
                )
            except SQLAlchemyError as e:
                # The cached file still serves this call and the next cache hit
                logger.warning(f"Could not record cached art on track {track_id}: {e}")

        return path

    async def clean_cache(self, max_age_days: int = 30) -> int:
        """Delete cache entries whose mtime is older than max_age_days.

        Returns:
            Number of files removed.
        """
        return await asyncio.to_thread(self._clean_cache_sync, max_age_days)

    def _clean_cache_sync(self, max_age_days: int) -> int:
        cutoff = time.time() - max_age_days * SECONDS_PER_DAY
        cleaned = 0
        for entry in self.cache.entries():
            try:
                if entry.stat().st_mtime < cutoff:
                    entry.unlink()
                    cleaned += 1
            except OSError as e:
                logger.warning(f"Could not clean art cache entry {entry.name}: {e}")

        if cleaned:
            logger.info(f"Cleaned {cleaned} old art cache files")
        return cleaned
