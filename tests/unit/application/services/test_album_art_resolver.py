"""Tests for the album art waterfall and its cache."""

import os
import struct
import time
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from conftest import FakeTagReader
from pytest_mock import MockerFixture

from localshelf.application.services.album_art_resolver import (
    AlbumArtResolver,
    ArtCache,
    embedded_cache_key,
)
from localshelf.domain.dtos import file_uri
from localshelf.domain.entities import LocalTrack
from localshelf.domain.exceptions import TagReadError
from localshelf.domain.ports import EmbeddedArt
from localshelf.infrastructure.persistence.catalog_store import CatalogStore

MakeTrack = Callable[..., LocalTrack]
MakeFile = Callable[..., str]

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png"


@pytest.fixture
def cover_art_client(mocker: MockerFixture):
    client = mocker.AsyncMock()
    client.fetch_front_cover.return_value = JPEG_BYTES
    return client


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "art-cache"


@pytest.fixture
def resolver(
    store: CatalogStore,
    tag_reader: FakeTagReader,
    cover_art_client,
    cache_dir: Path,
) -> AlbumArtResolver:
    return AlbumArtResolver(store, tag_reader, cover_art_client, cache_dir)


class TestEmbeddedTier:
    """Test extraction and caching of embedded pictures."""

    async def test_extracts_and_caches(
        self,
        resolver: AlbumArtResolver,
        tag_reader: FakeTagReader,
        make_track: MakeTrack,
        cache_dir: Path,
    ) -> None:
        track = make_track("/m/a.mp3", has_embedded_art=True)
        tag_reader.art["/m/a.mp3"] = EmbeddedArt(data=JPEG_BYTES, mime_type="image/jpeg")

        uri = await resolver.resolve_art(track)

        expected = cache_dir / f"embedded-{embedded_cache_key('/m/a.mp3')}.jpg"
        assert uri == file_uri(str(expected))
        assert expected.read_bytes() == JPEG_BYTES

    async def test_cache_hit_skips_extraction(
        self,
        resolver: AlbumArtResolver,
        tag_reader: FakeTagReader,
        make_track: MakeTrack,
    ) -> None:
        track = make_track("/m/a.mp3", has_embedded_art=True)
        tag_reader.art["/m/a.mp3"] = EmbeddedArt(data=JPEG_BYTES, mime_type="image/jpeg")

        first = await resolver.resolve_art(track)
        second = await resolver.resolve_art(track)

        assert first == second
        assert tag_reader.art_calls == ["/m/a.mp3"]

    async def test_png_keeps_extension(
        self,
        resolver: AlbumArtResolver,
        tag_reader: FakeTagReader,
        make_track: MakeTrack,
    ) -> None:
        track = make_track("/m/a.flac", has_embedded_art=True)
        tag_reader.art["/m/a.flac"] = EmbeddedArt(data=PNG_BYTES, mime_type="image/png")

        uri = await resolver.resolve_art(track)

        assert uri is not None and uri.endswith(".png")

    async def test_failed_extraction_falls_through_to_folder_art(
        self,
        resolver: AlbumArtResolver,
        make_track: MakeTrack,
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        cover = make_file(music_dir / "cover.jpg", JPEG_BYTES)
        track = make_track(
            str(music_dir / "a.mp3"), has_embedded_art=True, folder_art_path=cover
        )

        assert await resolver.resolve_art(track) == file_uri(cover)

    async def test_extraction_error_falls_through_to_folder_art(
        self,
        resolver: AlbumArtResolver,
        tag_reader: FakeTagReader,
        make_track: MakeTrack,
        music_dir: Path,
        make_file: MakeFile,
        mocker: MockerFixture,
    ) -> None:
        mocker.patch.object(
            tag_reader,
            "extract_embedded_art",
            side_effect=TagReadError("/x.mp3", "corrupt"),
        )
        cover = make_file(music_dir / "cover.jpg", JPEG_BYTES)
        track = make_track("/x.mp3", has_embedded_art=True, folder_art_path=cover)

        assert await resolver.resolve_art(track) == file_uri(cover)

    async def test_unexpected_extraction_error_is_contained(
        self,
        resolver: AlbumArtResolver,
        tag_reader: FakeTagReader,
        make_track: MakeTrack,
        mocker: MockerFixture,
    ) -> None:
        mocker.patch.object(
            tag_reader, "extract_embedded_art", side_effect=struct.error("bad frame")
        )
        track = make_track("/x.mp3", has_embedded_art=True)

        assert await resolver.resolve_art(track) is None

    async def test_flag_off_skips_extraction(
        self,
        resolver: AlbumArtResolver,
        tag_reader: FakeTagReader,
        make_track: MakeTrack,
    ) -> None:
        tag_reader.art["/m/a.mp3"] = EmbeddedArt(data=JPEG_BYTES, mime_type="image/jpeg")

        assert await resolver.resolve_art(make_track("/m/a.mp3")) is None
        assert tag_reader.art_calls == []


class TestFallbackTiers:
    """Test folder art, stored URL and CoverArtArchive tiers."""

    async def test_missing_folder_art_is_skipped(
        self, resolver: AlbumArtResolver, make_track: MakeTrack, tmp_path: Path
    ) -> None:
        track = make_track(
            "/m/a.mp3",
            folder_art_path=str(tmp_path / "deleted-cover.jpg"),
            musicbrainz_art_url="https://example.org/art.jpg",
        )
        assert await resolver.resolve_art(track) == "https://example.org/art.jpg"

    async def test_stored_url_wins_over_remote_fetch(
        self, resolver: AlbumArtResolver, cover_art_client, make_track: MakeTrack
    ) -> None:
        track = make_track(
            "/m/a.mp3",
            musicbrainz_art_url="file:///cache/caa-r1.jpg",
            musicbrainz_release_id="r1",
        )

        assert await resolver.resolve_art(track) == "file:///cache/caa-r1.jpg"
        cover_art_client.fetch_front_cover.assert_not_called()

    async def test_nothing_available(
        self, resolver: AlbumArtResolver, make_track: MakeTrack
    ) -> None:
        assert await resolver.resolve_art(make_track("/m/a.mp3")) is None


class TestCoverArtArchiveTier:
    """Test remote fetch, caching and write-back."""

    async def test_fetch_caches_and_records_url(
        self,
        resolver: AlbumArtResolver,
        store: CatalogStore,
        cover_art_client,
        make_track: MakeTrack,
        cache_dir: Path,
    ) -> None:
        track = await store.upsert_track(make_track("/m/a.mp3", musicbrainz_release_id="r1"))

        uri = await resolver.resolve_art(track)

        cached = cache_dir / "caa-r1.jpg"
        assert uri == file_uri(str(cached))
        assert cached.read_bytes() == JPEG_BYTES
        cover_art_client.fetch_front_cover.assert_awaited_once_with("r1", size=250)
        assert track.id is not None
        stored = await store.get_track_by_id(track.id)
        assert stored is not None and stored.musicbrainz_art_url == uri

    async def test_cached_release_is_not_refetched(
        self,
        resolver: AlbumArtResolver,
        cover_art_client,
        make_track: MakeTrack,
        cache_dir: Path,
    ) -> None:
        cache_dir.mkdir(parents=True, exist_ok=True)
        (cache_dir / "caa-r1.jpg").write_bytes(JPEG_BYTES)
        track = make_track("/m/a.mp3", musicbrainz_release_id="r1")

        uri = await resolver.resolve_art(track)

        assert uri == file_uri(str(cache_dir / "caa-r1.jpg"))
        cover_art_client.fetch_front_cover.assert_not_called()

    async def test_no_remote_art(
        self, resolver: AlbumArtResolver, cover_art_client, make_track: MakeTrack
    ) -> None:
        cover_art_client.fetch_front_cover.return_value = None
        track = make_track("/m/a.mp3", musicbrainz_release_id="r1")

        assert await resolver.resolve_art(track) is None

    async def test_http_error_is_swallowed(
        self, resolver: AlbumArtResolver, cover_art_client, make_track: MakeTrack
    ) -> None:
        cover_art_client.fetch_front_cover.side_effect = httpx.ConnectError("offline")
        track = make_track("/m/a.mp3", musicbrainz_release_id="r1")

        assert await resolver.resolve_art(track) is None

    async def test_configured_size_is_passed(
        self,
        store: CatalogStore,
        tag_reader: FakeTagReader,
        cover_art_client,
        make_track: MakeTrack,
        cache_dir: Path,
    ) -> None:
        resolver = AlbumArtResolver(
            store, tag_reader, cover_art_client, cache_dir, cover_art_size=500
        )

        await resolver.resolve_art(make_track("/m/a.mp3", musicbrainz_release_id="r1"))

        cover_art_client.fetch_front_cover.assert_awaited_once_with("r1", size=500)


class TestCacheMaintenance:
    """Test cache cleanup."""

    async def test_clean_cache_removes_old_entries(
        self, resolver: AlbumArtResolver, cache_dir: Path
    ) -> None:
        old = cache_dir / "caa-old.jpg"
        fresh = cache_dir / "caa-new.jpg"
        old.write_bytes(JPEG_BYTES)
        fresh.write_bytes(JPEG_BYTES)
        forty_days_ago = time.time() - 40 * 24 * 60 * 60
        os.utime(old, (forty_days_ago, forty_days_ago))

        removed = await resolver.clean_cache(max_age_days=30)

        assert removed == 1
        assert not old.exists()
        assert fresh.exists()

    async def test_clean_empty_cache(self, resolver: AlbumArtResolver) -> None:
        assert await resolver.clean_cache() == 0

    def test_art_cache_find_order(self, cache_dir: Path) -> None:
        cache = ArtCache(cache_dir)
        (cache_dir / "b.png").write_bytes(PNG_BYTES)

        assert cache.find("a.jpg", "b.png") == cache_dir / "b.png"
        assert cache.find("a.jpg") is None

    def test_embedded_cache_key_is_stable(self) -> None:
        assert embedded_cache_key("/m/a.mp3") == embedded_cache_key("/m/a.mp3")
        assert embedded_cache_key("/m/a.mp3") != embedded_cache_key("/m/b.mp3")
