"""Tests for the LocalLibraryService facade (real store, fake tag reader and observers)."""

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest
from conftest import FakeObserver, FakeTagReader
from pytest_mock import MockerFixture

from localshelf.application.services.local_library_service import (
    LocalLibraryService,
    TagSaveResult,
)
from localshelf.config import Settings
from localshelf.domain.entities import ChangeAction, ChangeResult
from localshelf.domain.exceptions import InvalidStateException

MakeFile = Callable[..., str]


@pytest.fixture
def cover_art_client(mocker: MockerFixture):
    client = mocker.AsyncMock()
    client.fetch_front_cover.return_value = None
    return client


@pytest.fixture
def events() -> list[ChangeResult]:
    return []


@pytest.fixture
async def service(
    settings: Settings,
    tag_reader: FakeTagReader,
    cover_art_client,
    fake_observer_factory: Callable[[], FakeObserver],
    events: list[ChangeResult],
) -> AsyncIterator[LocalLibraryService]:
    svc = LocalLibraryService(
        settings,
        tag_reader=tag_reader,
        cover_art_client=cover_art_client,
        observer_factory=fake_observer_factory,  # type: ignore[arg-type]
    )
    svc.set_library_changed_callback(events.extend)
    await svc.init()
    yield svc
    await svc.shutdown()


class TestLifecycle:
    """Test init/shutdown."""

    async def test_init_is_idempotent(self, service: LocalLibraryService) -> None:
        scanner = service.scanner

        await service.init()

        assert service.is_initialized
        assert service.scanner is scanner

    async def test_init_resumes_watching_enabled_folders(
        self,
        settings: Settings,
        tag_reader: FakeTagReader,
        cover_art_client,
        fake_observer_factory: Callable[[], FakeObserver],
        music_dir: Path,
    ) -> None:
        async with LocalLibraryService(
            settings,
            tag_reader=tag_reader,
            cover_art_client=cover_art_client,
            observer_factory=fake_observer_factory,  # type: ignore[arg-type]
        ) as first:
            await first.add_watch_folder(str(music_dir))

        second = LocalLibraryService(
            settings,
            tag_reader=tag_reader,
            cover_art_client=cover_art_client,
            observer_factory=fake_observer_factory,  # type: ignore[arg-type]
        )
        await second.init()
        try:
            assert second.watcher is not None
            assert second.watcher.watched_folders == [str(music_dir)]
        finally:
            await second.shutdown()

    async def test_operations_before_init_raise(
        self, settings: Settings, tag_reader: FakeTagReader
    ) -> None:
        svc = LocalLibraryService(settings, tag_reader=tag_reader)
        with pytest.raises(InvalidStateException):
            await svc.rescan_all()

    async def test_shutdown_closes_everything(
        self, service: LocalLibraryService, cover_art_client, music_dir: Path
    ) -> None:
        await service.add_watch_folder(str(music_dir))
        observer = FakeObserver.instances[-1]

        await service.shutdown()

        assert not service.is_initialized
        assert observer.stopped
        cover_art_client.close.assert_awaited()


class TestWatchFolders:
    """Test folder management through the facade."""

    async def test_add_watch_folder_scans_and_notifies(
        self,
        service: LocalLibraryService,
        events: list[ChangeResult],
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        make_file(music_dir / "a.mp3")
        make_file(music_dir / "b.mp3")

        result = await service.add_watch_folder(str(music_dir))

        assert result.added == 2
        assert service.watcher is not None
        assert service.watcher.watched_folders == [str(music_dir)]
        assert [e.action for e in events] == [ChangeAction.SCAN_COMPLETE]
        assert events[0].details["added"] == 2
        folders = await service.get_watch_folders()
        assert [f.track_count for f in folders] == [2]

    async def test_add_empty_folder_does_not_notify(
        self, service: LocalLibraryService, events: list[ChangeResult], music_dir: Path
    ) -> None:
        await service.add_watch_folder(str(music_dir))
        assert events == []

    async def test_add_expands_user_path(
        self,
        service: LocalLibraryService,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        (tmp_path / "Music").mkdir()
        monkeypatch.setenv("HOME", str(tmp_path))

        await service.add_watch_folder("~/Music")

        assert [f.path for f in await service.get_watch_folders()] == [str(tmp_path / "Music")]

    async def test_remove_watch_folder_cascades(
        self,
        service: LocalLibraryService,
        events: list[ChangeResult],
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        make_file(music_dir / "a.mp3")
        await service.add_watch_folder(str(music_dir))
        events.clear()

        removed = await service.remove_watch_folder(str(music_dir))

        assert removed == 1
        assert await service.search("a") == []
        assert await service.get_watch_folders() == []
        assert service.watcher is not None and service.watcher.handle_count == 0
        assert [e.action for e in events] == [ChangeAction.FOLDER_REMOVED]
        assert events[0].details == {"folder": str(music_dir), "removed_tracks": 1}

    async def test_disable_stops_watching(
        self, service: LocalLibraryService, music_dir: Path
    ) -> None:
        await service.add_watch_folder(str(music_dir))

        assert await service.set_watch_folder_enabled(str(music_dir), False) is True
        assert service.watcher is not None and service.watcher.handle_count == 0

        await service.set_watch_folder_enabled(str(music_dir), True)
        assert service.watcher.handle_count == 1

    async def test_enable_toggle_expands_user_path(
        self,
        service: LocalLibraryService,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        (tmp_path / "Music").mkdir()
        monkeypatch.setenv("HOME", str(tmp_path))
        await service.add_watch_folder("~/Music")

        assert await service.set_watch_folder_enabled("~/Music", False) is True

        (folder,) = await service.get_watch_folders()
        assert folder.enabled is False
        assert service.watcher is not None and service.watcher.handle_count == 0

    async def test_abort_scan_stops_running_scan(
        self,
        service: LocalLibraryService,
        events: list[ChangeResult],
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        await service.add_watch_folder(str(music_dir))
        for name in ("a.mp3", "b.mp3", "c.mp3"):
            make_file(music_dir / name)

        def abort_on_first(done: int, total: int, path: str) -> None:
            service.abort_scan()

        result = await service.scan_folder(str(music_dir), on_progress=abort_on_first)

        assert result.aborted is True
        assert result.added == 1
        assert [e.details["aborted"] for e in events] == [True]

    async def test_rescan_all_notifies_only_on_change(
        self,
        service: LocalLibraryService,
        events: list[ChangeResult],
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        make_file(music_dir / "a.mp3")
        await service.add_watch_folder(str(music_dir))
        events.clear()

        results = await service.rescan_all()

        assert [r.skipped for r in results] == [1]
        assert events == []

        make_file(music_dir / "b.mp3")
        await service.rescan_all()
        assert [e.action for e in events] == [ChangeAction.RESCAN_COMPLETE]


class TestQueries:
    """Test search/resolve output."""

    @pytest.fixture
    async def indexed(
        self,
        service: LocalLibraryService,
        tag_reader: FakeTagReader,
        music_dir: Path,
        make_file: MakeFile,
    ) -> str:
        path = make_file(music_dir / "01 - Airbag.mp3")
        tag_reader.tags[path] = {"title": "Airbag", "artist": "Radiohead", "album": "OK Computer"}
        await service.add_watch_folder(str(music_dir))
        return path

    async def test_search_returns_dicts_without_art(
        self, service: LocalLibraryService, indexed: str
    ) -> None:
        results = await service.search("airbag")

        assert len(results) == 1
        assert results[0]["id"].startswith("local-")
        assert results[0]["sources"]["localfiles"]["file_path"] == indexed
        assert "album_art" not in results[0]

    async def test_resolve_with_confidence_and_art(
        self,
        service: LocalLibraryService,
        indexed: str,
    ) -> None:
        results = await service.resolve("Radiohead", "Airbag")

        assert results is not None and len(results) == 1
        assert results[0]["confidence"] == 1.0
        assert results[0]["album_art"] is None

    async def test_resolve_nothing(self, service: LocalLibraryService, indexed: str) -> None:
        assert await service.resolve("Muse", "Uprising") is None

    async def test_get_track_by_path(self, service: LocalLibraryService, indexed: str) -> None:
        track = await service.get_track_by_path(indexed)
        assert track is not None and track["title"] == "Airbag"
        assert await service.get_track_by_path("/nope.mp3") is None

    async def test_stats(self, service: LocalLibraryService, indexed: str) -> None:
        stats = await service.get_stats()
        assert stats.total_tracks == 1
        assert stats.total_folders == 1


class TestSaveTags:
    """Test tag editing."""

    async def test_save_tags_writes_file_then_row(
        self,
        service: LocalLibraryService,
        tag_reader: FakeTagReader,
        events: list[ChangeResult],
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        path = make_file(music_dir / "a.mp3")
        await service.add_watch_folder(str(music_dir))
        events.clear()

        result = await service.save_tags(path, {"title": "New Title", "album": ""})

        assert result == TagSaveResult(success=True)
        assert tag_reader.written[path] == {"title": "New Title"}
        track = await service.get_track_by_path(path)
        assert track is not None and track["title"] == "New Title"
        assert [e.action for e in events] == [ChangeAction.TAGS_UPDATED]

    async def test_failed_write_leaves_row_alone(
        self,
        service: LocalLibraryService,
        tag_reader: FakeTagReader,
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        path = make_file(music_dir / "01 - Old.mp3")
        await service.add_watch_folder(str(music_dir))
        tag_reader.failing_writes.add(path)

        result = await service.save_tags(path, {"title": "New"})

        assert result.success is False
        assert result.to_dict()["error"].endswith("read-only file")
        track = await service.get_track_by_path(path)
        assert track is not None and track["title"] == "Old"

    @pytest.mark.parametrize(
        ("name", "tags", "error"),
        [
            ("a.mp3", {}, "No tags to save"),
            ("missing.mp3", {"title": "X"}, "File not found"),
            ("a.ogg", {"title": "X"}, "Unsupported file format"),
        ],
    )
    async def test_rejected_requests(
        self,
        service: LocalLibraryService,
        music_dir: Path,
        make_file: MakeFile,
        name: str,
        tags: dict,
        error: str,
    ) -> None:
        make_file(music_dir / "a.mp3")
        make_file(music_dir / "a.ogg")

        result = await service.save_tags(str(music_dir / name), tags)  # type: ignore[arg-type]

        assert result.to_dict() == {"success": False, "error": error}


class TestMaintenance:
    """Test enrichment passthrough and cache cleanup."""

    async def test_enrichment_round_trip(
        self,
        service: LocalLibraryService,
        music_dir: Path,
        make_file: MakeFile,
    ) -> None:
        make_file(music_dir / "a.mp3")
        await service.add_watch_folder(str(music_dir))

        (track,) = await service.get_tracks_needing_enrichment()
        assert track.id is not None
        await service.update_track_musicbrainz(track.id, release_mbid="r1")

        assert await service.get_tracks_needing_enrichment() == []

    async def test_clean_art_cache_uses_default_age(
        self, service: LocalLibraryService, settings: Settings
    ) -> None:
        (settings.storage.art_cache_path / "caa-fresh.jpg").write_bytes(b"img")

        assert await service.clean_art_cache() == 0
        assert await service.clean_art_cache(max_age_days=-1) == 1
