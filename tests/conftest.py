"""Shared fixtures for localshelf tests.

Hey future me - everything here runs against REAL SQLite files in tmp_path. The only fakes are
the tag reader (so tests don't need real audio files) and the watchdog observer (so tests don't
depend on inotify/FSEvents timing).
"""

import os
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest

from localshelf.config import (
    Settings,
    StorageSettings,
    WatcherSettings,
)
from localshelf.domain.entities import LocalTrack
from localshelf.domain.exceptions import TagReadError, TagWriteError
from localshelf.domain.ports import EmbeddedArt, ITagReader, TagUpdate, TrackTags
from localshelf.domain.value_objects import is_audio_file, title_from_filename
from localshelf.infrastructure.persistence.catalog_store import CatalogStore


class FakeTagReader(ITagReader):
    """In-memory tag reader. Tags come from `tags[path]` overrides plus sane defaults."""

    def __init__(self) -> None:
        self.tags: dict[str, dict[str, Any]] = {}
        self.art: dict[str, EmbeddedArt | None] = {}
        self.failing: set[str] = set()
        self.failing_writes: set[str] = set()
        self.read_calls: list[str] = []
        self.art_calls: list[str] = []
        self.written: dict[str, TagUpdate] = {}

    def is_supported(self, file_path: str) -> bool:
        return is_audio_file(file_path)

    async def read_file(self, file_path: str) -> TrackTags:
        self.read_calls.append(file_path)
        if file_path in self.failing:
            raise TagReadError(file_path, "corrupt header")
        stat = os.stat(file_path)
        values: dict[str, Any] = {
            "file_path": file_path,
            "file_hash": f"hash-{stat.st_size}",
            "modified_at": stat.st_mtime,
            "title": title_from_filename(file_path),
            "artist": "Unknown Artist",
            "duration": 180.0,
            "format": Path(file_path).suffix.lstrip(".").lower(),
        }
        values.update(self.tags.get(file_path, {}))
        return TrackTags(**values)

    async def extract_embedded_art(self, file_path: str) -> EmbeddedArt | None:
        self.art_calls.append(file_path)
        return self.art.get(file_path)

    async def write_tags(self, file_path: str, tags: TagUpdate) -> None:
        if file_path in self.failing_writes:
            raise TagWriteError(file_path, "read-only file")
        self.written[file_path] = tags


class FakeObserver:
    """Stand-in for a watchdog Observer: records what was scheduled, never spawns threads."""

    instances: list["FakeObserver"] = []

    def __init__(self) -> None:
        self.scheduled: list[tuple[Any, str, bool]] = []
        self.started = False
        self.stopped = False
        self.joined = False
        FakeObserver.instances.append(self)

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> None:
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout: float | None = None) -> None:
        self.joined = True

    @property
    def handler(self) -> Any:
        return self.scheduled[0][0]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with all localshelf state under tmp_path and fast watcher timings."""
    return Settings(
        storage=StorageSettings(data_path=tmp_path / "data"),
        watcher=WatcherSettings(
            debounce_seconds=0.05,
            write_stability_seconds=0,
            poll_interval_seconds=3600,
        ),
    )


@pytest.fixture
async def store(settings: Settings) -> AsyncIterator[CatalogStore]:
    """An initialized catalog store on a fresh SQLite file."""
    catalog = await CatalogStore(settings).init()
    yield catalog
    await catalog.close()


@pytest.fixture
def tag_reader() -> FakeTagReader:
    return FakeTagReader()


@pytest.fixture
def fake_observer_factory() -> Callable[[], FakeObserver]:
    FakeObserver.instances = []
    return FakeObserver


@pytest.fixture
def music_dir(tmp_path: Path) -> Path:
    path = tmp_path / "music"
    path.mkdir()
    return path


@pytest.fixture
def make_file() -> Callable[..., str]:
    """Create a file (and its parent dirs) and return its path as str."""

    def _make(path: Path, data: bytes = b"\x00" * 128) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)

    return _make


@pytest.fixture
def make_track() -> Callable[..., LocalTrack]:
    """Build a LocalTrack with test defaults."""

    def _make(file_path: str, title: str = "Song", **kwargs: Any) -> LocalTrack:
        kwargs.setdefault("artist", "Artist")
        kwargs.setdefault("modified_at", 1_700_000_000.5)
        kwargs.setdefault("duration", 200.0)
        kwargs.setdefault("format", "mp3")
        return LocalTrack(file_path=file_path, title=title, **kwargs)

    return _make
