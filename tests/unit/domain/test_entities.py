"""Tests for domain entities and the host-facing track DTO."""

from pathlib import Path

import pytest

from localshelf.domain.dtos import LocalTrackDTO, file_uri
from localshelf.domain.entities import (
    LocalTrack,
    ScanResult,
    TrackMatch,
)
from localshelf.domain.ports import TrackTags


def _track(**kwargs: object) -> LocalTrack:
    values: dict[str, object] = {
        "file_path": "/music/Radiohead/OK Computer/01 - Airbag.mp3",
        "title": "Airbag",
        "artist": "Radiohead",
        "album": "OK Computer",
        "track_number": 1,
        "duration": 284.5,
        "format": "mp3",
        "id": 7,
    }
    values.update(kwargs)
    return LocalTrack(**values)  # type: ignore[arg-type]


class TestTrackMatch:
    """Test confidence derivation from the raw score."""

    @pytest.mark.parametrize(
        ("score", "confidence"),
        [(120, 1.0), (95, 1.0), (40, 0.45), (60, 0.65), (0, 0.05)],
    )
    def test_confidence(self, score: int, confidence: float) -> None:
        match = TrackMatch(track=_track(), score=score)
        assert match.confidence == pytest.approx(confidence)

    def test_low_confidence_threshold(self) -> None:
        """A double substring match sits exactly on the threshold, not below it."""
        assert not TrackMatch(track=_track(), score=40).is_low_confidence
        assert TrackMatch(track=_track(), score=20).is_low_confidence


class TestLocalTrack:
    """Test LocalTrack construction helpers."""

    def test_from_tags_copies_fields(self) -> None:
        tags = TrackTags(
            file_path="/music/a.flac",
            title="A",
            artist="B",
            album="C",
            year=2001,
            has_embedded_art=True,
            modified_at=12.5,
        )
        track = LocalTrack.from_tags(tags, folder_art_path="/music/cover.jpg")
        assert track.file_path == "/music/a.flac"
        assert track.year == 2001
        assert track.has_embedded_art is True
        assert track.folder_art_path == "/music/cover.jpg"
        assert track.modified_at == 12.5
        assert track.id is None

    def test_normalized_fields(self) -> None:
        track = _track(title="Karma Police!", artist="RADIOHEAD", album=None)
        assert track.normalized_fields() == {
            "title_normalized": "karma police",
            "artist_normalized": "radiohead",
            "album_normalized": "",
        }


class TestScanResult:
    """Test scan summaries."""

    def test_has_changes(self) -> None:
        assert not ScanResult(folder_path="/m", skipped=10).has_changes
        assert ScanResult(folder_path="/m", added=1).has_changes
        assert ScanResult(folder_path="/m", updated=1).has_changes

    def test_to_dict(self) -> None:
        result = ScanResult(folder_path="/m", processed=3, added=1, skipped=1, errors=1, total=3)
        data = result.to_dict()
        assert data["folder"] == "/m"
        assert data["processed"] == 3
        assert data["aborted"] is False


class TestLocalTrackDTO:
    """Test the host-facing row format."""

    def test_id_and_sources(self) -> None:
        data = LocalTrackDTO.from_track(_track()).to_dict()

        assert data["id"] == "local-7"
        assert data["title"] == "Airbag"
        assert data["confidence"] == 1.0
        source = data["sources"]["localfiles"]
        assert source["file_path"] == "/music/Radiohead/OK Computer/01 - Airbag.mp3"
        assert source["file_url"].startswith("file://")
        assert source["duration"] == 284.5

    def test_album_art_only_when_requested(self) -> None:
        plain = LocalTrackDTO.from_track(_track()).to_dict()
        assert "album_art" not in plain

        with_art = LocalTrackDTO.from_track(
            _track(), confidence=0.45, album_art="file:///cache/a.jpg", include_art=True
        ).to_dict()
        assert with_art["album_art"] == "file:///cache/a.jpg"
        assert with_art["confidence"] == 0.45
        assert with_art["sources"]["localfiles"]["confidence"] == 0.45

    def test_file_uri_escapes_spaces(self, tmp_path: Path) -> None:
        uri = file_uri(str(tmp_path / "My Music" / "a b.mp3"))
        assert uri.startswith("file://")
        assert "My%20Music" in uri
