"""Data transfer objects handed to the host application.

Hey future me - this is the ONLY place where a LocalTrack becomes a host-facing dict.
If the host needs a new field, add it here, not in the service.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from localshelf.domain.entities import LocalTrack

LOCAL_ID_PREFIX = "local-"
SOURCE_KEY = "localfiles"


def file_uri(path: str) -> str:
    """Turn a filesystem path into a file:// URI."""
    return Path(path).absolute().as_uri()


@dataclass
class LocalTrackDTO:
    """Host-facing representation of an indexed track."""

    id: str
    title: str
    artist: str | None
    album: str | None
    album_artist: str | None
    track_number: int | None
    disc_number: int | None
    year: int | None
    genre: str | None
    duration: float
    format: str | None
    bitrate: int | None
    file_path: str
    has_embedded_art: bool
    folder_art_path: str | None
    confidence: float = 1.0
    album_art: str | None = None
    include_art: bool = field(default=False, repr=False)

    @classmethod
    def from_track(
        cls,
        track: LocalTrack,
        confidence: float | None = None,
        album_art: str | None = None,
        include_art: bool = False,
    ) -> "LocalTrackDTO":
        """Build the DTO from a catalog record."""
        return cls(
            id=f"{LOCAL_ID_PREFIX}{track.id}",
            title=track.title,
            artist=track.artist,
            album=track.album,
            album_artist=track.album_artist,
            track_number=track.track_number,
            disc_number=track.disc_number,
            year=track.year,
            genre=track.genre,
            duration=track.duration,
            format=track.format,
            bitrate=track.bitrate,
            file_path=track.file_path,
            has_embedded_art=bool(track.has_embedded_art),
            folder_art_path=track.folder_art_path,
            confidence=confidence if confidence is not None else 1.0,
            album_art=album_art,
            include_art=include_art,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the host."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "album_artist": self.album_artist,
            "track_number": self.track_number,
            "disc_number": self.disc_number,
            "year": self.year,
            "genre": self.genre,
            "duration": self.duration,
            "format": self.format,
            "bitrate": self.bitrate,
            "file_path": self.file_path,
            "has_embedded_art": self.has_embedded_art,
            "folder_art_path": self.folder_art_path,
            "confidence": self.confidence,
            "sources": {
                SOURCE_KEY: {
                    "file_path": self.file_path,
                    "file_url": file_uri(self.file_path),
                    "confidence": self.confidence,
                    "duration": self.duration,
                }
            },
        }
        # Art is only attached on art-augmented calls (resolve), search stays cheap
        if self.include_art:
            data["album_art"] = self.album_art
        return data


__all__ = ["LOCAL_ID_PREFIX", "LocalTrackDTO", "SOURCE_KEY", "file_uri"]
