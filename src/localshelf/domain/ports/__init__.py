"""Domain ports (interfaces) for dependency inversion.

Hey future me - the services in application/ only ever talk to these interfaces.
The concrete implementations live in infrastructure/ (mutagen, httpx). Tests swap
in small fakes that implement the same ABCs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypedDict


@dataclass
class TrackTags:
    """Everything the tag reader knows about one audio file.

    Hey future me - file_hash is the cheap change fingerprint (md5 over the size plus the
    first 64 KiB), modified_at is st_mtime in seconds. title and artist are never empty:
    the reader falls back to the file name and "Unknown Artist".
    """

    file_path: str
    title: str
    file_hash: str | None = None
    modified_at: float | None = None
    artist: str | None = None
    album: str | None = None
    album_artist: str | None = None
    track_number: int | None = None
    disc_number: int | None = None
    year: int | None = None
    genre: str | None = None
    duration: float = 0.0
    format: str | None = None
    bitrate: int | None = None
    sample_rate: int | None = None
    has_embedded_art: bool = False


@dataclass(frozen=True)
class EmbeddedArt:
    """A picture embedded in an audio file."""

    data: bytes
    mime_type: str


class TagUpdate(TypedDict, total=False):
    """Fields a user may edit. Only provided keys are written."""

    title: str
    artist: str
    album: str
    track_number: int
    year: int


class ITagReader(ABC):
    """Reads (and writes) audio file tags."""

    @abstractmethod
    def is_supported(self, file_path: str) -> bool:
        """Check if the file's container format is handled."""
        pass

    @abstractmethod
    async def read_file(self, file_path: str) -> TrackTags:
        """Read tags and stream info.

        Raises:
            TagReadError: if the file cannot be parsed
            OSError: if the file cannot be accessed
        """
        pass

    @abstractmethod
    async def extract_embedded_art(self, file_path: str) -> EmbeddedArt | None:
        """Return the first embedded picture, or None if there is none."""
        pass

    @abstractmethod
    async def write_tags(self, file_path: str, tags: TagUpdate) -> None:
        """Write the given fields into the file.

        Raises:
            TagReadError: if the file cannot be opened for tagging
            OSError: if saving fails
        """
        pass


class ICoverArtClient(ABC):
    """Remote cover art registry keyed by release ID."""

    @abstractmethod
    async def fetch_front_cover(self, release_id: str, size: int = 250) -> bytes | None:
        """Download the front cover image.

        Returns:
            Image bytes, or None if the registry has no art for this release.

        Raises:
            httpx.HTTPError: on transport errors or unexpected status codes
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


__all__ = [
    "EmbeddedArt",
    "ICoverArtClient",
    "ITagReader",
    "TagUpdate",
    "TrackTags",
]
