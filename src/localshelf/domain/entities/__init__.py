"""Domain entities for the local library."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from localshelf.domain.value_objects import normalize_text


class ChangeType(str, Enum):
    """Kind of filesystem change reported by the watcher."""

    ADD = "add"
    CHANGE = "change"
    REMOVE = "remove"


class ProcessOutcome(str, Enum):
    """Outcome of indexing a single file during a scan."""

    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"


class ChangeAction(str, Enum):
    """Action reported to the host in a "library changed" batch.

    Hey future me - the first four are per-file results from the watcher. The rest are
    summary events the facade emits after bulk operations (scans, folder removal, polls).
    """

    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"
    ERROR = "error"
    SCAN_COMPLETE = "scan-complete"
    RESCAN_COMPLETE = "rescan-complete"
    FOLDER_REMOVED = "folder-removed"
    POLL_COMPLETE = "poll-complete"
    TAGS_UPDATED = "tags-updated"


# Yo future me, LocalTrack is the ONE canonical record for an indexed file. Everything that
# comes from outside (tag reader output, DB rows) gets converted into this at a single boundary
# (LocalTrack.from_tags / the repository's _to_entity), so nobody downstream has to guess key names.
# The *_normalized fields are owned by the catalog store: whatever you put there gets overwritten
# on write. Don't compute them yourself - call LocalTrack.normalized_fields() if you need them.
@dataclass
class LocalTrack:
    """A single indexed audio file."""

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
    folder_art_path: str | None = None
    musicbrainz_art_url: str | None = None
    musicbrainz_track_id: str | None = None
    musicbrainz_artist_id: str | None = None
    musicbrainz_release_id: str | None = None
    enriched_at: datetime | None = None
    indexed_at: datetime | None = None
    title_normalized: str = ""
    artist_normalized: str = ""
    album_normalized: str = ""
    id: int | None = None

    @classmethod
    def from_tags(cls, tags: Any, folder_art_path: str | None = None) -> "LocalTrack":
        """Build a track record from tag reader output (a TrackTags)."""
        return cls(
            file_path=tags.file_path,
            file_hash=tags.file_hash,
            modified_at=tags.modified_at,
            title=tags.title,
            artist=tags.artist,
            album=tags.album,
            album_artist=tags.album_artist,
            track_number=tags.track_number,
            disc_number=tags.disc_number,
            year=tags.year,
            genre=tags.genre,
            duration=tags.duration,
            format=tags.format,
            bitrate=tags.bitrate,
            sample_rate=tags.sample_rate,
            has_embedded_art=tags.has_embedded_art,
            folder_art_path=folder_art_path,
        )

    def normalized_fields(self) -> dict[str, str]:
        """Deterministic normalized shadows of title/artist/album."""
        return {
            "title_normalized": normalize_text(self.title),
            "artist_normalized": normalize_text(self.artist),
            "album_normalized": normalize_text(self.album),
        }


@dataclass
class WatchFolder:
    """A monitored directory."""

    path: str
    enabled: bool = True
    last_scan_at: datetime | None = None
    track_count: int = 0
    id: int | None = None


# Hey future me - PendingChange is in-memory ONLY. It never touches the DB. The watcher
# collects these in a PendingChangeQueue and drains them as one batch after the quiet window.
@dataclass(frozen=True)
class PendingChange:
    """A filesystem change waiting for the debounce window to elapse."""

    change_type: ChangeType
    file_path: str
    queued_at: float = field(default_factory=time.time)


@dataclass
class ChangeResult:
    """One entry of a "library changed" notification."""

    action: ChangeAction
    file_path: str | None = None
    track: LocalTrack | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanResult:
    """Summary of a folder scan."""

    folder_path: str
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    aborted: bool = False

    @property
    def has_changes(self) -> bool:
        """True if the scan added or updated at least one track."""
        return self.added > 0 or self.updated > 0

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for notifications."""
        return {
            "folder": self.folder_path,
            "processed": self.processed,
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "total": self.total,
            "aborted": self.aborted,
        }


# Listen up, confidence is the number callers actually care about! score is the raw weighted sum
# (40 exact artist, 40 exact title, 15 exact album, +20 each for substring hits). Anything below
# LOW_CONFIDENCE_THRESHOLD is a "maybe" - a pure double-substring match lands exactly on it.
LOW_CONFIDENCE_THRESHOLD = 0.45


@dataclass
class TrackMatch:
    """A catalog track matched against externally-sourced metadata."""

    track: LocalTrack
    score: int

    @property
    def confidence(self) -> float:
        """Trust in the match, in [0, 1]."""
        return min((self.score + 5) / 100, 1.0)

    @property
    def is_low_confidence(self) -> bool:
        """True when the match should not be trusted without review."""
        return self.confidence < LOW_CONFIDENCE_THRESHOLD


@dataclass
class LibraryStats:
    """Catalog totals."""

    total_tracks: int
    total_folders: int
    last_scan_at: datetime | None = None


__all__ = [
    "ChangeAction",
    "ChangeResult",
    "ChangeType",
    "LOW_CONFIDENCE_THRESHOLD",
    "LibraryStats",
    "LocalTrack",
    "PendingChange",
    "ProcessOutcome",
    "ScanResult",
    "TrackMatch",
    "WatchFolder",
]
