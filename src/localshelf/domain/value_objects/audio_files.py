"""File naming rules for the local library.

Hey future me - this is the single source of truth for "what counts as an audio
file" and "where does folder artwork live". Scanner, watcher and tag reader all
import from here.
"""

import re
from pathlib import Path

# Fixed allow-list of container formats the tag reader handles.
AUDIO_EXTENSIONS = frozenset({".mp3", ".m4a", ".flac", ".wav", ".aac"})

# Checked IN THIS ORDER, first existing file wins. Lowercase names first, then the
# capitalized variants some rippers write.
FOLDER_ART_FILENAMES: tuple[str, ...] = (
    "cover.jpg",
    "cover.jpeg",
    "cover.png",
    "folder.jpg",
    "folder.jpeg",
    "folder.png",
    "album.jpg",
    "album.jpeg",
    "album.png",
    "front.jpg",
    "front.jpeg",
    "front.png",
    "Cover.jpg",
    "Cover.jpeg",
    "Cover.png",
    "Folder.jpg",
    "Folder.jpeg",
    "Folder.png",
)

# "01 - ", "01. ", "1_", "03-" ...
_TRACK_PREFIX_RE = re.compile(r"^\d+[\s._-]+")


def is_audio_file(path: str | Path) -> bool:
    """Check if path has a supported audio extension (case-insensitive)."""
    return Path(path).suffix.lower() in AUDIO_EXTENSIONS


def is_hidden(name: str) -> bool:
    """Dotfiles and dot-directories are never indexed."""
    return name.startswith(".")


def title_from_filename(path: str | Path) -> str:
    """Derive a display title from a file name.

    Used when a file has no title tag. Strips the extension and a leading
    track number prefix.

    Examples:
        "01 - Paranoid Android.mp3" -> "Paranoid Android"
        "track.flac" -> "track"
        "07.mp3" -> "07"
    """
    stem = Path(path).stem
    return _TRACK_PREFIX_RE.sub("", stem).strip() or "Unknown Title"
