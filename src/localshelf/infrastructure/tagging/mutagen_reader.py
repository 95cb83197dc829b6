"""Mutagen-backed tag reader.

Hey future me - this is the ONLY module that knows about mutagen. It reads tags +
stream info, pulls embedded pictures and writes simple tag edits back. All mutagen
work is blocking file I/O, so the public coroutines push it to a worker thread with
asyncio.to_thread and the event loop stays responsive.

Tag formats handled:
- ID3 (MP3, WAV with ID3 chunk)
- Vorbis comments (FLAC)
- MP4 atoms (M4A)
- ADTS AAC has no tag container: stream info only, title from file name
"""

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from mutagen import MutagenError
from mutagen.id3 import ID3, TALB, TDRC, TIT2, TPE1, TRCK

from localshelf.domain.exceptions import TagReadError, TagWriteError
from localshelf.domain.ports import EmbeddedArt, ITagReader, TagUpdate, TrackTags
from localshelf.domain.value_objects import is_audio_file, title_from_filename

logger = logging.getLogger(__name__)

# Bytes read from the start of a file for the change fingerprint
QUICK_HASH_BYTES = 64 * 1024

UNKNOWN_ARTIST = "Unknown Artist"

# Try common tag mappings, first key present wins per field
TAG_MAPPINGS: dict[str, tuple[str, ...]] = {
    "title": ("TIT2", "title", "©nam"),
    "artist": ("TPE1", "artist", "©ART"),
    "album": ("TALB", "album", "©alb"),
    "album_artist": ("TPE2", "albumartist", "album artist", "aART"),
    "track_number": ("TRCK", "tracknumber", "trkn"),
    "disc_number": ("TPOS", "discnumber", "disk"),
    "year": ("TDRC", "TYER", "date", "year", "©day"),
    "genre": ("TCON", "genre", "©gen"),
}

# Keys for the "easy" mutagen interface (EasyID3 / EasyMP4 / Vorbis)
EASY_TAG_KEYS = {
    "title": "title",
    "artist": "artist",
    "album": "album",
    "track_number": "tracknumber",
    "year": "date",
}

# Frame classes for raw ID3 tags (WAV), same keys as above
ID3_FRAMES = {
    "title": TIT2,
    "artist": TPE1,
    "album": TALB,
    "track_number": TRCK,
    "year": TDRC,
}


def compute_quick_hash(file_path: str, file_size: int) -> str:
    """Change fingerprint: md5 over the declared size and the first 64 KiB.

    Hey future me - this is a CHEAP proxy for "content changed", not a real content hash.
    Full-file hashing would read gigabytes on every scan.
    """
    digest = hashlib.md5(str(file_size).encode())
    with open(file_path, "rb") as f:
        digest.update(f.read(QUICK_HASH_BYTES))
    return digest.hexdigest()


def _first_value(value: Any) -> Any:
    """Unwrap mutagen's list/frame wrappers into a plain value."""
    if isinstance(value, list):
        value = value[0] if value else None
    if hasattr(value, "text"):
        text = value.text
        value = text[0] if isinstance(text, list) and text else text
    return value


def _parse_number(value: Any) -> int | None:
    """Parse "3", "3/12", (3, 12) into 3."""
    if isinstance(value, tuple):
        value = value[0] if value else None
    if isinstance(value, str) and "/" in value:
        value = value.split("/")[0]
    try:
        number = int(str(value).strip())
    except (ValueError, TypeError):
        return None
    return number if number > 0 else None


def _parse_year(value: Any) -> int | None:
    """Parse "1997", "1997-05-21", ID3TimeStamp into 1997."""
    if value is None:
        return None
    try:
        return int(str(value).strip()[:4])
    except (ValueError, TypeError):
        return None


class MutagenTagReader(ITagReader):
    """ITagReader implementation on top of mutagen."""

    def is_supported(self, file_path: str) -> bool:
        """Check the fixed extension allow-list."""
        return is_audio_file(file_path)

    async def read_file(self, file_path: str) -> TrackTags:
        """Read tags and stream info off the event loop."""
        return await asyncio.to_thread(self._read_file_sync, file_path)

    async def extract_embedded_art(self, file_path: str) -> EmbeddedArt | None:
        """Return the first embedded picture, or None."""
        try:
            return await asyncio.to_thread(self._extract_art_sync, file_path)
        except (MutagenError, OSError) as e:
            logger.warning(f"Error extracting embedded art from {file_path}: {e}")
            return None

    async def write_tags(self, file_path: str, tags: TagUpdate) -> None:
        """Write simple tag edits into the file."""
        await asyncio.to_thread(self._write_tags_sync, file_path, tags)

    # =========================================================================
    # SYNC WORKERS (run in thread pool)
    # =========================================================================

    def _open(self, file_path: str, easy: bool = False) -> Any:
        try:
            audio = MutagenFile(file_path, easy=easy)
        except MutagenError as e:
            raise TagReadError(file_path, str(e)) from e
        if audio is None:
            raise TagReadError(file_path, "unrecognized audio format")
        return audio

    def _read_file_sync(self, file_path: str) -> TrackTags:
        stat = os.stat(file_path)
        audio = self._open(file_path)

        raw: dict[str, Any] = {}
        if audio.tags:
            raw = self._extract_tags(audio.tags)

        info = audio.info
        duration = float(getattr(info, "length", 0.0) or 0.0)
        bitrate = getattr(info, "bitrate", None) or None
        sample_rate = getattr(info, "sample_rate", None) or None

        return TrackTags(
            file_path=file_path,
            file_hash=compute_quick_hash(file_path, stat.st_size),
            modified_at=stat.st_mtime,
            title=raw.get("title") or title_from_filename(file_path),
            artist=raw.get("artist") or UNKNOWN_ARTIST,
            album=raw.get("album") or None,
            album_artist=raw.get("album_artist") or None,
            track_number=raw.get("track_number"),
            disc_number=raw.get("disc_number"),
            year=raw.get("year"),
            genre=raw.get("genre") or None,
            duration=duration,
            format=Path(file_path).suffix.lstrip(".").lower(),
            bitrate=bitrate,
            sample_rate=sample_rate,
            has_embedded_art=self._has_pictures(audio),
        )

    def _extract_tags(self, audio_tags: Any) -> dict[str, Any]:
        """Map ID3 / Vorbis / MP4 keys onto our field names."""
        tags: dict[str, Any] = {}
        for field_name, keys in TAG_MAPPINGS.items():
            for key in keys:
                try:
                    if key not in audio_tags:
                        continue
                    value = _first_value(audio_tags[key])
                except (KeyError, ValueError):
                    # Vorbis comment dicts reject some keys outright
                    continue
                if field_name in ("track_number", "disc_number"):
                    value = _parse_number(value)
                elif field_name == "year":
                    value = _parse_year(value)
                elif value is not None:
                    value = str(value).strip()
                if value:
                    tags[field_name] = value
                    break
        return tags

    def _has_pictures(self, audio: Any) -> bool:
        if getattr(audio, "pictures", None):  # FLAC
            return True
        tags = audio.tags
        if not tags:
            return False
        if hasattr(tags, "getall"):  # ID3
            return bool(tags.getall("APIC"))
        try:
            return "covr" in tags and bool(tags["covr"])  # MP4
        except (KeyError, ValueError):
            return False

    def _extract_art_sync(self, file_path: str) -> EmbeddedArt | None:
        try:
            audio = self._open(file_path)
        except TagReadError as e:
            logger.warning(e.message)
            return None

        pictures = getattr(audio, "pictures", None)
        if pictures:
            return EmbeddedArt(data=pictures[0].data, mime_type=pictures[0].mime or "image/jpeg")

        tags = audio.tags
        if not tags:
            return None

        if hasattr(tags, "getall"):
            frames = tags.getall("APIC")
            if frames:
                return EmbeddedArt(data=frames[0].data, mime_type=frames[0].mime or "image/jpeg")
            return None

        try:
            covers = tags["covr"] if "covr" in tags else None
        except (KeyError, ValueError):
            covers = None
        if covers:
            from mutagen.mp4 import MP4Cover

            cover = covers[0]
            mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
            return EmbeddedArt(data=bytes(cover), mime_type=mime)
        return None

    # Hey future me - the "easy" interface covers MP3/M4A/FLAC with one set of keys. WAV has no
    # easy variant, its ID3 chunk needs real frames, hence the ID3_FRAMES branch. ADTS AAC can't
    # carry tags at all, add_tags() raises and that surfaces as TagWriteError.
    def _write_tags_sync(self, file_path: str, tags: TagUpdate) -> None:
        try:
            audio = self._open(file_path, easy=True)
        except TagReadError as e:
            raise TagWriteError(file_path, e.reason) from e

        written: list[str] = []
        try:
            if audio.tags is None:
                audio.add_tags()

            is_raw_id3 = isinstance(audio.tags, ID3)
            for field_name, easy_key in EASY_TAG_KEYS.items():
                if field_name not in tags:
                    continue
                value = str(tags[field_name])  # type: ignore[literal-required]
                if is_raw_id3:
                    frame_cls = ID3_FRAMES[field_name]
                    audio.tags.setall(frame_cls.__name__, [frame_cls(encoding=3, text=[value])])
                else:
                    audio.tags[easy_key] = [value]
                written.append(field_name)

            audio.save()
        except (MutagenError, ValueError, KeyError) as e:
            raise TagWriteError(file_path, str(e)) from e

        logger.debug(f"Wrote tags {written} to {file_path}")
