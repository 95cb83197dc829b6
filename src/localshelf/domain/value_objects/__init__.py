"""Value objects and pure helpers shared across layers."""

import re

from localshelf.domain.value_objects.audio_files import (
    AUDIO_EXTENSIONS,
    FOLDER_ART_FILENAMES,
    is_audio_file,
    is_hidden,
    title_from_filename,
)

# Anything that is not a word character or whitespace is punctuation for matching purposes.
# Hey future me - \w is Unicode-aware in Python, so "Björk" stays "björk" instead of "bjrk".
_PUNCTUATION_RE = re.compile(r"[^\w\s]")

LIKE_ESCAPE_CHAR = "\\"


# Yo, this is THE normalization used for every matching column (title/artist/album_normalized)
# AND for every query. Both sides MUST go through this exact function or search breaks silently.
# Order matters: lowercase, trim, then strip punctuation ("  AC/DC! " -> "acdc").
def normalize_text(value: str | None) -> str:
    """Lowercase, trim and strip punctuation for matching.

    Args:
        value: Raw text (None allowed)

    Returns:
        Normalized text, "" for None/empty input
    """
    if not value:
        return ""
    return _PUNCTUATION_RE.sub("", value.lower().strip())


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so value matches literally.

    Use together with ``.like(pattern, escape=LIKE_ESCAPE_CHAR)``.
    """
    return (
        value.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", LIKE_ESCAPE_CHAR + "%")
        .replace("_", LIKE_ESCAPE_CHAR + "_")
    )


def contains_pattern(value: str) -> str:
    """Build an escaped ``%value%`` LIKE pattern."""
    return f"%{escape_like(value)}%"


__all__ = [
    "AUDIO_EXTENSIONS",
    "FOLDER_ART_FILENAMES",
    "LIKE_ESCAPE_CHAR",
    "contains_pattern",
    "escape_like",
    "is_audio_file",
    "is_hidden",
    "normalize_text",
    "title_from_filename",
]
