"""Application services for the local library."""

from localshelf.application.services.album_art_resolver import AlbumArtResolver, ArtCache
from localshelf.application.services.library_scanner import LibraryScanner
from localshelf.application.services.library_watcher import (
    AudioFileEventHandler,
    LibraryWatcher,
    PendingChangeQueue,
)
from localshelf.application.services.local_library_service import (
    LocalLibraryService,
    TagSaveResult,
)

__all__ = [
    "AlbumArtResolver",
    "ArtCache",
    "AudioFileEventHandler",
    "LibraryScanner",
    "LibraryWatcher",
    "LocalLibraryService",
    "PendingChangeQueue",
    "TagSaveResult",
]
