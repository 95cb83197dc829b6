"""Infrastructure persistence layer."""

from .catalog_store import UNSET, CatalogStore
from .database import Database
from .models import Base, LocalTrackModel, WatchFolderModel
from .repositories import LocalTrackRepository, WatchFolderRepository

__all__ = [
    "Base",
    "CatalogStore",
    "Database",
    "LocalTrackModel",
    "LocalTrackRepository",
    "UNSET",
    "WatchFolderModel",
    "WatchFolderRepository",
]
