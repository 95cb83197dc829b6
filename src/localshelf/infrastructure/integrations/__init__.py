"""External service clients."""

from localshelf.infrastructure.integrations.coverartarchive_client import (
    CoverArtArchiveClient,
)

__all__ = ["CoverArtArchiveClient"]
