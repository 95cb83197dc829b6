"""Audio tag reading and writing."""

from localshelf.infrastructure.tagging.mutagen_reader import (
    MutagenTagReader,
    compute_quick_hash,
)

__all__ = ["MutagenTagReader", "compute_quick_hash"]
