"""localshelf - local audio library indexing, watching and cover art resolution."""

__version__ = "0.3.0"
