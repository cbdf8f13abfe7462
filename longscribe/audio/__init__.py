"""Audio inspection and extraction."""

from .probe import AudioProbe
from .extractor import ChunkExtractor

__all__ = ["AudioProbe", "ChunkExtractor"]
