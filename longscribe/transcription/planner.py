"""Chunk planning for long recordings."""

import logging
from typing import List

from ..errors import FileTooLargeError
from ..models.transcription import ChunkSpec

logger = logging.getLogger(__name__)

# Overlap never exceeds this fraction of the effective chunk length
MAX_OVERLAP_FRACTION = 0.10


def _effective_sizes(max_chunk: float, overlap: float, safety_cap_chunk: float, min_advancement: float):
    effective_chunk = min(max_chunk, safety_cap_chunk)
    effective_overlap = min(overlap, MAX_OVERLAP_FRACTION * effective_chunk)
    # Advancing further than one chunk would leave a gap
    effective_advancement = min(min_advancement, effective_chunk)
    return effective_chunk, effective_overlap, effective_advancement


def planned_capacity(max_chunk: float,
                     overlap: float,
                     safety_cap_chunk: float,
                     min_advancement: float,
                     max_chunks: int) -> float:
    """Longest duration that ``max_chunks`` chunks can cover with these parameters."""
    effective_chunk, effective_overlap, effective_advancement = _effective_sizes(
        max_chunk, overlap, safety_cap_chunk, min_advancement)
    stride = max(effective_advancement, effective_chunk - effective_overlap)
    return effective_chunk + (max_chunks - 1) * stride


def plan_chunks(duration: float,
                max_chunk: float,
                overlap: float,
                safety_cap_chunk: float,
                min_advancement: float,
                max_chunks: int) -> List[ChunkSpec]:
    """Split ``[0, duration)`` into overlapping chunks.

    Each chunk starts at least ``min_advancement`` seconds after the previous
    one (capped at one chunk length), so the plan always terminates.
    Planning stops as soon as a chunk reaches the end of the recording.

    Args:
        duration: Recording duration in seconds
        max_chunk: Requested chunk length in seconds
        overlap: Requested overlap between consecutive chunks in seconds
        safety_cap_chunk: Hard ceiling on the chunk length
        min_advancement: Minimum forward progress between chunk starts
        max_chunks: Maximum number of chunks a recording may be split into

    Returns:
        Ordered list of ChunkSpec covering the whole recording

    Raises:
        ValueError: If any argument is out of range
        FileTooLargeError: If more than ``max_chunks`` chunks would be needed
    """
    if duration <= 0:
        raise ValueError(f"duration must be positive, got {duration}")
    if max_chunk <= 0 or safety_cap_chunk <= 0:
        raise ValueError("chunk length and safety cap must be positive")
    if overlap < 0:
        raise ValueError(f"overlap must not be negative, got {overlap}")
    if min_advancement <= 0:
        raise ValueError(f"min_advancement must be positive, got {min_advancement}")
    if max_chunks < 1:
        raise ValueError(f"max_chunks must be at least 1, got {max_chunks}")

    effective_chunk, effective_overlap, effective_advancement = _effective_sizes(
        max_chunk, overlap, safety_cap_chunk, min_advancement)

    chunks: List[ChunkSpec] = []
    start = 0.0
    while True:
        end = min(start + effective_chunk, duration)
        chunks.append(ChunkSpec(index=len(chunks), start=start, end=end))
        if len(chunks) > max_chunks:
            capacity = planned_capacity(max_chunk, overlap, safety_cap_chunk, min_advancement, max_chunks)
            raise FileTooLargeError(duration, capacity)
        if end >= duration:
            break
        next_start = max(start + effective_advancement, end - effective_overlap)
        if next_start >= duration or next_start <= start:
            break
        start = next_start

    logger.debug(f"Planned {len(chunks)} chunks for {duration:.1f}s "
                 f"(chunk={effective_chunk:.1f}s, overlap={effective_overlap:.1f}s)")
    return chunks
