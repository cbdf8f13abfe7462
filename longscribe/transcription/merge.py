"""Merging of per-chunk results into one transcript."""

from typing import List, Sequence, Tuple

from ..models.transcription import ChunkSpec, TranscriptSegment, TranscriptionResult


def merge_chunk_results(chunk_results: Sequence[Tuple[ChunkSpec, TranscriptionResult]],
                        processing_time: float = 0.0) -> TranscriptionResult:
    """Combine chunk results in chunk order.

    Segment times are expected in chunk-local time and are moved to recording
    time by the chunk start. Empty chunks contribute no text.
    """
    texts: List[str] = []
    segments: List[TranscriptSegment] = []

    for spec, result in sorted(chunk_results, key=lambda item: item[0].index):
        text = result.full_text.strip()
        if text:
            texts.append(text)
        segments.extend(segment.shifted(spec.start) for segment in result.segments)

    segments.sort(key=lambda segment: segment.start_time)
    return TranscriptionResult(
        full_text=" ".join(texts),
        segments=segments,
        processing_time=processing_time,
        chunk_count=len(chunk_results),
    )
