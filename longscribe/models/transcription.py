"""Transcription-related data models."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class TranscriptSegment:
    """A timestamped, speaker-attributed span of transcript text."""
    speaker: str
    text: str
    start_time: float  # Seconds
    end_time: float    # Seconds

    def shifted(self, offset: float) -> "TranscriptSegment":
        """Return a copy moved by ``offset`` seconds (chunk-local to recording-global time)."""
        return replace(self, start_time=self.start_time + offset, end_time=self.end_time + offset)


@dataclass
class TranscriptionResult:
    """Normalized result of a transcription, regardless of backend."""
    full_text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    processing_time: float = 0.0
    chunk_count: int = 1
    success: bool = True
    error: Optional[Exception] = None

    @classmethod
    def empty(cls, processing_time: float = 0.0) -> "TranscriptionResult":
        """Empty but successful result, as produced by a silent chunk."""
        return cls(full_text="", segments=[], processing_time=processing_time)

    @property
    def is_empty(self) -> bool:
        return not self.full_text.strip()


@dataclass(frozen=True)
class ChunkSpec:
    """A [start, end) time window of a recording."""
    index: int
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class TranscriptionProgress:
    """Progress of a chunked transcription."""
    current_chunk: int
    total_chunks: int
    processed_duration: float
    total_duration: float
    current_text: str = ""
    is_complete: bool = False
    error: Optional[Exception] = None

    @property
    def percentage(self) -> float:
        if self.total_chunks <= 0:
            return 0.0
        return self.current_chunk / self.total_chunks

    @property
    def formatted_progress(self) -> str:
        return f"{self.current_chunk}/{self.total_chunks} chunks ({int(self.percentage * 100)}%)"


class OrchestratorState(Enum):
    """States of the transcription orchestrator."""
    IDLE = "idle"
    VALIDATING = "validating"
    SINGLE_SHOT = "single_shot"
    CHUNKED = "chunked"
    ASYNC_SUBMITTED = "async_submitted"
    MERGING = "merging"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in _ACTIVE_STATES


_ACTIVE_STATES = frozenset({
    OrchestratorState.VALIDATING,
    OrchestratorState.SINGLE_SHOT,
    OrchestratorState.CHUNKED,
    OrchestratorState.ASYNC_SUBMITTED,
    OrchestratorState.MERGING,
})
