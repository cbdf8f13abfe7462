"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple
import logging

from ..errors import ErrorDisposition
from ..models.backends import BackendConfiguration, BackendKind
from ..models.jobs import JobStatusReport
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends.

    Subclasses set ``kind`` and the class-level limits, and implement
    ``transcribe``. Sessions that span several chunks are bracketed by
    ``prepare``/``release``; ``relieve_pressure`` runs between chunks.
    """

    kind: BackendKind
    is_async = False
    gpu_backed = False
    # Container suffixes the backend ingests directly. None means any.
    accepted_suffixes: Optional[Tuple[str, ...]] = None
    # Backend only reads 16 kHz mono 16-bit PCM WAV
    normalized_audio = False
    default_single_shot_threshold: Optional[float] = None
    default_chunk_duration: Optional[float] = None
    max_duration: Optional[float] = None
    max_file_size: Optional[int] = None

    def __init__(self, config: BackendConfiguration):
        self.config = config

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def single_shot_threshold(self) -> Optional[float]:
        """Backend-specific threshold, or None to use the policy default."""
        return self.config.single_shot_threshold or self.default_single_shot_threshold

    @property
    def chunk_duration(self) -> Optional[float]:
        """Backend-specific chunk length, or None to use the policy default."""
        return self.config.chunk_duration or self.default_chunk_duration

    def is_configured(self) -> bool:
        return self.config.is_configured

    def is_usable(self) -> bool:
        """Configured and locally capable (credentials, model files...)."""
        return self.is_configured() and self.check_capability()

    def check_capability(self) -> bool:
        return True

    def accepts(self, path: Path) -> bool:
        if self.accepted_suffixes is None:
            return True
        return Path(path).suffix.lower() in self.accepted_suffixes

    async def test_connection(self) -> bool:
        """Live connectivity check. Backends without a remote side are always reachable."""
        return True

    @abstractmethod
    async def transcribe(self, audio_path: Path, duration: Optional[float] = None) -> TranscriptionResult:
        """Transcribe one audio file.

        Args:
            audio_path: File to transcribe (a whole recording or one chunk)
            duration: Known duration of the file in seconds, if any

        Returns:
            TranscriptionResult with segment times relative to the file start
        """
        pass

    def classify_error(self, error: BaseException) -> ErrorDisposition:
        """Map a backend-native error to how the orchestrator should treat it."""
        return ErrorDisposition.FATAL

    async def prepare(self) -> None:
        """Acquire session resources before a multi-chunk run."""
        pass

    async def release(self) -> None:
        """Free session resources after a multi-chunk run."""
        pass

    async def relieve_pressure(self) -> None:
        """Free transient memory between chunks."""
        pass

    async def cancel(self) -> None:
        """Abort any in-flight request."""
        pass

    async def close(self) -> None:
        """Release long-lived clients on shutdown."""
        pass


class AsyncJobBackend(AbstractTranscriptionBackend):
    """Backend that transcribes through server-side jobs polled to completion."""

    is_async = True

    async def transcribe(self, audio_path: Path, duration: Optional[float] = None) -> TranscriptionResult:
        raise NotImplementedError(f"{self.name} transcribes through submitted jobs only")

    @abstractmethod
    async def submit_job(self, audio_path: Path) -> str:
        """Submit a recording and return the job id."""
        pass

    @abstractmethod
    async def poll_job(self, job_id: str) -> JobStatusReport:
        """Report the current status of a job."""
        pass

    @abstractmethod
    async def fetch_job(self, job_id: str) -> TranscriptionResult:
        """Retrieve the result of a completed job."""
        pass
