"""Error taxonomy shared by the orchestrator and every backend adapter."""

from enum import Enum
from typing import Optional, List


class ErrorDisposition(Enum):
    """How the orchestrator should treat a backend-native error."""
    SILENT = "silent"  # Legitimate "no speech" signal: empty but successful result
    RETRY = "retry"    # Transient, safe to retry
    FATAL = "fatal"


class TranscriptionError(Exception):
    """Base class for all transcription errors.

    Every error carries a human-readable ``description`` and, where the user can
    do something about it, a ``remediation_hint``. Rendering either is left to
    the caller.
    """

    kind = "TranscriptionError"
    default_description = "Transcription failed"
    default_hint: Optional[str] = None

    def __init__(self, description: Optional[str] = None, remediation_hint: Optional[str] = None):
        self.description = description or self.default_description
        self.remediation_hint = remediation_hint or self.default_hint
        super().__init__(self.description)


class AudioFileNotFoundError(TranscriptionError):
    kind = "FileNotFound"
    default_description = "Audio file not found"
    default_hint = "Check that the recording still exists on disk."

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Audio file not found: {self.path}")


class EngineNotConfiguredError(TranscriptionError):
    """Backend is enabled (or required) but lacks mandatory configuration."""

    kind = "EngineNotConfigured"
    default_hint = "Configure a transcription engine in the configuration file."

    def __init__(self, backend: str, missing: Optional[List[str]] = None):
        self.backend = backend
        self.missing = list(missing or [])
        description = f"Transcription engine '{backend}' is not configured"
        if self.missing:
            description += f" (missing: {', '.join(self.missing)})"
        super().__init__(description)


class BackendUnusableError(TranscriptionError):
    """Backend is configured but its capability or live check failed."""

    kind = "BackendUnusable"
    default_hint = "Check that the service is reachable and the credentials are valid."

    def __init__(self, backend: str, reason: str = ""):
        self.backend = backend
        self.reason = reason
        description = f"Transcription engine '{backend}' is not usable"
        if reason:
            description += f": {reason}"
        super().__init__(description)


class NoSpeechDetectedError(TranscriptionError):
    kind = "NoSpeechDetected"
    default_description = "No speech detected in the audio file"
    default_hint = "Make sure the recording contains audible speech."


class AudioExtractionFailedError(TranscriptionError):
    kind = "AudioExtractionFailed"
    default_description = "Failed to extract audio"
    default_hint = "The file may be corrupted or in an unsupported format."

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__(f"Failed to extract audio: {reason}" if reason else None)


class ChunkProcessingFailedError(TranscriptionError):
    kind = "ChunkProcessingFailed"

    def __init__(self, index: int, cause: BaseException):
        self.index = index
        self.cause = cause
        hint = getattr(cause, "remediation_hint", None)
        super().__init__(f"Failed to process chunk {index + 1}: {cause}", hint)


class FileTooLargeError(TranscriptionError):
    kind = "FileTooLarge"
    default_hint = "Reduce the recording length or choose a backend with a higher limit."

    def __init__(self, duration: float, max_duration: float):
        self.duration = duration
        self.max_duration = max_duration
        super().__init__(
            f"File too large for processing ({int(duration / 60)} minutes, "
            f"max {int(max_duration / 60)} minutes)"
        )


class TranscriptionTimeoutError(TranscriptionError):
    kind = "Timeout"
    default_hint = "Try again, or split the recording into shorter parts."

    def __init__(self, operation: str = "transcription", seconds: Optional[float] = None):
        self.operation = operation
        self.seconds = seconds
        description = f"{operation.capitalize()} timed out"
        if seconds is not None:
            description += f" after {seconds:g}s"
        super().__init__(description)


class AlreadyInProgressError(TranscriptionError):
    kind = "AlreadyInProgress"
    default_description = "Another transcription is already in progress"
    default_hint = "Wait for the current transcription to finish or cancel it."


class RecognitionFailedError(TranscriptionError):
    """Backend-specific failure, wrapped."""

    kind = "RecognitionFailed"

    def __init__(self, cause: BaseException, backend: Optional[str] = None):
        self.cause = cause
        self.backend = backend
        prefix = f"{backend} recognition failed" if backend else "Recognition failed"
        super().__init__(f"{prefix}: {cause}")


class AsyncJobFailedError(TranscriptionError):
    kind = "AsyncJobFailed"

    def __init__(self, job_id: str, reason: str = "Unknown error"):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Transcription job {job_id} failed: {reason}")


class TranscriptionCancelledError(TranscriptionError):
    kind = "Cancelled"
    default_description = "Transcription was cancelled"


class BackendHTTPError(Exception):
    """Non-success HTTP response from an HTTP-based backend."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body[:200]}")
