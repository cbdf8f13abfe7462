"""Data models for the longscribe package."""

from .transcription import (
    TranscriptSegment,
    TranscriptionResult,
    ChunkSpec,
    TranscriptionProgress,
    OrchestratorState,
)
from .jobs import JobStatus, JobStatusReport, PendingJob
from .backends import (
    BackendKind,
    BackendConfiguration,
    RecognizerConfig,
    CloudBatchConfig,
    NetworkServerConfig,
    CloudStreamingConfig,
    OnDeviceModelConfig,
    BackendConfigurations,
)
from .policy import TranscriptionPolicy

__all__ = [
    "TranscriptSegment",
    "TranscriptionResult",
    "ChunkSpec",
    "TranscriptionProgress",
    "OrchestratorState",
    # Asynchronous jobs
    "JobStatus",
    "JobStatusReport",
    "PendingJob",
    # Configuration
    "BackendKind",
    "BackendConfiguration",
    "RecognizerConfig",
    "CloudBatchConfig",
    "NetworkServerConfig",
    "CloudStreamingConfig",
    "OnDeviceModelConfig",
    "BackendConfigurations",
    "TranscriptionPolicy",
]
