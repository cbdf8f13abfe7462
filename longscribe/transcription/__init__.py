"""Transcription module for longscribe."""

from .base import AbstractTranscriptionBackend, AsyncJobBackend
from .google_backend import GoogleSpeechBackend
from .google_batch_backend import GoogleBatchBackend
from .whisper_server_backend import WhisperServerBackend
from .openai_backend import OpenAITranscribeBackend
from .local_model_backend import LocalModelBackend
from .orchestrator import TranscriptionOrchestrator
from .planner import plan_chunks, planned_capacity
from .merge import merge_chunk_results
from .poller import BackgroundPoller
from .publisher import CompletionPublisher, ProgressPublisher
from .supervisor import CancellationToken, run_supervised, cancellable_sleep

__all__ = [
    "AbstractTranscriptionBackend",
    "AsyncJobBackend",
    "GoogleSpeechBackend",
    "GoogleBatchBackend",
    "WhisperServerBackend",
    "OpenAITranscribeBackend",
    "LocalModelBackend",
    "TranscriptionOrchestrator",
    "plan_chunks",
    "planned_capacity",
    "merge_chunk_results",
    "BackgroundPoller",
    "CompletionPublisher",
    "ProgressPublisher",
    "CancellationToken",
    "run_supervised",
    "cancellable_sleep",
]
