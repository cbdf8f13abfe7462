"""Services layer for longscribe application logic."""

from .transcription_service import TranscriptionService, build_backends

__all__ = [
    "TranscriptionService",
    "build_backends",
]
