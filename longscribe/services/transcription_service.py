"""Transcription service that wires configuration to the orchestrator."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..audio import AudioProbe, ChunkExtractor
from ..config import LongscribeConfig
from ..models.backends import BackendConfigurations, BackendKind
from ..models.transcription import TranscriptionResult
from ..storage import FileRecordingStore, JobLedger, JsonLedgerStore
from ..transcription import (
    AbstractTranscriptionBackend,
    GoogleBatchBackend,
    GoogleSpeechBackend,
    LocalModelBackend,
    OpenAITranscribeBackend,
    TranscriptionOrchestrator,
    WhisperServerBackend,
)
from ..transcription.poller import ResolvedJob

logger = logging.getLogger(__name__)

BACKEND_CLASSES = {
    BackendKind.RECOGNIZER: GoogleSpeechBackend,
    BackendKind.CLOUD_BATCH: GoogleBatchBackend,
    BackendKind.NETWORK_SERVER: WhisperServerBackend,
    BackendKind.CLOUD_STREAMING: OpenAITranscribeBackend,
    BackendKind.ON_DEVICE_MODEL: LocalModelBackend,
}


def build_backends(configs: BackendConfigurations) -> List[AbstractTranscriptionBackend]:
    """Create one adapter per backend kind from typed configuration.

    Adapters are created even for disabled backends so that switching to
    them reports a precise reason instead of an unknown backend.
    """
    backends = []
    for kind, backend_class in BACKEND_CLASSES.items():
        config = configs.for_kind(kind)
        backends.append(backend_class(config))
        state = "configured" if config.is_configured else "not configured"
        logger.debug(f"Backend {kind.value}: {state}")
    return backends


class TranscriptionService:
    """Service that owns the orchestrator and its collaborators."""

    def __init__(self,
                 config: LongscribeConfig,
                 backends: Optional[List[AbstractTranscriptionBackend]] = None):
        """Initialize transcription service.

        Args:
            config: Application configuration
            backends: Adapters to use instead of the configured ones
        """
        self.config = config
        self.policy = config.get_policy()

        data_dir = config.get_data_directory()
        self.recording_store = FileRecordingStore(data_dir)
        self.ledger = JobLedger(JsonLedgerStore(config.get_ledger_path()))

        temp_dir = config.get('storage.temp_directory')
        self.orchestrator = TranscriptionOrchestrator(
            backends=backends if backends is not None else build_backends(config.get_backend_configurations()),
            ledger=self.ledger,
            recording_store=self.recording_store,
            audio_probe=AudioProbe(),
            extractor=ChunkExtractor(temp_dir=temp_dir, timeout=self.policy.extraction_timeout),
            policy=self.policy,
            default_backend=config.get_default_backend(),
        )
        logger.info(f"TranscriptionService initialized (data_dir={data_dir}, "
                    f"pending jobs={len(self.ledger)})")

    async def start(self) -> int:
        """Resume polling for jobs persisted by a previous run."""
        return await self.orchestrator.resume()

    async def transcribe(self, recording: Union[str, Path],
                         backend: Optional[Union[BackendKind, str]] = None) -> TranscriptionResult:
        return await self.orchestrator.transcribe(str(recording), backend)

    async def check_jobs(self) -> List[ResolvedJob]:
        return await self.orchestrator.check_completed_async_jobs()

    def pending_jobs(self):
        return self.ledger.jobs()

    def backend_status(self) -> Dict[str, str]:
        """Configuration state of every backend, for display."""
        status = {}
        for kind, backend in self.orchestrator.backends.items():
            if not backend.is_configured():
                missing = backend.config.missing_fields()
                status[kind.value] = "disabled" if not backend.config.enabled else f"missing {', '.join(missing)}"
            elif not backend.is_usable():
                status[kind.value] = "unusable"
            else:
                status[kind.value] = "ready"
        return status

    async def shutdown(self) -> None:
        logger.info("Shutting down transcription service...")
        await self.orchestrator.shutdown()
