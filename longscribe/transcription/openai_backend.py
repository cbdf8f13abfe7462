"""OpenAI-compatible cloud transcription backend."""

import asyncio
import time
import logging
from pathlib import Path
from typing import Dict, Optional

import aiohttp

from .http_backend import HTTPTranscriptionBackend, result_from_payload
from ..models.backends import BackendKind, CloudStreamingConfig
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

# Only whisper-1 returns segment timestamps
VERBOSE_MODELS = ("whisper-1",)


class OpenAITranscribeBackend(HTTPTranscriptionBackend):
    """Uploads audio to ``POST {base_url}/audio/transcriptions``.

    Requests above ``max_file_size`` bytes are rejected by the service, so the
    orchestrator chunks such files regardless of their duration.
    """

    kind = BackendKind.CLOUD_STREAMING
    retry_statuses = frozenset({429})

    def __init__(self, config: CloudStreamingConfig):
        super().__init__(config)
        self.base_url = config.base_url.rstrip("/")
        self.max_file_size = config.max_file_size

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def test_connection(self) -> bool:
        try:
            status = await self._get_status(f"{self.base_url}/models")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"OpenAI API at {self.base_url} unreachable: {e!r}")
            return False
        if status != 200:
            logger.warning(f"OpenAI API returned status {status} for model listing")
        return status == 200

    async def transcribe(self, audio_path: Path, duration: Optional[float] = None) -> TranscriptionResult:
        audio_path = Path(audio_path)
        start_time = time.time()

        fields = {"model": self.config.model}
        if self.config.model in VERBOSE_MODELS:
            fields["response_format"] = "verbose_json"
            fields["timestamp_granularities[]"] = "segment"
        else:
            fields["response_format"] = "json"

        logger.debug(f"Uploading {audio_path.name} to {self.base_url}/audio/transcriptions "
                     f"(model={self.config.model})")
        payload = await self._post_audio(
            f"{self.base_url}/audio/transcriptions",
            audio_path,
            file_field="file",
            fields=fields,
            timeout=self.config.request_timeout,
        )
        return result_from_payload(payload, duration, time.time() - start_time)
