"""Self-hosted Whisper ASR web service backend."""

import asyncio
import time
import logging
from pathlib import Path
from typing import Optional

import aiohttp

from .http_backend import HTTPTranscriptionBackend, result_from_payload
from ..models.backends import BackendKind, NetworkServerConfig
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class WhisperServerBackend(HTTPTranscriptionBackend):
    """Sends audio to ``POST {server}/asr`` of a Whisper ASR web service."""

    kind = BackendKind.NETWORK_SERVER

    def __init__(self, config: NetworkServerConfig):
        super().__init__(config)
        self.base_url = config.base_url

    async def test_connection(self) -> bool:
        url = f"{self.base_url}/asr"
        try:
            status = await self._get_status(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Whisper server at {self.base_url} unreachable: {e!r}")
            return False
        # The endpoint only accepts POST; 405 still proves the service is there
        available = status in (200, 405)
        if not available:
            logger.warning(f"Whisper server returned status {status}")
        return available

    async def transcribe(self, audio_path: Path, duration: Optional[float] = None) -> TranscriptionResult:
        audio_path = Path(audio_path)
        start_time = time.time()
        params = {
            "output": "json",
            "task": "transcribe",
            "language": self.config.language,
            "word_timestamps": "false",
            "vad_filter": "false",
            "encode": "true",
        }
        logger.debug(f"Uploading {audio_path.name} to {self.base_url}/asr")
        payload = await self._post_audio(
            f"{self.base_url}/asr",
            audio_path,
            file_field="audio_file",
            params=params,
            timeout=self.config.request_timeout,
        )
        result = result_from_payload(payload, duration, time.time() - start_time)
        logger.debug(f"Whisper server returned {len(result.segments)} segments for {audio_path.name}")
        return result
