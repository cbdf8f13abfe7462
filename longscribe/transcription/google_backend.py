"""Google Speech-to-Text synchronous recognition backend."""

import asyncio
import os
import time
import logging
from pathlib import Path
from typing import List, Optional

from .base import AbstractTranscriptionBackend
from ..errors import ErrorDisposition
from ..models.backends import BackendKind, RecognizerConfig
from ..models.transcription import TranscriptSegment, TranscriptionResult

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "Speaker"

# Errors worth retrying: the request never produced an answer
TRANSIENT_ERRORS = (
    gax_exceptions.ServiceUnavailable,
    gax_exceptions.DeadlineExceeded,
    gax_exceptions.ResourceExhausted,
    gax_exceptions.InternalServerError,
)


def _seconds(offset) -> float:
    """Word offsets arrive as timedelta (proto-plus) or Duration (raw protobuf)."""
    if offset is None:
        return 0.0
    if hasattr(offset, "total_seconds"):
        return offset.total_seconds()
    return offset.seconds + offset.nanos / 1e9


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text ``recognize`` API backend.

    Synchronous recognition accepts about one minute of audio per request, so
    recordings longer than 55 seconds are chunked by the orchestrator.
    """

    kind = BackendKind.RECOGNIZER
    accepted_suffixes = (".wav", ".flac")
    normalized_audio = True
    default_single_shot_threshold = 55.0
    default_chunk_duration = 55.0

    def __init__(self, config: RecognizerConfig, client=None):
        """Initialize Google Speech backend.

        Args:
            config: Recognizer configuration (credentials, language, model)
            client: Pre-built SpeechClient, mainly for tests
        """
        super().__init__(config)
        self.client = client
        self.project_id = None
        self.service_name = "Google Speech-to-Text"
        self.recognition_config = speech.RecognitionConfig(
            language_code=config.language_code,
            use_enhanced=config.use_enhanced,
            enable_automatic_punctuation=config.enable_automatic_punctuation,
            # Encoding and sample rate are read from the WAV/FLAC header
            enable_word_time_offsets=True,
            model=config.model,
        )

    def check_capability(self) -> bool:
        if self.client is not None:
            return True
        return os.path.isfile(self.config.credentials_path)

    def _get_client(self) -> speech.SpeechClient:
        if self.client is None:
            # Load credentials directly from JSON file
            logger.info(f"Loading Google credentials from: {self.config.credentials_path}")
            credentials = service_account.Credentials.from_service_account_file(self.config.credentials_path)
            self.client = speech.SpeechClient(credentials=credentials)
            self.project_id = credentials.project_id
            logger.info(f"Using Google Cloud project: {self.project_id}")
        return self.client

    async def test_connection(self) -> bool:
        # Building the client validates the credentials file
        try:
            await asyncio.to_thread(self._get_client)
        except (ValueError, OSError, gax_exceptions.GoogleAPIError) as e:
            logger.warning(f"Google Speech client unavailable: {e}")
            return False
        return True

    async def transcribe(self, audio_path: Path, duration: Optional[float] = None) -> TranscriptionResult:
        return await asyncio.to_thread(self._recognize, Path(audio_path), duration)

    def _recognize(self, audio_path: Path, duration: Optional[float]) -> TranscriptionResult:
        start_time = time.time()
        client = self._get_client()

        content = audio_path.read_bytes()
        logger.debug(f"Recognizing {audio_path.name}: {len(content)} bytes; "
                     f"Language: {self.config.language_code}; Model: {self.config.model}")

        audio = speech.RecognitionAudio(content=content)
        response = client.recognize(config=self.recognition_config, audio=audio)
        processing_time = time.time() - start_time

        if not response.results:
            logger.debug(f"--- NO SPEECH DETECTED in {audio_path.name} ---")
            return TranscriptionResult.empty(processing_time)

        segments = self._segments_from_results(response.results, duration)
        full_text = " ".join(segment.text for segment in segments)
        logger.debug(f"✅ TRANSCRIPTION SUCCESS: {len(segments)} segments "
                     f"(processing_time: {processing_time:.3f}s)")
        return TranscriptionResult(full_text=full_text, segments=segments, processing_time=processing_time)

    @staticmethod
    def _segments_from_results(results, duration: Optional[float]) -> List[TranscriptSegment]:
        segments = []
        previous_end = 0.0
        for recognition_result in results:
            if not recognition_result.alternatives:
                continue
            alternative = recognition_result.alternatives[0]
            text = alternative.transcript.strip()
            if not text:
                continue

            if alternative.words:
                start = _seconds(alternative.words[0].start_time)
                end = _seconds(alternative.words[-1].end_time)
            else:
                start = previous_end
                end = _seconds(getattr(recognition_result, "result_end_time", None)) or (duration or start)

            segments.append(TranscriptSegment(
                speaker=DEFAULT_SPEAKER,
                text=text,
                start_time=start,
                end_time=max(end, start),
            ))
            previous_end = max(end, start)
        return segments

    def classify_error(self, error: BaseException) -> ErrorDisposition:
        if isinstance(error, TRANSIENT_ERRORS):
            return ErrorDisposition.RETRY
        return ErrorDisposition.FATAL
