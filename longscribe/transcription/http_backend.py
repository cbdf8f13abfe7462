"""Shared plumbing for backends that talk to an HTTP transcription service."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from .base import AbstractTranscriptionBackend
from ..errors import BackendHTTPError, ErrorDisposition
from ..models.transcription import TranscriptSegment, TranscriptionResult

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "Speaker"


class HTTPTranscriptionBackend(AbstractTranscriptionBackend):
    """Multipart upload of one audio file per request."""

    # Status codes retried in addition to 5xx
    retry_statuses = frozenset()

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _post_audio(self,
                          url: str,
                          audio_path: Path,
                          file_field: str,
                          fields: Optional[Dict[str, str]] = None,
                          params: Optional[Dict[str, str]] = None,
                          timeout: float = 600.0) -> Dict[str, Any]:
        """Upload ``audio_path`` as multipart form data and return the decoded JSON body."""
        data = aiohttp.FormData()
        for key, value in (fields or {}).items():
            data.add_field(key, value)

        with open(audio_path, 'rb') as audio_file:
            data.add_field(file_field, audio_file, filename=audio_path.name,
                           content_type=_content_type(audio_path))
            client_timeout = aiohttp.ClientTimeout(total=timeout)
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(url, headers=self._headers(), data=data, params=params) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.debug(f"{self.name} returned HTTP {response.status}: {error_text[:500]}")
                        raise BackendHTTPError(response.status, error_text)
                    return await response.json(content_type=None)

    async def _get_status(self, url: str, timeout: float = 10.0) -> int:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url, headers=self._headers()) as response:
                return response.status

    def classify_error(self, error: BaseException) -> ErrorDisposition:
        if isinstance(error, BackendHTTPError):
            if error.status >= 500 or error.status in self.retry_statuses:
                return ErrorDisposition.RETRY
            return ErrorDisposition.FATAL
        if isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError, asyncio.TimeoutError)):
            return ErrorDisposition.RETRY
        return ErrorDisposition.FATAL


def _content_type(audio_path: Path) -> str:
    return {
        ".wav": "audio/wav",
        ".mp3": "audio/mpeg",
        ".m4a": "audio/mp4",
        ".mp4": "audio/mp4",
        ".flac": "audio/flac",
        ".ogg": "audio/ogg",
        ".webm": "audio/webm",
    }.get(audio_path.suffix.lower(), "application/octet-stream")


def result_from_payload(payload: Dict[str, Any], duration: Optional[float], processing_time: float) -> TranscriptionResult:
    """Build a result from a Whisper-style ``{"text", "segments"}`` payload.

    Without segments the whole text becomes one segment spanning ``duration``.
    """
    text = (payload.get("text") or "").strip()
    segments: List[TranscriptSegment] = []
    for item in payload.get("segments") or []:
        segment_text = (item.get("text") or "").strip()
        if not segment_text:
            continue
        start = float(item.get("start") or 0.0)
        end = float(item.get("end") or start)
        segments.append(TranscriptSegment(
            speaker=item.get("speaker") or DEFAULT_SPEAKER,
            text=segment_text,
            start_time=start,
            end_time=max(start, end),
        ))

    if not text and segments:
        text = " ".join(segment.text for segment in segments)
    if text and not segments:
        segments = [TranscriptSegment(DEFAULT_SPEAKER, text, 0.0, float(duration or 0.0))]

    if not text:
        return TranscriptionResult.empty(processing_time)
    return TranscriptionResult(full_text=text, segments=segments, processing_time=processing_time)
