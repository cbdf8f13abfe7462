"""On-device Whisper model backend (faster-whisper)."""

import asyncio
import gc
import os
import time
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from .base import AbstractTranscriptionBackend
from ..errors import ErrorDisposition
from ..models.backends import BackendKind, OnDeviceModelConfig
from ..models.transcription import TranscriptSegment, TranscriptionResult

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "Speaker"


def load_whisper_model(config: OnDeviceModelConfig) -> Any:
    """Load a faster-whisper model from ``config.model_path``."""
    from faster_whisper import WhisperModel

    logger.info(f"Loading faster-whisper model: {config.model_path} "
                f"(device={config.device}, compute_type={config.compute_type})")
    model = WhisperModel(config.model_path, device=config.device, compute_type=config.compute_type)
    logger.info("Model loaded")
    return model


def cuda_available(device: str) -> bool:
    if device == "cpu":
        return False
    if device == "cuda":
        return True
    import ctranslate2
    return ctranslate2.get_cuda_device_count() > 0


class LocalModelBackend(AbstractTranscriptionBackend):
    """Runs a Whisper model in-process.

    The model is loaded once per session in ``prepare`` and dropped in
    ``release``. Between chunks ``relieve_pressure`` collects garbage and
    empties the CUDA cache so long recordings do not exhaust GPU memory.
    """

    kind = BackendKind.ON_DEVICE_MODEL
    gpu_backed = True
    default_chunk_duration = 30.0

    def __init__(self,
                 config: OnDeviceModelConfig,
                 model_factory: Optional[Callable[[OnDeviceModelConfig], Any]] = None,
                 cuda_probe: Optional[Callable[[str], bool]] = None):
        super().__init__(config)
        self.model_factory = model_factory or load_whisper_model
        self.cuda_probe = cuda_probe or cuda_available
        self._model = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def check_capability(self) -> bool:
        return os.path.exists(self.config.model_path)

    async def prepare(self) -> None:
        async with self._lock:
            if self._model is None:
                self._model = await asyncio.to_thread(self.model_factory, self.config)

    async def release(self) -> None:
        async with self._lock:
            if self._model is None:
                return
            self._model = None
        await self.relieve_pressure()
        logger.info("Model unloaded")

    async def relieve_pressure(self) -> None:
        gc.collect()
        if self.cuda_probe(self.config.device):
            import torch
            torch.cuda.empty_cache()
            logger.debug("CUDA cache cleared")

    async def transcribe(self, audio_path: Path, duration: Optional[float] = None) -> TranscriptionResult:
        if self._model is None:
            await self.prepare()
        return await asyncio.to_thread(self._transcribe, self._model, Path(audio_path))

    def _transcribe(self, model: Any, audio_path: Path) -> TranscriptionResult:
        start_time = time.time()
        segments_iter, info = model.transcribe(
            str(audio_path),
            language=self.config.language,
            beam_size=self.config.beam_size,
        )

        segments = []
        # Segments are produced lazily while iterating
        for seg in segments_iter:
            text = seg.text.strip()
            if not text:
                continue
            segments.append(TranscriptSegment(
                speaker=DEFAULT_SPEAKER,
                text=text,
                start_time=float(seg.start),
                end_time=float(seg.end),
            ))

        processing_time = time.time() - start_time
        if not segments:
            return TranscriptionResult.empty(processing_time)

        logger.debug(f"Local model transcribed {audio_path.name}: {len(segments)} segments "
                     f"(language={getattr(info, 'language', None)}, {processing_time:.2f}s)")
        return TranscriptionResult(
            full_text=" ".join(segment.text for segment in segments),
            segments=segments,
            processing_time=processing_time,
        )

    def classify_error(self, error: BaseException) -> ErrorDisposition:
        # Out-of-memory on the GPU can succeed after the cache is emptied
        if isinstance(error, MemoryError) or "out of memory" in str(error).lower():
            return ErrorDisposition.RETRY
        return ErrorDisposition.FATAL
