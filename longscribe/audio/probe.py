"""Audio file inspection: duration, validity and size."""

import asyncio
import json
import logging
import os
import wave
from pathlib import Path
from typing import Union

from ..errors import AudioExtractionFailedError
from .process import run_tool

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class AudioProbe:
    """Reads duration and validity of audio files.

    WAV files are read directly; every other container is inspected with
    ffprobe.
    """

    def __init__(self, ffprobe_binary: str = "ffprobe", timeout: float = 30.0):
        self.ffprobe_binary = ffprobe_binary
        self.timeout = timeout

    async def duration(self, path: PathLike) -> float:
        """Duration of the audio in seconds.

        Raises:
            AudioExtractionFailedError: The file is not readable audio
        """
        path = Path(path)
        if path.suffix.lower() == ".wav":
            try:
                return await asyncio.to_thread(self._wav_duration, path)
            except (wave.Error, EOFError, OSError) as e:
                logger.debug(f"Not a readable PCM WAV, falling back to ffprobe: {e}")
        return await self._ffprobe_duration(path)

    async def validate(self, path: PathLike) -> bool:
        """True if ``path`` is readable audio with a known duration."""
        try:
            await self.duration(path)
        except AudioExtractionFailedError as e:
            logger.warning(f"Audio validation failed for {path}: {e.reason}")
            return False
        return True

    def file_size(self, path: PathLike) -> int:
        return os.path.getsize(path)

    @staticmethod
    def _wav_duration(path: Path) -> float:
        with wave.open(str(path), 'rb') as wf:
            rate = wf.getframerate()
            if rate <= 0:
                raise wave.Error("invalid frame rate")
            return wf.getnframes() / float(rate)

    async def _ffprobe_duration(self, path: Path) -> float:
        cmd = [
            self.ffprobe_binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            returncode, stdout, stderr = await run_tool(cmd, self.timeout)
        except FileNotFoundError as e:
            raise AudioExtractionFailedError("ffprobe is required to read compressed audio; install ffmpeg") from e
        except asyncio.TimeoutError as e:
            raise AudioExtractionFailedError(f"ffprobe timed out after {self.timeout:g}s") from e

        if returncode != 0:
            raise AudioExtractionFailedError(f"ffprobe failed: {stderr.decode(errors='replace').strip()}")

        try:
            probe_data = json.loads(stdout.decode() or "{}")
        except json.JSONDecodeError as e:
            raise AudioExtractionFailedError(f"unreadable ffprobe output: {e}") from e

        streams = probe_data.get("streams", [])
        if not any(stream.get("codec_type") == "audio" for stream in streams):
            raise AudioExtractionFailedError("no audio stream found in file")

        try:
            duration = float(probe_data.get("format", {}).get("duration", 0))
        except (TypeError, ValueError):
            duration = 0.0
        if duration <= 0:
            raise AudioExtractionFailedError("audio duration is unknown")

        logger.debug(f"ffprobe duration for {path.name}: {duration:.2f}s")
        return duration
