"""Extraction of time windows of a recording into temporary WAV files."""

import asyncio
import logging
import os
import tempfile
import wave
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Tuple, Union

from ..errors import AudioExtractionFailedError, TranscriptionTimeoutError
from .process import run_tool

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Output format for re-encoded chunks
TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2


class ChunkExtractor:
    """Cuts ``[start, end)`` out of a recording into a temporary WAV file.

    PCM WAV sources are sliced frame-exactly. Anything else is re-encoded to
    16 kHz mono WAV with ffmpeg, as are WAVs in another format when the
    caller asks for normalized audio. Extraction is bounded by ``timeout``;
    when it expires the encode is killed.
    """

    def __init__(self,
                 temp_dir: Optional[str] = None,
                 timeout: float = 120.0,
                 ffmpeg_binary: str = "ffmpeg"):
        self.temp_dir = temp_dir
        self.timeout = timeout
        self.ffmpeg_binary = ffmpeg_binary
        if temp_dir:
            Path(temp_dir).mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def extract(self,
                      source: PathLike,
                      start: float,
                      end: Optional[float] = None,
                      normalize: bool = False) -> AsyncIterator[Path]:
        """Yield a temporary WAV holding the requested window. The file is deleted on exit.

        Args:
            source: Recording to cut from
            start: Window start in seconds
            end: Window end in seconds, or None for the rest of the recording
            normalize: Always produce 16 kHz mono 16-bit PCM
        """
        source = Path(source)
        if start < 0 or (end is not None and end <= start):
            raise AudioExtractionFailedError(f"invalid window [{start}, {end})")

        fd, temp_name = tempfile.mkstemp(prefix="longscribe-chunk-", suffix=".wav", dir=self.temp_dir)
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            await self._write_window(source, start, end, temp_path, normalize)
            yield temp_path
        finally:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass

    def convert(self, source: PathLike, normalize: bool = False):
        """Copy a whole recording into a temporary WAV (async context manager)."""
        return self.extract(source, 0.0, None, normalize)

    def is_normalized(self, path: PathLike) -> bool:
        """True for a 16 kHz mono 16-bit PCM WAV file."""
        path = Path(path)
        if path.suffix.lower() != ".wav":
            return False
        return self._wav_format(path) == (TARGET_CHANNELS, TARGET_SAMPLE_RATE, TARGET_SAMPLE_WIDTH)

    async def _write_window(self,
                            source: Path,
                            start: float,
                            end: Optional[float],
                            target: Path,
                            normalize: bool = False) -> None:
        window = f"[{start:.2f}s, {'end' if end is None else f'{end:.2f}s'})"
        logger.debug(f"Extracting {window} of {source.name}")
        if normalize:
            sliceable = self.is_normalized(source)
        else:
            sliceable = source.suffix.lower() == ".wav" and self._wav_format(source) is not None
        if sliceable:
            try:
                await asyncio.wait_for(
                    asyncio.to_thread(self._slice_wav, source, start, end, target),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise TranscriptionTimeoutError("audio extraction", self.timeout) from e
            except (wave.Error, EOFError, OSError) as e:
                raise AudioExtractionFailedError(str(e)) from e
            return

        await self._ffmpeg_window(source, start, end, target)

    @staticmethod
    def _wav_format(path: Path) -> Optional[Tuple[int, int, int]]:
        """(channels, sample rate, sample width) of a PCM WAV, None if unreadable."""
        try:
            with wave.open(str(path), 'rb') as wf:
                return wf.getnchannels(), wf.getframerate(), wf.getsampwidth()
        except (wave.Error, EOFError, OSError):
            return None

    @staticmethod
    def _slice_wav(source: Path, start: float, end: Optional[float], target: Path) -> None:
        with wave.open(str(source), 'rb') as src:
            rate = src.getframerate()
            total = src.getnframes()
            first = min(int(round(start * rate)), total)
            last = total if end is None else min(int(round(end * rate)), total)
            src.setpos(first)
            frames = src.readframes(max(last - first, 0))

            with wave.open(str(target), 'wb') as dst:
                dst.setnchannels(src.getnchannels())
                dst.setsampwidth(src.getsampwidth())
                dst.setframerate(rate)
                dst.writeframes(frames)

    async def _ffmpeg_window(self, source: Path, start: float, end: Optional[float], target: Path) -> None:
        cmd = [self.ffmpeg_binary, "-y", "-v", "error", "-ss", f"{start:.3f}"]
        if end is not None:
            cmd += ["-t", f"{end - start:.3f}"]
        cmd += [
            "-i", str(source),
            "-vn",
            "-ac", str(TARGET_CHANNELS),
            "-ar", str(TARGET_SAMPLE_RATE),
            "-acodec", "pcm_s16le",
            str(target),
        ]
        try:
            returncode, _, stderr = await run_tool(cmd, self.timeout)
        except FileNotFoundError as e:
            raise AudioExtractionFailedError("ffmpeg is required to decode compressed audio; install ffmpeg") from e
        except asyncio.TimeoutError as e:
            raise TranscriptionTimeoutError("audio extraction", self.timeout) from e

        if returncode != 0:
            raise AudioExtractionFailedError(f"ffmpeg failed: {stderr.decode(errors='replace').strip()}")
