"""Unit tests for AudioProbe and ChunkExtractor."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from longscribe.audio.extractor import ChunkExtractor
from longscribe.audio.probe import AudioProbe
from longscribe.errors import AudioExtractionFailedError, TranscriptionTimeoutError

from fakes import fake_ffmpeg, wav_format, wav_seconds


@pytest.mark.unit
class TestAudioProbe:

    def test_wav_duration(self, make_wav):
        path = make_wav(seconds=2.5)

        assert asyncio.run(AudioProbe().duration(path)) == pytest.approx(2.5)
        assert asyncio.run(AudioProbe().validate(path)) is True

    def test_empty_wav_has_zero_duration(self, make_wav):
        path = make_wav(seconds=0)

        assert asyncio.run(AudioProbe().duration(path)) == 0.0

    def test_garbage_file_is_not_valid_audio(self, temp_data_dir):
        path = Path(temp_data_dir) / "broken.wav"
        path.write_bytes(b"definitely not audio")

        with patch("longscribe.audio.probe.run_tool", AsyncMock(return_value=(1, b"", b"Invalid data"))):
            assert asyncio.run(AudioProbe().validate(path)) is False

    def test_compressed_audio_uses_ffprobe(self, temp_data_dir):
        path = Path(temp_data_dir) / "talk.m4a"
        path.write_bytes(b"\x00" * 16)
        output = json.dumps({
            "streams": [{"codec_type": "audio", "sample_rate": "44100"}],
            "format": {"duration": "754.2"},
        }).encode()

        run_tool = AsyncMock(return_value=(0, output, b""))
        with patch("longscribe.audio.probe.run_tool", run_tool):
            duration = asyncio.run(AudioProbe(timeout=7).duration(path))

        assert duration == pytest.approx(754.2)
        cmd, timeout = run_tool.call_args.args
        assert cmd[0] == "ffprobe" and cmd[-1] == str(path)
        assert timeout == 7

    def test_ffprobe_without_audio_stream(self, temp_data_dir):
        path = Path(temp_data_dir) / "video.mp4"
        path.write_bytes(b"\x00")
        output = json.dumps({"streams": [{"codec_type": "video"}], "format": {"duration": "3"}}).encode()

        with patch("longscribe.audio.probe.run_tool", AsyncMock(return_value=(0, output, b""))):
            with pytest.raises(AudioExtractionFailedError, match="no audio stream"):
                asyncio.run(AudioProbe().duration(path))

    def test_missing_ffprobe_binary(self, temp_data_dir):
        path = Path(temp_data_dir) / "talk.mp3"
        path.write_bytes(b"\x00")

        with patch("longscribe.audio.probe.run_tool", AsyncMock(side_effect=FileNotFoundError("ffprobe"))):
            with pytest.raises(AudioExtractionFailedError, match="install ffmpeg"):
                asyncio.run(AudioProbe().duration(path))

    def test_file_size(self, make_wav):
        path = make_wav(seconds=1.0, sample_rate=8000)

        # 44-byte header plus 16-bit mono samples
        assert AudioProbe().file_size(path) == 44 + 8000 * 2


@pytest.mark.unit
class TestChunkExtractor:

    def test_wav_window_extracted_and_deleted(self, make_wav, temp_data_dir):
        source = make_wav(seconds=10.0)
        extractor = ChunkExtractor(temp_dir=str(Path(temp_data_dir) / "tmp"))

        async def scenario():
            async with extractor.extract(source, 2.0, 5.5) as chunk_path:
                assert chunk_path.exists()
                assert chunk_path.parent == Path(temp_data_dir) / "tmp"
                return chunk_path, wav_seconds(chunk_path)

        chunk_path, seconds = asyncio.run(scenario())
        assert seconds == pytest.approx(3.5)
        assert not chunk_path.exists()

    def test_window_past_end_is_clamped(self, make_wav):
        source = make_wav(seconds=4.0)

        async def scenario():
            async with ChunkExtractor().extract(source, 3.0, 60.0) as chunk_path:
                return wav_seconds(chunk_path)

        assert asyncio.run(scenario()) == pytest.approx(1.0)

    def test_temp_file_deleted_when_consumer_fails(self, make_wav):
        source = make_wav(seconds=2.0)
        seen = []

        async def scenario():
            async with ChunkExtractor().extract(source, 0.0, 1.0) as chunk_path:
                seen.append(chunk_path)
                raise RuntimeError("backend exploded")

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())
        assert seen and not seen[0].exists()

    def test_convert_copies_whole_recording(self, make_wav):
        source = make_wav(seconds=3.0)

        async def scenario():
            async with ChunkExtractor().convert(source) as converted:
                return wav_seconds(converted)

        assert asyncio.run(scenario()) == pytest.approx(3.0)

    def test_normalized_extraction_reencodes_stereo_wav(self, make_wav):
        source = make_wav("interview.wav", seconds=4.0, sample_rate=44100, channels=2)
        commands = []

        async def recording_ffmpeg(cmd, timeout):
            commands.append(cmd)
            return await fake_ffmpeg(cmd, timeout)

        async def scenario():
            async with ChunkExtractor().extract(source, 1.0, 3.0, normalize=True) as chunk_path:
                return wav_format(chunk_path), wav_seconds(chunk_path)

        with patch("longscribe.audio.extractor.run_tool", recording_ffmpeg):
            audio_format, seconds = asyncio.run(scenario())

        assert audio_format == (1, 16000, 2)
        assert seconds == pytest.approx(2.0)
        cmd = commands[0]
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-i") + 1] == source

    def test_normalized_extraction_slices_mono_16k_wav(self, make_wav):
        source = make_wav(seconds=3.0, sample_rate=16000)
        run_tool = AsyncMock()

        async def scenario():
            async with ChunkExtractor().extract(source, 0.0, 1.5, normalize=True) as chunk_path:
                return wav_seconds(chunk_path)

        with patch("longscribe.audio.extractor.run_tool", run_tool):
            assert asyncio.run(scenario()) == pytest.approx(1.5)
        run_tool.assert_not_called()

    def test_stereo_wav_sliced_as_is_without_normalization(self, make_wav):
        source = make_wav(seconds=2.0, sample_rate=44100, channels=2)

        async def scenario():
            async with ChunkExtractor().extract(source, 0.0, 1.0) as chunk_path:
                return wav_format(chunk_path)

        assert asyncio.run(scenario()) == (2, 44100, 2)

    def test_is_normalized(self, make_wav, temp_data_dir):
        extractor = ChunkExtractor()
        flac = Path(temp_data_dir) / "memo.flac"
        flac.write_bytes(b"fLaC")

        assert extractor.is_normalized(make_wav("a.wav", sample_rate=16000))
        assert not extractor.is_normalized(make_wav("b.wav", sample_rate=8000))
        assert not extractor.is_normalized(make_wav("c.wav", sample_rate=16000, channels=2))
        assert not extractor.is_normalized(flac)

    def test_invalid_window(self, make_wav):
        source = make_wav(seconds=2.0)

        async def scenario():
            async with ChunkExtractor().extract(source, 1.5, 1.0):
                pass

        with pytest.raises(AudioExtractionFailedError):
            asyncio.run(scenario())

    def test_compressed_source_reencoded_with_ffmpeg(self, temp_data_dir):
        source = Path(temp_data_dir) / "talk.mp3"
        source.write_bytes(b"\x00")
        run_tool = AsyncMock(return_value=(0, b"", b""))

        async def scenario():
            async with ChunkExtractor(timeout=9).extract(source, 60.0, 120.0) as chunk_path:
                return chunk_path

        with patch("longscribe.audio.extractor.run_tool", run_tool):
            chunk_path = asyncio.run(scenario())

        cmd, timeout = run_tool.call_args.args
        assert cmd[:2] == ["ffmpeg", "-y"]
        assert cmd[cmd.index("-ss") + 1] == "60.000"
        assert cmd[cmd.index("-t") + 1] == "60.000"
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[-1] == str(chunk_path)
        assert timeout == 9
        assert not chunk_path.exists()

    def test_ffmpeg_failure(self, temp_data_dir):
        source = Path(temp_data_dir) / "talk.mp3"
        source.write_bytes(b"\x00")

        async def scenario():
            async with ChunkExtractor().extract(source, 0.0, 10.0):
                pass

        with patch("longscribe.audio.extractor.run_tool", AsyncMock(return_value=(1, b"", b"moov atom not found"))):
            with pytest.raises(AudioExtractionFailedError, match="moov atom"):
                asyncio.run(scenario())

    def test_ffmpeg_timeout(self, temp_data_dir):
        source = Path(temp_data_dir) / "talk.mp3"
        source.write_bytes(b"\x00")

        async def scenario():
            async with ChunkExtractor(timeout=3).extract(source, 0.0, 10.0):
                pass

        with patch("longscribe.audio.extractor.run_tool", AsyncMock(side_effect=asyncio.TimeoutError())):
            with pytest.raises(TranscriptionTimeoutError) as exc_info:
                asyncio.run(scenario())
        assert exc_info.value.seconds == 3
