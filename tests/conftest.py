"""Pytest configuration and fixtures for longscribe tests."""

import pytest
import tempfile
import logging
import wave
from pathlib import Path

import numpy as np
from pubsub import pub

from longscribe.audio import AudioProbe, ChunkExtractor
from longscribe.models.backends import BackendKind
from longscribe.models.policy import TranscriptionPolicy
from longscribe.storage import FileRecordingStore, InMemoryLedgerStore, JobLedger
from longscribe.transcription.orchestrator import TranscriptionOrchestrator


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "integration: tests wiring several components together")


@pytest.fixture(autouse=True)
def reset_pubsub():
    """Drop listeners and topic definitions between tests."""
    yield
    pub.unsubAll()
    manager = pub.getDefaultTopicMgr()
    for root in ("transcription", "recording"):
        if manager.getTopic(root, okIfNone=True) is not None:
            manager.delTopic(root)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def make_wav(temp_data_dir):
    """Factory writing a 16-bit WAV file (mono by default) of the given length."""
    def _make_wav(name: str = "recording.wav",
                  seconds: float = 1.0,
                  sample_rate: int = 8000,
                  pattern: str = "sine",
                  channels: int = 1) -> str:
        samples = int(round(seconds * sample_rate))
        if pattern == "sine":
            t = np.linspace(0, seconds, samples, False)
            wave_data = 0.5 * np.sin(2 * np.pi * 440 * t)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")
        audio_data = (wave_data * 32767).astype(np.int16)
        # Same signal on every channel, interleaved
        audio_data = np.repeat(audio_data, channels)

        file_path = Path(temp_data_dir) / name
        with wave.open(str(file_path), 'wb') as wf:
            wf.setnchannels(channels)
            wf.setsampwidth(2)  # 16-bit
            wf.setframerate(sample_rate)
            wf.writeframes(audio_data.tobytes())
        return str(file_path)

    return _make_wav


@pytest.fixture
def fast_policy():
    """Policy with no cooldowns and short polling intervals."""
    return TranscriptionPolicy(
        single_shot_threshold=60,
        chunk_duration=60,
        safety_cap_chunk=60,
        chunk_overlap=5,
        chunk_cooldown=0,
        retry_backoff=0,
        max_retries=2,
        single_shot_timeout=5,
        chunk_timeout=5,
        extraction_timeout=5,
        connection_check_timeout=1,
        async_wait_timeout=5,
        async_poll_interval=0.01,
        background_poll_interval=0.01,
        max_poll_backoff=0.05,
    )


@pytest.fixture
def make_orchestrator(temp_data_dir, fast_policy):
    """Factory building an orchestrator over the given backends."""
    def _make(backends, policy=None, ledger=None, default_backend=BackendKind.RECOGNIZER):
        return TranscriptionOrchestrator(
            backends=backends,
            ledger=ledger if ledger is not None else JobLedger(InMemoryLedgerStore()),
            recording_store=FileRecordingStore(temp_data_dir),
            audio_probe=AudioProbe(),
            extractor=ChunkExtractor(temp_dir=str(Path(temp_data_dir) / "tmp"), timeout=5),
            policy=policy or fast_policy,
            default_backend=default_backend,
        )

    return _make
