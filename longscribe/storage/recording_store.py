"""Resolution of recording references to audio files."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import unquote, urlparse

from pubsub import pub

logger = logging.getLogger(__name__)

RECORDING_RENAMED_TOPIC = "recording.renamed"


class RecordingStore(ABC):
    """Maps opaque recording references to files on disk."""

    @abstractmethod
    def resolve(self, ref: str) -> Path:
        """Return the audio file path for ``ref``. The file may not exist."""
        pass

    @abstractmethod
    def display_name(self, ref: str) -> str:
        """Return a human-readable name for ``ref``."""
        pass


class FileRecordingStore(RecordingStore):
    """Recordings stored as plain files under ``<data_dir>/recordings``.

    A reference is either a bare file name (relative to the recordings
    directory), an absolute path, or a ``file://`` URI.
    """

    def __init__(self, data_dir: str = "./data"):
        self.data_dir = Path(data_dir)
        self.recordings_dir = self.data_dir / "recordings"
        self.recordings_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"FileRecordingStore initialized with recordings dir: {self.recordings_dir}")

    def resolve(self, ref: str) -> Path:
        ref = str(ref)
        if ref.startswith("file://"):
            return Path(unquote(urlparse(ref).path))
        path = Path(ref).expanduser()
        if path.is_absolute():
            return path
        if path.exists():
            return path.absolute()
        return self.recordings_dir / path

    def display_name(self, ref: str) -> str:
        return self.resolve(ref).stem

    def rename(self, ref: str, new_name: str) -> str:
        """Rename a recording, keeping its extension, and announce the new reference.

        Args:
            ref: Current recording reference
            new_name: New display name (without extension)

        Returns:
            The new recording reference
        """
        source = self.resolve(ref)
        if not source.exists():
            raise FileNotFoundError(f"Recording not found: {source}")

        target = source.with_name(f"{new_name}{source.suffix}")
        if target.exists():
            raise FileExistsError(f"Recording already exists: {target}")

        source.rename(target)
        new_ref = str(target)
        logger.info(f"Renamed recording {source.name} -> {target.name}")

        pub.sendMessage(RECORDING_RENAMED_TOPIC, old_ref=str(ref), new_ref=new_ref, new_name=new_name)
        return new_ref
