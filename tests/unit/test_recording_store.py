"""Unit tests for FileRecordingStore."""

from pathlib import Path

import pytest
from pubsub import pub

from longscribe.storage.recording_store import FileRecordingStore, RECORDING_RENAMED_TOPIC


@pytest.mark.unit
class TestFileRecordingStore:

    def test_initialization_creates_recordings_dir(self, temp_data_dir):
        store = FileRecordingStore(temp_data_dir)

        assert store.recordings_dir == Path(temp_data_dir) / "recordings"
        assert store.recordings_dir.is_dir()

    def test_resolve_reference_forms(self, temp_data_dir):
        store = FileRecordingStore(temp_data_dir)
        absolute = Path(temp_data_dir) / "elsewhere" / "talk.m4a"

        assert store.resolve("memo.wav") == store.recordings_dir / "memo.wav"
        assert store.resolve(str(absolute)) == absolute
        assert store.resolve(absolute.as_uri()) == absolute

    def test_display_name(self, temp_data_dir):
        store = FileRecordingStore(temp_data_dir)

        assert store.display_name("Team sync.wav") == "Team sync"

    def test_rename_moves_file_and_announces_it(self, temp_data_dir):
        store = FileRecordingStore(temp_data_dir)
        original = store.recordings_dir / "memo.wav"
        original.write_bytes(b"RIFF")
        events = []

        def on_renamed(old_ref, new_ref, new_name):
            events.append((old_ref, new_ref, new_name))

        pub.subscribe(on_renamed, RECORDING_RENAMED_TOPIC)
        new_ref = store.rename(str(original), "standup")

        target = store.recordings_dir / "standup.wav"
        assert new_ref == str(target)
        assert target.exists() and not original.exists()
        assert events == [(str(original), str(target), "standup")]

    def test_rename_missing_recording(self, temp_data_dir):
        store = FileRecordingStore(temp_data_dir)

        with pytest.raises(FileNotFoundError):
            store.rename("nope.wav", "other")

    def test_rename_refuses_to_overwrite(self, temp_data_dir):
        store = FileRecordingStore(temp_data_dir)
        (store.recordings_dir / "a.wav").write_bytes(b"a")
        (store.recordings_dir / "b.wav").write_bytes(b"b")

        with pytest.raises(FileExistsError):
            store.rename("a.wav", "b")
