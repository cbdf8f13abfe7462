"""Unit tests for data models and the error taxonomy."""

from datetime import datetime

import pytest

from longscribe.errors import (
    AudioExtractionFailedError,
    ChunkProcessingFailedError,
    EngineNotConfiguredError,
    FileTooLargeError,
    TranscriptionTimeoutError,
)
from longscribe.models.jobs import PendingJob
from longscribe.models.transcription import (
    ChunkSpec,
    OrchestratorState,
    TranscriptSegment,
    TranscriptionProgress,
    TranscriptionResult,
)


@pytest.mark.unit
class TestTranscriptionModels:

    def test_segment_shift(self):
        segment = TranscriptSegment("Speaker", "hi", 1.5, 2.0)

        assert segment.shifted(55.0) == TranscriptSegment("Speaker", "hi", 56.5, 57.0)

    def test_empty_result(self):
        result = TranscriptionResult.empty(processing_time=0.4)

        assert result.success
        assert result.is_empty
        assert not TranscriptionResult(full_text=" x ").is_empty

    def test_chunk_duration(self):
        assert ChunkSpec(2, 110.0, 125.0).duration == 15.0

    def test_progress_formatting(self):
        progress = TranscriptionProgress(current_chunk=1, total_chunks=4, processed_duration=55, total_duration=200)

        assert progress.percentage == 0.25
        assert progress.formatted_progress == "1/4 chunks (25%)"
        assert TranscriptionProgress(0, 0, 0, 0).percentage == 0.0

    def test_active_states(self):
        assert OrchestratorState.CHUNKED.is_active
        assert OrchestratorState.ASYNC_SUBMITTED.is_active
        assert not OrchestratorState.IDLE.is_active
        assert not OrchestratorState.COMPLETE.is_active

    def test_pending_job_dict_round_trip(self):
        job = PendingJob("operations/3", "cloud_batch", "memo.wav", "memo", datetime(2024, 5, 1, 8, 15, 30))

        data = job.to_dict()

        assert data["submitted_at"] == "2024-05-01T08:15:30"
        assert PendingJob.from_dict(data) == job


@pytest.mark.unit
class TestErrors:

    def test_descriptions_and_hints(self):
        error = EngineNotConfiguredError("cloud_batch", ["bucket_name"])

        assert error.description == "Transcription engine 'cloud_batch' is not configured (missing: bucket_name)"
        assert error.remediation_hint
        assert str(error) == error.description

    def test_file_too_large_in_minutes(self):
        assert FileTooLargeError(7200, 3600).description == "File too large for processing (120 minutes, max 60 minutes)"

    def test_timeout_description(self):
        assert TranscriptionTimeoutError("chunk 2", 180).description == "Chunk 2 timed out after 180s"

    def test_chunk_failure_keeps_cause_hint(self):
        cause = AudioExtractionFailedError("ffmpeg failed")
        error = ChunkProcessingFailedError(3, cause)

        assert error.description.startswith("Failed to process chunk 4")
        assert error.remediation_hint == cause.remediation_hint
