"""Unit tests for asynchronous-job transcriptions through the orchestrator."""

import asyncio
import shutil
from datetime import datetime
from pathlib import Path

import pytest
from pubsub import pub

from longscribe.errors import (
    AsyncJobFailedError,
    FileTooLargeError,
    TranscriptionCancelledError,
    TranscriptionTimeoutError,
)
from longscribe.models.backends import BackendKind
from longscribe.models.jobs import JobStatus, PendingJob
from longscribe.models.transcription import OrchestratorState
from longscribe.storage.job_ledger import InMemoryLedgerStore, JobLedger, JsonLedgerStore
from longscribe.transcription.publisher import COMPLETED_TOPIC

from fakes import FakeBackend, FakeJobBackend, TransientError, make_config


@pytest.fixture
def completions():
    received = []

    def on_completed(result, job=None):
        received.append((result, job))

    pub.subscribe(on_completed, COMPLETED_TOPIC)
    yield received


@pytest.fixture
def recording(make_wav, temp_data_dir):
    """A recording stored under the recordings directory, referenced by name."""
    def _recording(name="standup.wav", seconds=30.0):
        recordings_dir = Path(temp_data_dir) / "recordings"
        recordings_dir.mkdir(exist_ok=True)
        shutil.move(make_wav(name, seconds=seconds), recordings_dir / name)
        return name

    return _recording


@pytest.mark.unit
class TestAsyncJobTranscription:

    def test_job_polled_until_complete(self, make_orchestrator, recording, completions):
        backend = FakeJobBackend(
            statuses=[JobStatus.PENDING, JobStatus.PENDING, JobStatus.PENDING, JobStatus.COMPLETED],
            result_text="Weekly planning notes",
        )
        orchestrator = make_orchestrator([backend])
        ref = recording()

        async def scenario():
            result = await orchestrator.transcribe(ref, BackendKind.CLOUD_BATCH)
            await orchestrator.shutdown()
            return result

        result = asyncio.run(scenario())

        assert result.full_text == "Weekly planning notes"
        assert backend.polls >= 4
        assert len(backend.submitted) == 1
        assert len(orchestrator.ledger) == 0
        assert len(completions) == 1
        published_job = completions[0][1]
        assert published_job.recording_ref == ref
        assert published_job.recording_name == "standup"
        assert published_job.backend == "cloud_batch"
        assert orchestrator.state == OrchestratorState.COMPLETE

    def test_transient_poll_errors_are_tolerated(self, make_orchestrator, recording, completions):
        backend = FakeJobBackend(statuses=[TransientError("unavailable"), JobStatus.COMPLETED])
        orchestrator = make_orchestrator([backend])
        ref = recording()

        async def scenario():
            result = await orchestrator.transcribe(ref, BackendKind.CLOUD_BATCH)
            await orchestrator.shutdown()
            return result

        assert asyncio.run(scenario()).full_text == "batch transcript"
        assert len(completions) == 1

    def test_failing_listener_does_not_fail_the_transcription(self, make_orchestrator, recording, completions):
        def broken_listener(result, job=None):
            raise RuntimeError("listener boom")

        pub.subscribe(broken_listener, COMPLETED_TOPIC)
        backend = FakeJobBackend(statuses=[JobStatus.COMPLETED], result_text="Quarterly review")
        orchestrator = make_orchestrator([backend])
        ref = recording()

        async def scenario():
            result = await orchestrator.transcribe(ref, BackendKind.CLOUD_BATCH)
            await orchestrator.shutdown()
            return result

        result = asyncio.run(scenario())

        assert result.full_text == "Quarterly review"
        assert [completed.full_text for completed, _ in completions] == ["Quarterly review"]
        assert len(orchestrator.ledger) == 0
        assert orchestrator.state == OrchestratorState.COMPLETE

    def test_failed_job(self, make_orchestrator, recording, completions):
        backend = FakeJobBackend(statuses=[JobStatus.FAILED], failure_reason="unsupported encoding")
        orchestrator = make_orchestrator([backend])
        ref = recording()

        async def scenario():
            try:
                await orchestrator.transcribe(ref, BackendKind.CLOUD_BATCH)
            finally:
                await orchestrator.shutdown()

        with pytest.raises(AsyncJobFailedError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.reason == "unsupported encoding"
        assert exc_info.value.job_id == "operations/1"
        assert len(orchestrator.ledger) == 0
        assert completions == []
        assert orchestrator.state == OrchestratorState.FAILED

    def test_recording_over_backend_limit(self, make_orchestrator, recording):
        backend = FakeJobBackend(max_duration=60)
        orchestrator = make_orchestrator([backend])

        with pytest.raises(FileTooLargeError) as exc_info:
            asyncio.run(orchestrator.transcribe(recording(seconds=125.0), BackendKind.CLOUD_BATCH))

        assert exc_info.value.max_duration == 60
        assert backend.submitted == []

    def test_wait_timeout_leaves_job_for_background_poller(self, make_orchestrator, recording, fast_policy,
                                                           completions):
        policy = fast_policy.model_copy(update={"async_wait_timeout": 0.05})
        backend = FakeJobBackend(statuses=[JobStatus.PENDING])
        orchestrator = make_orchestrator([backend], policy=policy)
        ref = recording()

        async def scenario():
            with pytest.raises(TranscriptionTimeoutError):
                await orchestrator.transcribe(ref, BackendKind.CLOUD_BATCH)
            assert [job.job_id for job in orchestrator.ledger.jobs()] == ["operations/1"]
            assert orchestrator.is_polling()
            assert not orchestrator.is_transcribing

            # The job finishes later; the poller delivers it
            backend.statuses = [JobStatus.COMPLETED]
            for _ in range(200):
                if completions:
                    break
                await asyncio.sleep(0.01)
            await orchestrator.shutdown()

        asyncio.run(scenario())

        assert len(completions) == 1
        assert completions[0][1].job_id == "operations/1"
        assert len(orchestrator.ledger) == 0

    def test_cancelled_wait_keeps_job(self, make_orchestrator, recording, fast_policy):
        backend = FakeJobBackend(statuses=[JobStatus.PENDING])
        orchestrator = make_orchestrator([backend])
        ref = recording()

        async def scenario():
            task = asyncio.create_task(orchestrator.transcribe(ref, BackendKind.CLOUD_BATCH))
            for _ in range(200):
                if backend.polls:
                    break
                await asyncio.sleep(0.01)
            assert orchestrator.cancel()
            with pytest.raises(TranscriptionCancelledError):
                await task
            await orchestrator.shutdown()

        asyncio.run(scenario())

        assert len(orchestrator.ledger) == 1
        assert orchestrator.state == OrchestratorState.IDLE

    def test_unreachable_job_backend_falls_back(self, make_orchestrator, recording):
        batch = FakeJobBackend(reachable=False)
        recognizer = FakeBackend(script=["synchronous fallback"])
        orchestrator = make_orchestrator([recognizer, batch])

        result = asyncio.run(orchestrator.transcribe(recording(), BackendKind.CLOUD_BATCH))

        assert result.full_text == "synchronous fallback"
        assert batch.submitted == []


@pytest.mark.unit
class TestPendingJobLifecycle:

    def test_jobs_survive_restart(self, make_orchestrator, recording, fast_policy, temp_data_dir, completions):
        ledger_path = str(Path(temp_data_dir) / "pending_jobs.json")
        policy = fast_policy.model_copy(update={"async_wait_timeout": 0.05, "background_poll_interval": 60})
        ref = recording()

        first_run = make_orchestrator([FakeJobBackend(statuses=[JobStatus.PENDING])],
                                      policy=policy, ledger=JobLedger(JsonLedgerStore(ledger_path)))

        async def interrupted():
            with pytest.raises(TranscriptionTimeoutError):
                await first_run.transcribe(ref, BackendKind.CLOUD_BATCH)
            await first_run.shutdown()

        asyncio.run(interrupted())

        backend = FakeJobBackend(statuses=[JobStatus.COMPLETED], result_text="recovered after restart")
        second_run = make_orchestrator([backend], policy=policy, ledger=JobLedger(JsonLedgerStore(ledger_path)))
        assert len(second_run.ledger) == 1

        resolved = asyncio.run(second_run.check_completed_async_jobs())

        assert [(result.full_text, job.recording_name) for result, job in resolved] == [
            ("recovered after restart", "standup")
        ]
        assert len(completions) == 1
        assert JsonLedgerStore(ledger_path).load() == []

    def test_resume_starts_polling(self, make_orchestrator):
        job = PendingJob("operations/7", "cloud_batch", "memo.wav", "memo", datetime(2024, 5, 1))
        ledger = JobLedger(InMemoryLedgerStore([job]))
        orchestrator = make_orchestrator([FakeJobBackend(statuses=[JobStatus.PENDING])], ledger=ledger)

        async def scenario():
            count = await orchestrator.resume()
            polling = orchestrator.is_polling()
            await orchestrator.shutdown()
            return count, polling

        assert asyncio.run(scenario()) == (1, True)
        assert not orchestrator.is_polling()

    def test_resume_drops_jobs_of_unconfigured_backend(self, make_orchestrator):
        job = PendingJob("operations/7", "cloud_batch", "memo.wav", "memo", datetime(2024, 5, 1))
        ledger = JobLedger(InMemoryLedgerStore([job]))
        backend = FakeJobBackend(config=make_config(BackendKind.CLOUD_BATCH, bucket_name=""))
        orchestrator = make_orchestrator([backend], ledger=ledger)

        assert asyncio.run(orchestrator.resume()) == 0
        assert len(ledger) == 0

    def test_switching_away_abandons_pending_jobs(self, make_orchestrator, recording, fast_policy):
        policy = fast_policy.model_copy(update={"async_wait_timeout": 0.05})
        backend = FakeJobBackend(statuses=[JobStatus.PENDING])
        orchestrator = make_orchestrator([FakeBackend(), backend], policy=policy,
                                         default_backend=BackendKind.CLOUD_BATCH)
        ref = recording()

        async def scenario():
            with pytest.raises(TranscriptionTimeoutError):
                await orchestrator.transcribe(ref)
            assert orchestrator.is_polling()
            await orchestrator.switch_backend(BackendKind.RECOGNIZER)
            polling = orchestrator.is_polling()
            await orchestrator.shutdown()
            return polling

        assert asyncio.run(scenario()) is False
        assert orchestrator.active_backend == BackendKind.RECOGNIZER
        assert len(orchestrator.ledger) == 0

    def test_switching_to_job_backend_resumes_polling(self, make_orchestrator):
        job = PendingJob("operations/7", "cloud_batch", "memo.wav", "memo", datetime(2024, 5, 1))
        orchestrator = make_orchestrator([FakeBackend(), FakeJobBackend(statuses=[JobStatus.PENDING])],
                                         ledger=JobLedger(InMemoryLedgerStore([job])))

        async def scenario():
            await orchestrator.switch_backend("cloud_batch")
            polling = orchestrator.is_polling()
            await orchestrator.shutdown()
            return polling

        assert asyncio.run(scenario()) is True
        assert len(orchestrator.ledger) == 1

    def test_rename_updates_pending_job(self, make_orchestrator, recording):
        ref = recording("memo.wav")
        job = PendingJob("operations/7", "cloud_batch", ref, "memo", datetime(2024, 5, 1))
        orchestrator = make_orchestrator([FakeJobBackend()], ledger=JobLedger(InMemoryLedgerStore([job])))

        new_ref = orchestrator.recording_store.rename(ref, "standup")

        renamed = orchestrator.ledger.get("operations/7")
        assert renamed.recording_ref == new_ref
        assert renamed.recording_name == "standup"
        assert Path(new_ref).name == "standup.wav"
