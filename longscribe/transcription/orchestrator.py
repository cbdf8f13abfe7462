"""Top-level coordination of a transcription across interchangeable backends."""

import asyncio
import time
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple, Union

from pubsub import pub

from .base import AbstractTranscriptionBackend, AsyncJobBackend
from .merge import merge_chunk_results
from .planner import plan_chunks
from .poller import BackgroundPoller, ResolvedJob
from .publisher import CompletionPublisher, ProgressPublisher
from .supervisor import CancellationToken, cancellable_sleep, run_supervised
from ..audio.extractor import ChunkExtractor
from ..audio.probe import AudioProbe
from ..errors import (
    AlreadyInProgressError,
    AsyncJobFailedError,
    AudioExtractionFailedError,
    AudioFileNotFoundError,
    BackendUnusableError,
    ChunkProcessingFailedError,
    EngineNotConfiguredError,
    ErrorDisposition,
    FileTooLargeError,
    NoSpeechDetectedError,
    RecognitionFailedError,
    TranscriptionCancelledError,
    TranscriptionError,
    TranscriptionTimeoutError,
)
from ..models.backends import BackendKind
from ..models.jobs import JobStatus, PendingJob
from ..models.policy import TranscriptionPolicy
from ..models.transcription import (
    ChunkSpec,
    OrchestratorState,
    TranscriptionProgress,
    TranscriptionResult,
)
from ..storage.job_ledger import JobLedger
from ..storage.recording_store import RECORDING_RENAMED_TOPIC, RecordingStore

logger = logging.getLogger(__name__)

# The recognizer is the fallback whenever the requested backend cannot be used
FALLBACK_BACKEND = BackendKind.RECOGNIZER


class TranscriptionOrchestrator:
    """Runs one foreground transcription at a time and tracks async jobs in the background.

    A transcription is validated, routed to a usable backend (falling back to
    the recognizer), and then executed as a single request, a sequential chunk
    loop, or a submitted job that is waited on. Submitted jobs are recorded in
    the job ledger so the background poller can finish them if the caller
    stops waiting.
    """

    def __init__(self,
                 backends: Iterable[AbstractTranscriptionBackend],
                 ledger: JobLedger,
                 recording_store: RecordingStore,
                 audio_probe: Optional[AudioProbe] = None,
                 extractor: Optional[ChunkExtractor] = None,
                 policy: Optional[TranscriptionPolicy] = None,
                 default_backend: Union[BackendKind, str] = FALLBACK_BACKEND,
                 publisher: Optional[CompletionPublisher] = None,
                 progress_publisher: Optional[ProgressPublisher] = None):
        self.backends: Dict[BackendKind, AbstractTranscriptionBackend] = {
            backend.kind: backend for backend in backends
        }
        self.ledger = ledger
        self.recording_store = recording_store
        self.policy = policy or TranscriptionPolicy()
        self.audio_probe = audio_probe or AudioProbe()
        self.extractor = extractor or ChunkExtractor(timeout=self.policy.extraction_timeout)
        self.publisher = publisher or CompletionPublisher()
        self.progress_publisher = progress_publisher or ProgressPublisher()

        self._active_backend = BackendKind(default_backend)
        self._state = OrchestratorState.IDLE
        self._busy = False
        self._token: Optional[CancellationToken] = None
        self._progress: Optional[TranscriptionProgress] = None
        self._pollers: Dict[BackendKind, BackgroundPoller] = {}

        pub.subscribe(self.update_pending_job_for_rename, RECORDING_RENAMED_TOPIC)
        logger.info(f"TranscriptionOrchestrator initialized with backends: "
                    f"{', '.join(kind.value for kind in self.backends)} (active: {self._active_backend.value})")

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_transcribing(self) -> bool:
        return self._busy

    @property
    def progress(self) -> Optional[TranscriptionProgress]:
        return self._progress

    @property
    def active_backend(self) -> BackendKind:
        return self._active_backend

    def is_polling(self, kind: Union[BackendKind, str] = BackendKind.CLOUD_BATCH) -> bool:
        poller = self._pollers.get(BackendKind(kind))
        return poller is not None and poller.is_running

    def _set_state(self, state: OrchestratorState) -> None:
        if state != self._state:
            logger.debug(f"State {self._state.value} -> {state.value}")
            self._state = state

    # ----------------------------------------------------------- transcribe

    async def transcribe(self,
                         recording_ref: str,
                         backend: Optional[Union[BackendKind, str]] = None) -> TranscriptionResult:
        """Transcribe a recording.

        Args:
            recording_ref: Reference understood by the recording store
            backend: Preferred backend, defaults to the active backend

        Returns:
            Normalized TranscriptionResult

        Raises:
            TranscriptionError: Typed failure (see longscribe.errors)
        """
        if self._busy:
            logger.warning(f"Rejected transcription of {recording_ref}: another transcription is active")
            raise AlreadyInProgressError()

        self._busy = True
        token = CancellationToken()
        self._token = token
        self._progress = None
        started = time.monotonic()
        try:
            self._set_state(OrchestratorState.VALIDATING)
            audio_path, duration = await self._validate(recording_ref)
            adapter = await self._resolve_backend(backend)
            token.raise_if_cancelled()
            logger.info(f"Transcribing {audio_path.name} ({duration:.1f}s) with {adapter.name}")

            if adapter.is_async:
                result = await self._run_async_job(adapter, recording_ref, audio_path, duration, token)
            elif self._needs_chunking(adapter, audio_path, duration):
                result = await self._run_chunked(adapter, audio_path, duration, token, started)
            else:
                result = await self._run_single_shot(adapter, audio_path, duration, token)

            token.raise_if_cancelled()
            result.processing_time = time.monotonic() - started
            self._set_state(OrchestratorState.COMPLETE)
            logger.info(f"✅ Transcription of {audio_path.name} complete: {result.chunk_count} chunk(s), "
                        f"{len(result.full_text)} chars in {result.processing_time:.1f}s")
            return result
        except (TranscriptionCancelledError, asyncio.CancelledError):
            logger.info(f"Transcription of {recording_ref} cancelled")
            self._set_state(OrchestratorState.IDLE)
            raise
        except Exception as e:
            logger.error(f"❌ Transcription of {recording_ref} failed: {e}")
            self._set_state(OrchestratorState.FAILED)
            raise
        finally:
            self._busy = False
            self._token = None

    def cancel(self) -> bool:
        """Cancel the active transcription. Returns False when nothing is running."""
        token = self._token
        if token is None or token.cancelled:
            return False
        logger.info("Cancelling active transcription")
        token.cancel()
        self._set_state(OrchestratorState.CANCELLED)
        return True

    async def _validate(self, recording_ref: str) -> Tuple[Path, float]:
        audio_path = self.recording_store.resolve(recording_ref)
        if not audio_path.is_file():
            raise AudioFileNotFoundError(audio_path)
        if not await self.audio_probe.validate(audio_path):
            raise AudioExtractionFailedError(f"{audio_path.name} is not playable audio")
        duration = await self.audio_probe.duration(audio_path)
        if duration <= 0:
            raise NoSpeechDetectedError()
        return audio_path, duration

    async def _resolve_backend(self, requested: Optional[Union[BackendKind, str]]) -> AbstractTranscriptionBackend:
        kind = BackendKind(requested) if requested else self._active_backend

        if kind != FALLBACK_BACKEND:
            adapter = self.backends.get(kind)
            reason = await self._unusable_reason(adapter) if adapter else "is not available"
            if reason is None:
                return adapter
            logger.warning(f"Backend {kind.value} {reason}; falling back to {FALLBACK_BACKEND.value}")

        recognizer = self.backends.get(FALLBACK_BACKEND)
        if recognizer is None:
            raise EngineNotConfiguredError(FALLBACK_BACKEND.value)
        if not recognizer.is_configured():
            raise EngineNotConfiguredError(FALLBACK_BACKEND.value, recognizer.config.missing_fields())
        if not recognizer.is_usable():
            raise BackendUnusableError(FALLBACK_BACKEND.value, "capability check failed")
        return recognizer

    async def _unusable_reason(self, adapter: AbstractTranscriptionBackend) -> Optional[str]:
        """Why ``adapter`` cannot be used right now, or None if it can."""
        if not adapter.is_configured():
            missing = adapter.config.missing_fields()
            if not adapter.config.enabled:
                return "is disabled"
            return f"is not configured (missing: {', '.join(missing)})"
        if not adapter.is_usable():
            return "failed its capability check"
        try:
            reachable = await asyncio.wait_for(adapter.test_connection(),
                                               timeout=self.policy.connection_check_timeout)
        except asyncio.TimeoutError:
            return f"did not answer within {self.policy.connection_check_timeout:g}s"
        except Exception as e:
            logger.debug(f"Connection check of {adapter.name} raised: {e!r}")
            return f"is unreachable ({e})"
        if not reachable:
            return "is unreachable"
        return None

    def _needs_chunking(self, adapter: AbstractTranscriptionBackend, audio_path: Path, duration: float) -> bool:
        threshold = adapter.single_shot_threshold or self.policy.single_shot_threshold
        if duration > threshold:
            return True
        if adapter.max_file_size and self.audio_probe.file_size(audio_path) > adapter.max_file_size:
            logger.info(f"{audio_path.name} exceeds {adapter.name} size limit, chunking it")
            return True
        return False

    @asynccontextmanager
    async def _ingestible(self, adapter: AbstractTranscriptionBackend, audio_path: Path) -> AsyncIterator[Path]:
        """Yield ``audio_path``, converted to WAV if the backend cannot read it as is."""
        if adapter.normalized_audio:
            readable = self.extractor.is_normalized(audio_path)
        else:
            readable = adapter.accepts(audio_path)
        if readable:
            yield audio_path
            return
        logger.info(f"Converting {audio_path.name} to WAV for {adapter.name}")
        async with self.extractor.convert(audio_path, normalize=adapter.normalized_audio) as converted:
            yield converted

    async def _recognize(self,
                         adapter: AbstractTranscriptionBackend,
                         audio_path: Path,
                         duration: Optional[float],
                         token: CancellationToken) -> TranscriptionResult:
        """One backend call with retries driven by the backend's error classifier."""
        attempt = 0
        while True:
            try:
                return await adapter.transcribe(audio_path, duration)
            except TranscriptionError:
                raise
            except Exception as e:
                disposition = adapter.classify_error(e)
                if disposition == ErrorDisposition.SILENT:
                    logger.info(f"{adapter.name} reported no speech in {audio_path.name}")
                    return TranscriptionResult.empty()
                if disposition == ErrorDisposition.RETRY and attempt < self.policy.max_retries:
                    attempt += 1
                    delay = self.policy.retry_backoff * (2 ** (attempt - 1))
                    logger.warning(f"{adapter.name} transient error (attempt {attempt}/{self.policy.max_retries}), "
                                   f"retrying in {delay:g}s: {e}")
                    await cancellable_sleep(delay, token)
                    continue
                raise RecognitionFailedError(e, adapter.name) from e

    # ----------------------------------------------------------- single shot

    async def _run_single_shot(self,
                               adapter: AbstractTranscriptionBackend,
                               audio_path: Path,
                               duration: float,
                               token: CancellationToken) -> TranscriptionResult:
        self._set_state(OrchestratorState.SINGLE_SHOT)
        await adapter.prepare()
        try:
            async with self._ingestible(adapter, audio_path) as audio:
                result = await run_supervised(
                    lambda: self._recognize(adapter, audio, duration, token),
                    self.policy.single_shot_timeout,
                    token,
                    on_abort=adapter.cancel,
                    label="recognition",
                )
        finally:
            await adapter.release()

        if result.is_empty:
            raise NoSpeechDetectedError()

        self._set_state(OrchestratorState.MERGING)
        return TranscriptionResult(
            full_text=result.full_text.strip(),
            segments=sorted(result.segments, key=lambda segment: segment.start_time),
            chunk_count=1,
        )

    # --------------------------------------------------------------- chunked

    async def _run_chunked(self,
                           adapter: AbstractTranscriptionBackend,
                           audio_path: Path,
                           duration: float,
                           token: CancellationToken,
                           started: float) -> TranscriptionResult:
        chunks = plan_chunks(
            duration,
            adapter.chunk_duration or self.policy.chunk_duration,
            self.policy.chunk_overlap,
            self.policy.safety_cap_chunk,
            self.policy.min_advancement,
            self.policy.max_chunks,
        )
        self._set_state(OrchestratorState.CHUNKED)
        logger.info(f"Processing {audio_path.name} in {len(chunks)} chunks with {adapter.name}")

        chunk_results: List[Tuple[ChunkSpec, TranscriptionResult]] = []
        current_text = ""
        await adapter.prepare()
        try:
            for spec in chunks:
                token.raise_if_cancelled()
                self._report_progress(spec.index, len(chunks), spec.start, duration, current_text)

                try:
                    result = await run_supervised(
                        lambda spec=spec: self._transcribe_chunk(adapter, audio_path, spec, token),
                        self.policy.chunk_timeout,
                        token,
                        on_abort=adapter.cancel,
                        label=f"chunk {spec.index + 1}",
                    )
                except TranscriptionCancelledError:
                    raise
                except Exception as e:
                    logger.error(f"❌ Chunk {spec.index + 1}/{len(chunks)} failed: {e}")
                    raise ChunkProcessingFailedError(spec.index, e) from e

                if result.is_empty:
                    logger.info(f"Chunk {spec.index + 1}/{len(chunks)} contained no speech")
                else:
                    current_text = f"{current_text} {result.full_text.strip()}".strip()
                    logger.info(f"Chunk {spec.index + 1}/{len(chunks)} transcribed "
                                f"[{spec.start:.1f}s, {spec.end:.1f}s)")
                chunk_results.append((spec, result))

                if spec.index < len(chunks) - 1:
                    await adapter.relieve_pressure()
                    await cancellable_sleep(self.policy.chunk_cooldown, token)

                elapsed = time.monotonic() - started
                if elapsed > self.policy.max_job_duration:
                    raise TranscriptionTimeoutError("chunked transcription", self.policy.max_job_duration)
        finally:
            await adapter.release()

        self._set_state(OrchestratorState.MERGING)
        merged = merge_chunk_results(chunk_results)
        self._report_progress(len(chunks), len(chunks), duration, duration, merged.full_text, complete=True)
        return merged

    async def _transcribe_chunk(self,
                                adapter: AbstractTranscriptionBackend,
                                audio_path: Path,
                                spec: ChunkSpec,
                                token: CancellationToken) -> TranscriptionResult:
        async with self.extractor.extract(audio_path, spec.start, spec.end,
                                          normalize=adapter.normalized_audio) as chunk_path:
            return await self._recognize(adapter, chunk_path, spec.duration, token)

    def _report_progress(self,
                         current_chunk: int,
                         total_chunks: int,
                         processed: float,
                         total: float,
                         text: str,
                         complete: bool = False) -> None:
        self._progress = TranscriptionProgress(
            current_chunk=current_chunk,
            total_chunks=total_chunks,
            processed_duration=processed,
            total_duration=total,
            current_text=text,
            is_complete=complete,
        )
        self.progress_publisher.publish(self._progress)

    # ------------------------------------------------------------ async jobs

    async def _run_async_job(self,
                             adapter: AsyncJobBackend,
                             recording_ref: str,
                             audio_path: Path,
                             duration: float,
                             token: CancellationToken) -> TranscriptionResult:
        if adapter.max_duration and duration > adapter.max_duration:
            raise FileTooLargeError(duration, adapter.max_duration)

        self._set_state(OrchestratorState.ASYNC_SUBMITTED)
        async with self._ingestible(adapter, audio_path) as audio:
            try:
                job_id = await run_supervised(
                    lambda: adapter.submit_job(audio),
                    self.policy.single_shot_timeout,
                    token,
                    label="job submission",
                )
            except TranscriptionError:
                raise
            except Exception as e:
                raise RecognitionFailedError(e, adapter.name) from e

        job = PendingJob(
            job_id=job_id,
            backend=adapter.name,
            recording_ref=str(recording_ref),
            recording_name=self.recording_store.display_name(recording_ref),
            submitted_at=datetime.now(),
        )
        self.ledger.add(job)
        self._ensure_poller(adapter)
        return await self._wait_for_job(adapter, job, token)

    async def _wait_for_job(self,
                            adapter: AsyncJobBackend,
                            job: PendingJob,
                            token: CancellationToken) -> TranscriptionResult:
        """Poll one job until it finishes, independent of the background poller.

        On timeout or cancellation the job stays in the ledger for the poller.
        """
        deadline = time.monotonic() + self.policy.async_wait_timeout
        while True:
            token.raise_if_cancelled()
            try:
                report = await adapter.poll_job(job.job_id)
            except Exception as e:
                logger.warning(f"Polling job {job.job_id} failed, will retry: {e}")
                report = None

            if self.ledger.get(job.job_id) is None and (report is None or report.status == JobStatus.PENDING):
                # Either the poller resolved the job while this poll was in flight,
                # or a backend switch abandoned it
                try:
                    report = await adapter.poll_job(job.job_id)
                except Exception as e:
                    raise AsyncJobFailedError(job.job_id, f"job was abandoned ({e})") from e
                if report.status != JobStatus.COMPLETED:
                    raise AsyncJobFailedError(job.job_id, "job was abandoned")

            if report is not None and report.status == JobStatus.COMPLETED:
                try:
                    result = await adapter.fetch_job(job.job_id)
                except Exception as e:
                    raise RecognitionFailedError(e, adapter.name) from e
                owned = self.ledger.remove(job.job_id)
                if owned is not None:
                    self.publisher.publish(result, owned)
                self._set_state(OrchestratorState.MERGING)
                return result

            if report is not None and report.status == JobStatus.FAILED:
                self.ledger.remove(job.job_id)
                raise AsyncJobFailedError(job.job_id, report.failure_reason or "Unknown error")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"Stopped waiting for job {job.job_id}; the background poller will finish it")
                raise TranscriptionTimeoutError("waiting for transcription job", self.policy.async_wait_timeout)
            await cancellable_sleep(min(self.policy.async_poll_interval, remaining), token)

    def _poller_for(self, adapter: AsyncJobBackend) -> BackgroundPoller:
        poller = self._pollers.get(adapter.kind)
        if poller is None:
            poller = BackgroundPoller(
                adapter,
                self.ledger,
                self.publisher,
                interval=self.policy.background_poll_interval,
                max_backoff=self.policy.max_poll_backoff,
            )
            self._pollers[adapter.kind] = poller
        return poller

    def _ensure_poller(self, adapter: AsyncJobBackend) -> None:
        self._poller_for(adapter).start()

    async def check_completed_async_jobs(self) -> List[ResolvedJob]:
        """Check every pending job now, ignoring the polling cadence.

        Returns:
            List of (result, job) for jobs that completed
        """
        resolved: List[ResolvedJob] = []
        for adapter in self.backends.values():
            if not adapter.is_async or not self.ledger.jobs(adapter.name):
                continue
            resolved.extend(await self._poller_for(adapter).tick(force=True))
        return resolved

    async def switch_backend(self, kind: Union[BackendKind, str]) -> None:
        """Make ``kind`` the active backend.

        Leaving an asynchronous backend stops its poller and abandons its
        pending jobs.
        """
        kind = BackendKind(kind)
        previous = self._active_backend
        self._active_backend = kind
        logger.info(f"Active backend switched from {previous.value} to {kind.value}")

        for poller_kind in list(self._pollers):
            if poller_kind != kind:
                await self._pollers[poller_kind].stop()

        if previous != kind:
            previous_adapter = self.backends.get(previous)
            if previous_adapter is not None and previous_adapter.is_async:
                dropped = self.ledger.clear(previous.value)
                if dropped:
                    logger.warning(f"Abandoned {dropped} pending {previous.value} jobs")

        adapter = self.backends.get(kind)
        if adapter is not None and adapter.is_async and adapter.is_configured() and self.ledger.jobs(kind.value):
            self._ensure_poller(adapter)

    async def resume(self) -> int:
        """Restart polling for jobs left in the ledger by a previous run.

        Returns:
            Number of jobs being polled
        """
        polled = 0
        for adapter in self.backends.values():
            if not adapter.is_async:
                continue
            jobs = self.ledger.jobs(adapter.name)
            if not jobs:
                continue
            if not adapter.is_configured():
                self.ledger.clear(adapter.name)
                logger.warning(f"{adapter.name} is not configured, dropped {len(jobs)} pending jobs")
                continue
            self._ensure_poller(adapter)
            polled += len(jobs)
        return polled

    def update_pending_job_for_rename(self, old_ref: str, new_ref: str, new_name: str) -> int:
        """Re-key pending jobs after their recording was renamed."""
        return self.ledger.update_for_rename(old_ref, new_ref, new_name)

    def subscribe_completed(self, listener):
        """Register ``listener(result, job)`` for completed transcriptions."""
        return self.publisher.subscribe(listener)

    async def shutdown(self) -> None:
        """Cancel the active transcription, stop polling and close backend clients."""
        self.cancel()
        for poller in self._pollers.values():
            await poller.stop()
        for adapter in self.backends.values():
            await adapter.close()
        if pub.isSubscribed(self.update_pending_job_for_rename, RECORDING_RENAMED_TOPIC):
            pub.unsubscribe(self.update_pending_job_for_rename, RECORDING_RENAMED_TOPIC)
        logger.info("TranscriptionOrchestrator shut down")
