"""Background polling of outstanding asynchronous jobs."""

import asyncio
import time
import logging
from typing import Dict, List, Optional, Tuple

from .base import AsyncJobBackend
from .publisher import CompletionPublisher
from ..models.jobs import JobStatus, PendingJob
from ..models.transcription import TranscriptionResult
from ..storage.job_ledger import JobLedger

logger = logging.getLogger(__name__)

ResolvedJob = Tuple[TranscriptionResult, PendingJob]


class BackgroundPoller:
    """Owns the polling loop for one asynchronous backend.

    Each pass checks every ledger job of the backend: completed jobs are
    fetched, removed and published; failed jobs are removed; pending jobs
    stay. A job whose check raised is skipped for an exponentially growing
    delay. The loop stops by itself once no jobs remain.
    """

    def __init__(self,
                 backend: AsyncJobBackend,
                 ledger: JobLedger,
                 publisher: CompletionPublisher,
                 interval: float = 30.0,
                 max_backoff: float = 300.0):
        self.backend = backend
        self.ledger = ledger
        self.publisher = publisher
        self.interval = interval
        self.max_backoff = max_backoff
        self._task: Optional[asyncio.Task] = None
        self._failures: Dict[str, int] = {}
        self._retry_at: Dict[str, float] = {}

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop if it is not already running. Must be called from the event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Background polling started for {self.backend.name} "
                    f"(interval {self.interval:g}s, {len(self.ledger.jobs(self.backend.name))} jobs)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info(f"Background polling stopped for {self.backend.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"❌ Polling pass for {self.backend.name} failed: {e}", exc_info=True)
            if not self.ledger.jobs(self.backend.name):
                logger.info(f"No pending {self.backend.name} jobs left, polling stops")
                return
            if not self.backend.is_configured():
                return

    async def tick(self, force: bool = False) -> List[ResolvedJob]:
        """Check every pending job of the backend once.

        Args:
            force: Ignore per-job back-off

        Returns:
            List of (result, job) for jobs completed during this pass
        """
        backend_name = self.backend.name
        if not self.backend.is_configured():
            dropped = self.ledger.clear(backend_name)
            if dropped:
                logger.warning(f"{backend_name} is no longer configured, dropped {dropped} pending jobs")
            self._prune()
            return []

        resolved: List[ResolvedJob] = []
        now = time.monotonic()
        for job in self.ledger.jobs(backend_name):
            if not force and self._retry_at.get(job.job_id, 0.0) > now:
                continue
            try:
                outcome = await self._check(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._back_off(job.job_id, e)
                continue

            self._forget(job.job_id)
            if outcome is not None:
                resolved.append(outcome)
        self._prune()
        return resolved

    async def _check(self, job: PendingJob) -> Optional[ResolvedJob]:
        report = await self.backend.poll_job(job.job_id)

        if report.status == JobStatus.PENDING:
            logger.debug(f"Job {job.job_id} still pending")
            return None

        if report.status == JobStatus.FAILED:
            logger.error(f"❌ Job {job.job_id} for '{job.recording_name}' failed: {report.failure_reason}")
            self.ledger.remove(job.job_id)
            return None

        result = await self.backend.fetch_job(job.job_id)
        owned = self.ledger.remove(job.job_id)
        if owned is None:
            # Resolved concurrently by the waiting transcription
            logger.debug(f"Job {job.job_id} already resolved elsewhere")
            return None

        logger.info(f"✅ Job {job.job_id} for '{job.recording_name}' completed")
        self.publisher.publish(result, owned)
        return result, owned

    def _back_off(self, job_id: str, error: Exception) -> None:
        failures = self._failures.get(job_id, 0) + 1
        self._failures[job_id] = failures
        delay = min(self.interval * (2 ** (failures - 1)), self.max_backoff)
        self._retry_at[job_id] = time.monotonic() + delay
        logger.warning(f"Checking job {job_id} failed ({failures}x), retrying in {delay:g}s: {error}")

    def _forget(self, job_id: str) -> None:
        self._failures.pop(job_id, None)
        self._retry_at.pop(job_id, None)

    def _prune(self) -> None:
        """Drop back-off state of jobs that left the ledger."""
        live = {job.job_id for job in self.ledger.jobs(self.backend.name)}
        for job_id in (set(self._failures) | set(self._retry_at)) - live:
            self._forget(job_id)
