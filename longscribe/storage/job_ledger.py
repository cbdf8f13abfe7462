"""Durable ledger of outstanding asynchronous transcription jobs."""

import os
import json
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from ..models.jobs import PendingJob

logger = logging.getLogger(__name__)


class LedgerStore(ABC):
    """Persistence backend for the job ledger."""

    @abstractmethod
    def load(self) -> List[PendingJob]:
        """Load all persisted jobs."""
        pass

    @abstractmethod
    def save(self, jobs: List[PendingJob]) -> None:
        """Replace the persisted jobs with ``jobs``."""
        pass


class JsonLedgerStore(LedgerStore):
    """Stores pending jobs in a JSON file, replaced atomically on every save."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> List[PendingJob]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"❌ Job ledger {self.path} is corrupted: {e}")
            raise

        jobs = [PendingJob.from_dict(item) for item in data.get('jobs', [])]
        logger.debug(f"Loaded {len(jobs)} pending jobs from {self.path}")
        return jobs

    def save(self, jobs: List[PendingJob]) -> None:
        payload = {'jobs': [job.to_dict() for job in jobs]}

        fd, temp_path = tempfile.mkstemp(prefix=".ledger-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.debug(f"Saved {len(jobs)} pending jobs to {self.path}")


class InMemoryLedgerStore(LedgerStore):
    """Volatile store, used when no ledger file is configured."""

    def __init__(self, jobs: Optional[List[PendingJob]] = None):
        self._jobs = list(jobs or [])

    def load(self) -> List[PendingJob]:
        return list(self._jobs)

    def save(self, jobs: List[PendingJob]) -> None:
        self._jobs = list(jobs)


class JobLedger:
    """Thread-safe set of pending asynchronous jobs keyed by job id.

    Every mutation is persisted before the call returns, so the ledger
    survives a restart. Removal hands the job back to exactly one caller;
    whoever receives it owns the completion notification.
    """

    def __init__(self, store: LedgerStore):
        self._store = store
        self._lock = threading.RLock()
        self._jobs: Dict[str, PendingJob] = {}
        self.reload()

    def reload(self) -> None:
        """Replace the in-memory view with the persisted jobs."""
        with self._lock:
            self._jobs = {job.job_id: job for job in self._store.load()}
            if self._jobs:
                logger.info(f"Job ledger holds {len(self._jobs)} pending jobs")

    def _persist(self) -> None:
        self._store.save(list(self._jobs.values()))

    def add(self, job: PendingJob) -> bool:
        """Add a job. Returns False if a job with the same id is already present."""
        with self._lock:
            if job.job_id in self._jobs:
                logger.debug(f"Job {job.job_id} already in ledger")
                return False
            self._jobs[job.job_id] = job
            self._persist()
        logger.info(f"Job {job.job_id} ({job.backend}) added to ledger for '{job.recording_name}'")
        return True

    def remove(self, job_id: str) -> Optional[PendingJob]:
        """Remove a job and return it, or None if another caller already removed it."""
        with self._lock:
            job = self._jobs.pop(job_id, None)
            if job is not None:
                self._persist()
        if job is not None:
            logger.debug(f"Job {job_id} removed from ledger")
        return job

    def get(self, job_id: str) -> Optional[PendingJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def jobs(self, backend: Optional[str] = None) -> List[PendingJob]:
        """Snapshot of pending jobs, optionally only those of one backend."""
        with self._lock:
            jobs = list(self._jobs.values())
        if backend is not None:
            backend = getattr(backend, 'value', backend)
            jobs = [job for job in jobs if job.backend == backend]
        return sorted(jobs, key=lambda job: job.submitted_at)

    def clear(self, backend: Optional[str] = None) -> int:
        """Drop all jobs (or all jobs of one backend). Returns how many were dropped."""
        with self._lock:
            if backend is None:
                dropped = list(self._jobs)
            else:
                backend = getattr(backend, 'value', backend)
                dropped = [job_id for job_id, job in self._jobs.items() if job.backend == backend]
            for job_id in dropped:
                del self._jobs[job_id]
            if dropped:
                self._persist()
        if dropped:
            logger.info(f"Cleared {len(dropped)} pending jobs from ledger")
        return len(dropped)

    def update_for_rename(self, old_ref: str, new_ref: str, new_name: str) -> int:
        """Re-key jobs whose recording was renamed. Returns the number of jobs updated."""
        with self._lock:
            updated = 0
            for job_id, job in list(self._jobs.items()):
                if job.recording_ref == old_ref:
                    self._jobs[job_id] = PendingJob(
                        job_id=job.job_id,
                        backend=job.backend,
                        recording_ref=new_ref,
                        recording_name=new_name,
                        submitted_at=job.submitted_at,
                    )
                    updated += 1
            if updated:
                self._persist()
        if updated:
            logger.info(f"Updated {updated} pending jobs for renamed recording '{new_name}'")
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
