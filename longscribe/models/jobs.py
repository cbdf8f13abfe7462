"""Data models for asynchronous backend jobs."""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(Enum):
    """Status of an asynchronous transcription job."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobStatusReport:
    """Status of a job as reported by the backend."""
    job_id: str
    status: JobStatus
    failure_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class PendingJob:
    """One outstanding asynchronous job recorded in the job ledger."""
    job_id: str
    backend: str
    recording_ref: str
    recording_name: str
    submitted_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["submitted_at"] = self.submitted_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingJob":
        data = dict(data)
        data["submitted_at"] = datetime.fromisoformat(data["submitted_at"])
        return cls(**data)
