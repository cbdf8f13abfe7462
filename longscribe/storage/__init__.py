"""Persistence of recordings and pending jobs."""

from .job_ledger import JobLedger, LedgerStore, JsonLedgerStore, InMemoryLedgerStore
from .recording_store import RecordingStore, FileRecordingStore, RECORDING_RENAMED_TOPIC

__all__ = [
    "JobLedger",
    "LedgerStore",
    "JsonLedgerStore",
    "InMemoryLedgerStore",
    "RecordingStore",
    "FileRecordingStore",
    "RECORDING_RENAMED_TOPIC",
]
