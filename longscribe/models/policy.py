"""Orchestration policy: chunking, timeouts, retries and polling cadence."""

from pydantic import BaseModel, Field


class TranscriptionPolicy(BaseModel):
    """Tunable policy parameters with one canonical default set.

    Durations are in seconds.
    """

    # Single-shot vs. chunked
    single_shot_threshold: float = Field(default=60.0, gt=0)
    chunk_duration: float = Field(default=60.0, gt=0)
    safety_cap_chunk: float = Field(default=60.0, gt=0)
    chunk_overlap: float = Field(default=2.0, ge=0)
    min_advancement: float = Field(default=1.0, gt=0)
    max_chunks: int = Field(default=20, ge=1)
    chunk_cooldown: float = Field(default=2.0, ge=0)

    # Retries of transient backend errors
    max_retries: int = Field(default=2, ge=0)
    retry_backoff: float = Field(default=1.0, ge=0)

    # Timeouts
    single_shot_timeout: float = Field(default=300.0, gt=0)
    chunk_timeout: float = Field(default=180.0, gt=0)
    extraction_timeout: float = Field(default=120.0, gt=0)
    connection_check_timeout: float = Field(default=10.0, gt=0)
    max_job_duration: float = Field(default=3600.0, gt=0)

    # Asynchronous cloud jobs
    async_wait_timeout: float = Field(default=3600.0, gt=0)
    async_poll_interval: float = Field(default=30.0, gt=0)
    background_poll_interval: float = Field(default=30.0, gt=0)
    max_poll_backoff: float = Field(default=300.0, gt=0)
