"""
Process-wide registry of evaluation jobs with time-based expiry.

The store is the single source of truth for job state. Records are immutable
snapshots: every mutation replaces the record under a lock, so readers never
block and never observe a half-applied update. The TTL sweep takes the same
lock, which keeps eviction and mutation of one id mutually exclusive.

Lifecycle:
    created -> processing -> completed | failed

Terminal states absorb: progress, result and error writes against a
completed or failed job are dropped with a warning, as are writes against
ids that are unknown or already evicted.
"""

import asyncio
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from ..observability.logging import get_logger
from ..observability.metrics import counter

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


def serialize_result(result: Any) -> Any:
    """JSON-ready form of a job result; pydantic models are dumped by alias."""
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json", by_alias=True)
    return result


class JobStatus(str, Enum):
    """Lifecycle status of a job."""

    CREATED = "created"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class JobProgress:
    """Most recent progress checkpoint of a job."""

    stage: str
    percent: int


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of one evaluation run."""

    id: str
    status: JobStatus
    progress: JobProgress
    created_at: float
    updated_at: float
    result: Any = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self, include_result: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": {"stage": self.progress.stage, "percent": self.progress.percent},
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.status is JobStatus.COMPLETED and include_result:
            data["result"] = serialize_result(self.result)
        if self.status is JobStatus.FAILED:
            data["error"] = self.error
        return data


class JobStore:
    """Thread- and task-safe mapping from job id to `Job`."""

    def __init__(
        self,
        initial_stage: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.initial_stage = initial_stage
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def create(self) -> str:
        """Allocate a new job in `created` state and return its id."""
        now = self._clock()
        with self._lock:
            job_id = str(uuid.uuid4())
            while job_id in self._jobs:
                job_id = str(uuid.uuid4())
            self._jobs[job_id] = Job(
                id=job_id,
                status=JobStatus.CREATED,
                progress=JobProgress(stage=self.initial_stage, percent=0),
                created_at=now,
                updated_at=now,
            )

        counter("jobs_created_total").add(1)
        logger.info(f"Created job {job_id}", job_id=job_id)
        return job_id

    def update_progress(self, job_id: str, stage: str, percent: int) -> bool:
        """Record a progress checkpoint; returns False when the write was dropped."""
        if not 0 <= percent <= 100:
            raise ValueError(f"percent must be between 0 and 100, got {percent}")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning(f"Cannot update progress: job {job_id} not found", job_id=job_id)
                return False
            if job.is_terminal:
                logger.warning(
                    f"Ignoring progress for job {job_id}: already {job.status.value}",
                    job_id=job_id,
                    stage=stage,
                )
                return False
            if percent < job.progress.percent:
                logger.warning(
                    f"Ignoring progress regression for job {job_id}: "
                    f"{percent}% < {job.progress.percent}%",
                    job_id=job_id,
                    stage=stage,
                )
                return False

            self._jobs[job_id] = replace(
                job,
                status=JobStatus.PROCESSING,
                progress=JobProgress(stage=stage, percent=percent),
                updated_at=self._clock(),
            )

        logger.info(f"Job {job_id}: {stage} ({percent}%)", job_id=job_id)
        return True

    def set_result(self, job_id: str, result: Any) -> bool:
        """Move a job to `completed` with its result."""
        if result is None:
            raise ValueError("A completed job needs a result")
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning(f"Cannot set result: job {job_id} not found", job_id=job_id)
                return False
            if job.is_terminal:
                logger.warning(
                    f"Ignoring result for job {job_id}: already {job.status.value}", job_id=job_id
                )
                return False

            self._jobs[job_id] = replace(
                job,
                status=JobStatus.COMPLETED,
                progress=JobProgress(stage=job.progress.stage, percent=100),
                result=result,
                updated_at=self._clock(),
            )

        counter("jobs_completed_total").add(1)
        logger.info(f"Job {job_id} completed successfully", job_id=job_id)
        return True

    def set_error(self, job_id: str, message: str) -> bool:
        """Move a job to `failed` with a human-readable message."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning(f"Cannot set error: job {job_id} not found", job_id=job_id)
                return False
            if job.is_terminal:
                logger.warning(
                    f"Ignoring error for job {job_id}: already {job.status.value}", job_id=job_id
                )
                return False

            self._jobs[job_id] = replace(
                job,
                status=JobStatus.FAILED,
                error=message,
                updated_at=self._clock(),
            )

        counter("jobs_failed_total").add(1)
        logger.info(f"Job {job_id} failed: {message}", job_id=job_id)
        return True

    def get(self, job_id: str) -> Job | None:
        """Return the current snapshot, or None if the job is unknown or evicted."""
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[Job]:
        """Snapshots of every live job, oldest first."""
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda j: j.created_at)

    def sweep(self) -> int:
        """Evict every job idle for longer than the TTL; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if now - job.updated_at > self.ttl_seconds
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            counter("jobs_expired_total").add(len(expired))
            logger.info(f"Cleaned up {len(expired)} expired jobs", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    # --- Background sweeper ---

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the periodic TTL sweep on the running event loop."""
        if self.is_sweeping:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="job-store-sweeper")
        logger.debug(
            "Job store sweeper started",
            ttl_seconds=self.ttl_seconds,
            interval_seconds=self.sweep_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the periodic sweep and wait for it to exit."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.debug("Job store sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Job sweep failed: {e}")


# Process-wide store. Constructed once by `init_job_store` and torn down by
# `shutdown_job_store`; everything else goes through `get_job_store`.
_job_store: JobStore | None = None


def init_job_store(
    initial_stage: str,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.time,
) -> JobStore:
    """Create the process-wide job store; fails if one already exists."""
    global _job_store
    if _job_store is not None:
        raise RuntimeError("Job store already initialized")
    _job_store = JobStore(
        initial_stage=initial_stage,
        ttl_seconds=ttl_seconds,
        sweep_interval_seconds=sweep_interval_seconds,
        clock=clock,
    )
    return _job_store


def get_job_store() -> JobStore:
    """Get the process-wide job store."""
    if _job_store is None:
        raise RuntimeError("Job store not initialized. Call init_job_store() first.")
    return _job_store


async def shutdown_job_store() -> None:
    """Stop the sweeper and drop the process-wide job store."""
    global _job_store
    if _job_store is None:
        return
    await _job_store.stop()
    _job_store.clear()
    _job_store = None


def _reset_job_store_for_tests() -> None:
    """Drop the process-wide store without awaiting its sweeper."""
    global _job_store
    if _job_store is not None and _job_store._sweeper is not None:
        _job_store._sweeper.cancel()
    _job_store = None
