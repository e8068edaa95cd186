"""
Background execution of evaluation jobs.

`submit` creates the job and returns its id before any stage runs. The
pipeline then runs as an asyncio task whose every outcome, including
timeouts, unexpected exceptions and cancellation, lands in the job store.
Nobody listening is not a reason to stop: progress subscribers come and go
without affecting the run.
"""

import asyncio
from typing import Any

from ..observability.logging import get_logger, trace_context
from .exceptions import PipelineTimeoutError
from .job_store import JobStore
from .pipeline import Pipeline

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Evaluation cancelled"
EMPTY_RESULT_MESSAGE = "Evaluation produced no result"


class JobDriver:
    """Creates jobs and runs the pipeline for each in the background."""

    def __init__(self, store: JobStore, pipeline: Pipeline, timeout_seconds: float = 300.0):
        self.store = store
        self.pipeline = pipeline
        self.timeout_seconds = timeout_seconds
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    def submit(self, document: Any) -> str:
        """Create a job and start its pipeline; must be called on a running loop."""
        job_id = self.store.create()
        task = asyncio.create_task(self._run(job_id, document), name=f"evaluation-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, jid=job_id: self._tasks.pop(jid, None))

        logger.info(f"Submitted job {job_id}", job_id=job_id, active_jobs=len(self._tasks))
        return job_id

    async def _run(self, job_id: str, document: Any) -> None:
        with trace_context(job_id):
            await self._execute(job_id, document)

    async def _execute(self, job_id: str, document: Any) -> None:
        def on_progress(stage: str, percent: int) -> None:
            self.store.update_progress(job_id, stage, percent)

        try:
            result = await asyncio.wait_for(
                self.pipeline.run(document, on_progress=on_progress),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            error = PipelineTimeoutError(self.timeout_seconds)
            logger.error(f"Job {job_id} timed out", job_id=job_id)
            self.store.set_error(job_id, str(error))
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} cancelled", job_id=job_id)
            self.store.set_error(job_id, CANCELLED_MESSAGE)
            raise
        except Exception as e:
            logger.error(f"Job {job_id} failed: {e}", job_id=job_id)
            self.store.set_error(job_id, str(e) or e.__class__.__name__)
        else:
            if result is None:
                logger.error(f"Job {job_id} produced no result", job_id=job_id)
                self.store.set_error(job_id, EMPTY_RESULT_MESSAGE)
            else:
                self.store.set_result(job_id, result)

    async def wait(self, job_id: str) -> None:
        """Wait for one job's background task, if it is still running."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every in-flight job; each is recorded as failed."""
        running = dict(self._tasks)
        for task in running.values():
            task.cancel()
        if not running:
            return

        await asyncio.gather(*running.values(), return_exceptions=True)
        # A task cancelled before its first step never reaches its own handler
        for job_id in running:
            job = self.store.get(job_id)
            if job is not None and not job.is_terminal:
                self.store.set_error(job_id, CANCELLED_MESSAGE)
        logger.info(f"Cancelled {len(running)} in-flight jobs")
