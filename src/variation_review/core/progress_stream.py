"""
Per-job progress subscriptions.

A subscription polls the job store and turns what it sees into discrete
messages. Progress is only emitted when the percent moves past the highest
value already sent on this subscription, so intermediate checkpoints may be
coalesced but the sequence never goes backwards. Exactly one terminal message
ends every subscription:

    {"done": true, "evaluation": {...}}
    {"error": true, "message": "..."}
    {"error": true, "expired": true, "message": "Job expired or was cleaned up"}
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from ..observability.logging import get_logger
from ..observability.metrics import up_down_counter
from .exceptions import JobNotFoundError
from .job_store import JobProgress, JobStatus, JobStore, serialize_result

logger = get_logger(__name__)

EXPIRED_MESSAGE = "Job expired or was cleaned up"
DEFAULT_POLL_INTERVAL = 0.1

DisconnectCheck = Callable[[], Awaitable[bool]]


def progress_message(progress: JobProgress) -> dict[str, Any]:
    return {"stage": progress.stage, "percent": progress.percent}


def done_message(result: Any) -> dict[str, Any]:
    return {"done": True, "evaluation": serialize_result(result)}


def error_message(message: str | None) -> dict[str, Any]:
    return {"error": True, "message": message or "Evaluation failed"}


def expired_message() -> dict[str, Any]:
    return {"error": True, "expired": True, "message": EXPIRED_MESSAGE}


def is_terminal_message(message: dict[str, Any]) -> bool:
    return bool(message.get("done") or message.get("error"))


class ProgressStream:
    """Turns job store state into a finite stream of update messages."""

    def __init__(self, store: JobStore, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.store = store
        self.poll_interval = poll_interval

    def subscribe(
        self, job_id: str, is_disconnected: DisconnectCheck | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Open a subscription to one job.

        Raises:
            JobNotFoundError: the job was never created or is already evicted.
        """
        if self.store.get(job_id) is None:
            raise JobNotFoundError(job_id)
        return self._poll(job_id, is_disconnected)

    async def _poll(
        self, job_id: str, is_disconnected: DisconnectCheck | None
    ) -> AsyncIterator[dict[str, Any]]:
        last_percent = -1
        active = up_down_counter("active_streams")
        active.add(1)
        logger.debug(f"Progress stream opened for job {job_id}", job_id=job_id)

        try:
            while True:
                if is_disconnected is not None and await is_disconnected():
                    logger.info(f"Subscriber disconnected from job {job_id}", job_id=job_id)
                    return

                job = self.store.get(job_id)
                if job is None:
                    yield expired_message()
                    return

                if job.progress.percent > last_percent:
                    last_percent = job.progress.percent
                    yield progress_message(job.progress)

                if job.status is JobStatus.COMPLETED:
                    yield done_message(job.result)
                    return

                if job.status is JobStatus.FAILED:
                    yield error_message(job.error)
                    return

                await asyncio.sleep(self.poll_interval)
        except Exception as e:
            logger.exception(f"Error streaming job updates: {e}", job_id=job_id)
            yield error_message(str(e) or "Stream error")
        finally:
            active.add(-1)
            logger.debug(f"Progress stream closed for job {job_id}", job_id=job_id)
