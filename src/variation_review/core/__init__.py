"""
Job orchestration core: job store, stage pipeline, job driver and progress
streams. Import the pipeline, driver and stream from their own modules.
"""

from .exceptions import (
    ContextFetchError,
    EvaluationError,
    InputValidationError,
    JobNotFoundError,
    ModelResponseError,
    PipelineTimeoutError,
    StageExecutionError,
)
from .job_store import (
    Job,
    JobProgress,
    JobStatus,
    JobStore,
    get_job_store,
    init_job_store,
    shutdown_job_store,
)

__all__ = [
    "ContextFetchError",
    "EvaluationError",
    "InputValidationError",
    "JobNotFoundError",
    "ModelResponseError",
    "PipelineTimeoutError",
    "StageExecutionError",
    "Job",
    "JobProgress",
    "JobStatus",
    "JobStore",
    "get_job_store",
    "init_job_store",
    "shutdown_job_store",
]
