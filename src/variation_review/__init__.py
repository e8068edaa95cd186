"""
Variation Review - regulatory variation evaluation with streamed progress.

An uploaded submission is evaluated by a six-stage pipeline of model-backed
analysis stages against the full body of SFDA variation guidance. Each
evaluation is a job: submission returns a job id immediately, the pipeline
runs in the background, and clients follow it over a Server-Sent Events
stream until a single terminal message arrives.

Quick Start:
    >>> from variation_review.core.job_store import JobStore
    >>> from variation_review.core.job_driver import JobDriver
    >>> from variation_review.core.progress_stream import ProgressStream
    >>>
    >>> store = JobStore(initial_stage=pipeline.first_stage)
    >>> driver = JobDriver(store, pipeline, timeout_seconds=300)
    >>> job_id = driver.submit(document)
    >>> async for message in ProgressStream(store).subscribe(job_id):
    ...     print(message)

API Server:
    $ variation-review --port 8000
    # or
    $ uvicorn variation_review.api.server:app --host 0.0.0.0 --port 8000

Configuration:
    Environment variables with the `VR_` prefix:
    - VR_LLM__API_KEY=... (Gemini API key)
    - VR_CONTEXT__BACKEND=supabase|directory
    - VR_CONTEXT__SUPABASE_URL / VR_CONTEXT__SUPABASE_KEY
    - VR_JOBS__TTL_SECONDS=600
    - VR_OBSERVABILITY__LOG_LEVEL=INFO
"""

__version__ = "1.0.0"

from .config.settings import Settings
from .core.job_store import Job, JobStatus, JobStore
from .core.pipeline import Pipeline, PipelineStage

__all__ = [
    "Job",
    "JobStatus",
    "JobStore",
    "Pipeline",
    "PipelineStage",
    "Settings",
]
