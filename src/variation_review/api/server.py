"""
FastAPI server for document variation evaluation.

Submission and observation are decoupled: the upload endpoint answers with a
job id as soon as the job exists, and progress is followed over a separate
Server-Sent Events stream that can be opened (or reopened) at any point until
the job is evicted.

Endpoints:
- POST /api/evaluate: upload a PDF (multipart `file`, optional `locale`) -> {"jobId": ...}
- GET /api/evaluate/stream?jobId=...: `text/event-stream` of progress and one terminal message
- GET /api/jobs/{job_id}: snapshot of one job
- GET /api/jobs: snapshots of every live job
- GET /health: liveness with uptime and job counts

Usage:
    $ uvicorn variation_review.api.server:app --reload --port 8000

    $ curl -F file=@submission.pdf -F locale=en http://localhost:8000/api/evaluate
    {"jobId": "3f9c..."}

    $ curl -N "http://localhost:8000/api/evaluate/stream?jobId=3f9c..."
    data: {"stage": "document-structure-extraction", "percent": 0}

    data: {"stage": "change-classification", "percent": 15}
    ...
    data: {"done": true, "evaluation": {...}}

Configuration:
    Environment variables use the `VR_` prefix with `__` between sections, e.g.
    VR_LLM__API_KEY, VR_CONTEXT__SUPABASE_URL, VR_JOBS__TTL_SECONDS.
"""

import json
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ..agents.base import SubmittedDocument
from ..config.container import Container, setup_container
from ..config.settings import Settings, get_settings
from ..core.exceptions import InputValidationError, JobNotFoundError
from ..core.job_driver import JobDriver
from ..core.job_store import JobStore, shutdown_job_store
from ..core.progress_stream import ProgressStream
from ..extraction.pdf import NO_FILE_MESSAGE, validate_upload
from ..observability.logging import get_logger, setup_logging
from ..observability.metrics import create_meter_provider, setup_metrics, teardown_metrics
from ..observability.tracing import TracingManager

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Global state
container: Container | None = None


def _reset_globals_for_tests() -> None:
    """Reset global state for test isolation."""
    global container
    container = None


class SubmitResponse(BaseModel):
    jobId: str


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    live_jobs: int
    running_jobs: int


def format_sse(message: dict[str, Any]) -> str:
    """One Server-Sent Events frame."""
    return f"data: {json.dumps(message, ensure_ascii=False)}\n\n"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global container

    settings: Settings = app.state.settings
    obs = settings.observability
    setup_logging(obs.log_level)
    logger.info("Starting variation review API server...", environment=settings.environment)

    tracing: TracingManager | None = None
    if obs.enable_tracing:
        tracing = TracingManager(obs.service_name, obs.service_version)
        tracing.initialize(obs.otlp_endpoint)

    meter_provider = None
    if obs.enable_metrics:
        meter_provider = create_meter_provider(
            obs.service_name, obs.service_version, obs.otlp_endpoint
        )
        setup_metrics(meter_provider.get_meter("variation_review"))

    container = app.state.container or setup_container(settings)
    app.state.container = container

    store: JobStore = container.require("job_store")
    driver: JobDriver = container.require("job_driver")
    container.require("progress_stream")
    store.start()

    app.state.startup_time = time.time()
    logger.info("Variation review API server ready")

    try:
        yield
    finally:
        logger.info("Shutting down variation review API server...")
        await driver.shutdown()
        await store.stop()
        await shutdown_job_store()
        await container.cleanup()
        if meter_provider is not None:
            meter_provider.shutdown()
            teardown_metrics()
        if tracing is not None:
            tracing.shutdown()
        container = None


def _service(request: Request, name: str) -> Any:
    current = getattr(request.app.state, "container", None)
    if current is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return current.require(name)


def create_app(settings: Settings | None = None, app_container: Container | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Variation Review",
        description="Regulatory variation evaluation with streamed progress",
        version=settings.observability.service_version,
        docs_url="/docs" if settings.api.enable_docs else None,
        redoc_url="/redoc" if settings.api.enable_docs else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = app_container

    if settings.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_credentials="*" not in settings.api.cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["content-type"],
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check_endpoint(request: Request) -> HealthResponse:
        """Health check endpoint."""
        startup_time = getattr(app.state, "startup_time", time.time())
        store: JobStore = _service(request, "job_store")
        driver: JobDriver = _service(request, "job_driver")
        return HealthResponse(
            status="healthy",
            version=settings.observability.service_version,
            uptime_seconds=max(0.0, time.time() - startup_time),
            live_jobs=len(store),
            running_jobs=driver.active_jobs,
        )

    @app.post("/api/evaluate", response_model=SubmitResponse)
    async def submit_evaluation_endpoint(
        request: Request,
        file: UploadFile | None = File(None),
        locale: str | None = Form(None),
    ) -> SubmitResponse:
        """Validate an uploaded PDF and start evaluating it in the background."""
        if file is None:
            raise InputValidationError(NO_FILE_MESSAGE)

        data = await file.read()
        logger.info(
            f"Processing evaluation request: {file.filename} ({len(data)} bytes)",
            locale=locale or settings.pipeline.default_locale,
        )
        extracted = await run_in_threadpool(
            validate_upload, file.filename, file.content_type, data, settings.uploads
        )

        document = SubmittedDocument(
            text=extracted.text,
            filename=extracted.filename,
            locale=locale or settings.pipeline.default_locale,
        )
        driver: JobDriver = _service(request, "job_driver")
        job_id = driver.submit(document)
        return SubmitResponse(jobId=job_id)

    @app.get("/api/evaluate/stream")
    async def stream_evaluation_endpoint(
        request: Request, job_id: str | None = Query(None, alias="jobId")
    ) -> StreamingResponse:
        """Stream a job's progress as Server-Sent Events until it finishes."""
        if not job_id:
            raise InputValidationError("Missing jobId parameter")

        stream: ProgressStream = _service(request, "progress_stream")
        messages = stream.subscribe(job_id, request.is_disconnected)

        async def event_generator() -> AsyncGenerator[str, None]:
            async for message in messages:
                yield format_sse(message)

        return StreamingResponse(
            event_generator(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    @app.get("/api/jobs/{job_id}")
    async def get_job_endpoint(request: Request, job_id: str) -> dict[str, Any]:
        """Snapshot of one job."""
        store: JobStore = _service(request, "job_store")
        job = store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.to_dict()

    @app.get("/api/jobs")
    async def list_jobs_endpoint(request: Request) -> dict[str, Any]:
        """Snapshots of every live job, without results."""
        store: JobStore = _service(request, "job_store")
        jobs = [job.to_dict(include_result=False) for job in store.list_jobs()]
        return {"jobs": jobs, "count": len(jobs)}

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
        logger.warning(f"Rejected request to {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Job not found", "jobId": exc.job_id})

    @app.exception_handler(Exception)
    async def global_exception_handler_endpoint(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler."""
        logger.error(f"Unhandled API exception at {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": (
                    str(exc) if settings.environment == "development" else "An unexpected error occurred"
                ),
            },
        )

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "variation_review.api.server:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
    )
