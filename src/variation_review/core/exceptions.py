"""Error types raised across the evaluation service."""


class EvaluationError(Exception):
    """Base class for every evaluation failure."""


class InputValidationError(EvaluationError):
    """Submission rejected before a job was created."""


class ContextFetchError(EvaluationError):
    """Reference guidance could not be loaded."""


class ModelResponseError(EvaluationError):
    """The generation service failed or returned output that did not validate."""


class StageExecutionError(EvaluationError):
    """A pipeline stage failed; the collaborator's message is kept verbatim."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(f"Stage '{stage}' failed: {message}")


class PipelineTimeoutError(EvaluationError):
    """The pipeline exceeded its wall-clock ceiling."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Evaluation timed out after {timeout:.0f}s")


class JobNotFoundError(EvaluationError):
    """No live job with the requested id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
