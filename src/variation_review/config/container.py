"""
Dependency injection container for the evaluation service.

Services are created lazily from factories registered by `setup_container`.
The job store is the process-wide one from `core.job_store`; the container
only initializes it, so direct callers of `get_job_store()` see the same
instance.
"""

from contextlib import asynccontextmanager
from typing import Any

from ..observability.logging import get_logger
from .settings import Settings, get_settings

logger = get_logger(__name__)


class Container:
    """Dependency injection container with async lifecycle management."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Any] = {}
        self._singletons: dict[str, Any] = {}

    def register_factory(self, name: str, factory: Any) -> None:
        """Register a factory function for a service."""
        self._factories[name] = factory

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a singleton instance, overriding any factory."""
        self._singletons[name] = instance

    def get(self, name: str, default: Any = None) -> Any:
        """Get a service by name."""
        if name in self._singletons:
            return self._singletons[name]

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name](self)
            self._services[name] = instance
            return instance

        return default

    def require(self, name: str) -> Any:
        """Get a service by name, failing if nothing provides it."""
        service = self.get(name)
        if service is None:
            raise KeyError(f"No service registered under '{name}'")
        return service

    async def cleanup(self) -> None:
        """Close every created service that owns resources."""
        for name, service in reversed(list(self._services.items())):
            close = getattr(service, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error(f"Error cleaning up {name}: {e}")

        self._services.clear()

    @asynccontextmanager
    async def lifespan(self):
        """Async context manager for container lifecycle."""
        try:
            yield self
        finally:
            await self.cleanup()


def setup_container(settings: Settings | None = None) -> Container:
    """Setup container with default service factories."""
    container = Container(settings)

    def _job_store_factory(c: Container):
        from ..agents.factory import FIRST_STAGE
        from ..core.job_store import init_job_store

        jobs = c.settings.jobs
        return init_job_store(
            initial_stage=FIRST_STAGE,
            ttl_seconds=jobs.ttl_seconds,
            sweep_interval_seconds=jobs.sweep_interval_seconds,
        )

    def _model_client_factory(c: Container):
        from ..agents.model_client import GenerativeModelClient

        if not c.settings.llm.api_key:
            logger.warning("No model API key configured; evaluations will fail")
        return GenerativeModelClient(c.settings.llm)

    def _context_provider_factory(c: Container):
        from ..rag.context import DirectoryContextProvider, SupabaseContextProvider

        ctx = c.settings.context
        if ctx.backend == "directory":
            return DirectoryContextProvider(ctx.directory)
        if not ctx.supabase_url or not ctx.supabase_key:
            raise ValueError("Supabase context backend needs supabase_url and supabase_key")
        return SupabaseContextProvider(
            url=ctx.supabase_url, key=ctx.supabase_key, table=ctx.table, timeout=ctx.timeout
        )

    def _pipeline_factory(c: Container):
        from ..agents.factory import build_evaluation_pipeline

        return build_evaluation_pipeline(
            c.require("model_client"), c.require("context_provider"), c.settings
        )

    def _job_driver_factory(c: Container):
        from ..core.job_driver import JobDriver

        return JobDriver(
            store=c.require("job_store"),
            pipeline=c.require("pipeline"),
            timeout_seconds=c.settings.jobs.pipeline_timeout_seconds,
        )

    def _progress_stream_factory(c: Container):
        from ..core.progress_stream import ProgressStream

        return ProgressStream(
            store=c.require("job_store"), poll_interval=c.settings.jobs.poll_interval_seconds
        )

    container.register_factory("job_store", _job_store_factory)
    container.register_factory("model_client", _model_client_factory)
    container.register_factory("context_provider", _context_provider_factory)
    container.register_factory("pipeline", _pipeline_factory)
    container.register_factory("job_driver", _job_driver_factory)
    container.register_factory("progress_stream", _progress_stream_factory)

    return container
