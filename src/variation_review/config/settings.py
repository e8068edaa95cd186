"""
Configuration system with Pydantic Settings and validation.

- Type-safe configuration with Pydantic v2
- Environment variable parsing (`VR_` prefix, `__` for nested sections)
- Nested sections with sensible defaults for local development
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STAGE_COUNT = 6


class JobsConfig(BaseModel):
    """Job store lifetime and streaming cadence."""

    ttl_seconds: float = Field(600.0, gt=0, description="Idle time before a job is evicted")
    sweep_interval_seconds: float = Field(60.0, gt=0)
    pipeline_timeout_seconds: float = Field(300.0, gt=0, description="Wall-clock ceiling per run")
    poll_interval_seconds: float = Field(0.1, gt=0, description="Progress stream poll interval")

    @model_validator(mode="after")
    def validate_timeout_within_ttl(self) -> "JobsConfig":
        if self.pipeline_timeout_seconds >= self.ttl_seconds:
            raise ValueError("pipeline_timeout_seconds must be less than ttl_seconds")
        return self


class PipelineConfig(BaseModel):
    """Stage pipeline behaviour."""

    percent_checkpoints: list[int] = Field(default_factory=lambda: [15, 30, 50, 65, 80, 100])
    guideline_version: str = Field("v6.3")
    default_locale: str = Field("en")

    @field_validator("percent_checkpoints")
    @classmethod
    def validate_checkpoints(cls, v: list[int]) -> list[int]:
        if len(v) != STAGE_COUNT:
            raise ValueError(f"percent_checkpoints needs exactly {STAGE_COUNT} values")
        if any(b <= a for a, b in zip(v, v[1:], strict=False)):
            raise ValueError("percent_checkpoints must be strictly increasing")
        if v[0] <= 0 or v[-1] != 100:
            raise ValueError("percent_checkpoints must start above 0 and end at 100")
        return v


class ModelEndpoint(BaseModel):
    """Configuration for the generative model endpoint."""

    name: str = Field("gemini-2.5-flash", description="Model used for every stage")
    base_url: str = Field("https://generativelanguage.googleapis.com/v1beta")
    api_key: str | None = Field(None, description="Google API key")
    timeout: float = Field(120.0, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(3, gt=0)
    temperature: float = Field(0.1, ge=0.0, le=2.0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class ContextConfig(BaseModel):
    """Where the reference guidance text is loaded from."""

    backend: str = Field("supabase", description="supabase or directory")
    supabase_url: str | None = Field(None)
    supabase_key: str | None = Field(None)
    table: str = Field("document_chunks")
    directory: Path = Field(Path("./data/guidelines"))
    timeout: float = Field(30.0, gt=0)

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = {"supabase", "directory"}
        if v not in allowed:
            raise ValueError(f"backend must be one of {allowed}")
        return v

    @model_validator(mode="after")
    def validate_supabase(self) -> "ContextConfig":
        if self.supabase_url:
            self.supabase_url = self.supabase_url.rstrip("/")
        return self


class UploadConfig(BaseModel):
    """Submission validation limits."""

    max_bytes: int = Field(10 * 1024 * 1024, gt=0)
    min_text_chars: int = Field(100, ge=0)
    accepted_content_types: list[str] = Field(default_factory=lambda: ["application/pdf"])


class ObservabilityConfig(BaseModel):
    """Configuration for logging, tracing and metrics."""

    log_level: str = Field("INFO")
    enable_tracing: bool = Field(False)
    enable_metrics: bool = Field(True)
    otlp_endpoint: str | None = Field(None)
    service_name: str = Field("variation-review")
    service_version: str = Field("1.0.0")


class APIConfig(BaseModel):
    """Configuration for API server."""

    host: str = Field("0.0.0.0")
    port: int = Field(8000, gt=0, le=65535)
    reload: bool = Field(False)
    enable_cors: bool = Field(True)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    enable_docs: bool = Field(True)


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="VR_", env_nested_delimiter="__", case_sensitive=False, extra="ignore"
    )

    jobs: JobsConfig = Field(default_factory=JobsConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    llm: ModelEndpoint = Field(default_factory=ModelEndpoint)
    context: ContextConfig = Field(default_factory=ContextConfig)
    uploads: UploadConfig = Field(default_factory=UploadConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    environment: str = Field(
        "development", description="Environment: development, staging, production"
    )
    debug: bool = Field(False)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
