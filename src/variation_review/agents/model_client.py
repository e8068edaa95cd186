"""
Client for the Gemini `generateContent` REST API in JSON response mode.

Every stage asks for one JSON object and validates it against a pydantic
model. Transport hiccups (timeouts, connection errors, 429 and 5xx replies)
are retried with exponential backoff; anything still failing after the last
attempt, and any reply that does not validate, raises `ModelResponseError`.
"""

import json
import re
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from ..config.settings import ModelEndpoint
from ..core.exceptions import ModelResponseError
from ..observability.logging import get_logger
from ..observability.metrics import counter, timer
from ..observability.tracing import trace_span

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def is_retryable(error: BaseException) -> bool:
    """Transport failures and overload replies are worth another attempt."""
    if isinstance(error, httpx.TimeoutException | httpx.ConnectError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return False


class GenerativeModelClient:
    """Structured-output client shared by every stage executor."""

    def __init__(
        self,
        endpoint: ModelEndpoint,
        http_client: httpx.AsyncClient | None = None,
        retry_wait: wait_base | None = None,
    ):
        self.endpoint = endpoint
        self._http_client = http_client
        self._owned_client = http_client is None
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.endpoint.timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=2),
            )
            self._owned_client = True
        return self._http_client

    async def aclose(self) -> None:
        if self._owned_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def url(self) -> str:
        return f"{self.endpoint.base_url}/models/{self.endpoint.name}:generateContent"

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.endpoint.api_key:
            headers["x-goog-api-key"] = self.endpoint.api_key
        return headers

    def _build_payload(self, prompt: str, system_prompt: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": self.endpoint.temperature,
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        client = self._ensure_client()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.endpoint.max_retries),
            wait=self._retry_wait,
            retry=retry_if_exception(is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying model call (attempt {attempt.retry_state.attempt_number})",
                        model=self.endpoint.name,
                    )
                response = await client.post(self.url, json=payload, headers=self._get_headers())
                response.raise_for_status()
                return response.json()

    @staticmethod
    def _extract_text(body: dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            feedback = body.get("promptFeedback", {})
            reason = feedback.get("blockReason", "no candidates returned")
            raise ModelResponseError(f"Model returned no output: {reason}")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            finish = candidates[0].get("finishReason", "unknown")
            raise ModelResponseError(f"Model returned an empty response (finishReason: {finish})")

        # JSON mode occasionally still wraps the object in a markdown fence
        fenced = FENCE_RE.match(text.strip())
        return fenced.group(1) if fenced else text

    @trace_span("model.generate_structured")
    async def generate_structured(
        self, schema: type[T], prompt: str, system_prompt: str | None = None
    ) -> T:
        """Generate one JSON object and validate it against `schema`."""
        payload = self._build_payload(prompt, system_prompt)

        try:
            with timer("model_call_duration_seconds", {"schema": schema.__name__}):
                body = await self._post(payload)
        except httpx.HTTPStatusError as e:
            counter("model_calls_failed_total").add(1, {"schema": schema.__name__})
            logger.error(f"Model call failed: HTTP {e.response.status_code}")
            raise ModelResponseError(
                f"Failed to generate structured output: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            counter("model_calls_failed_total").add(1, {"schema": schema.__name__})
            logger.error(f"Model call failed: {e}")
            raise ModelResponseError(f"Failed to generate structured output: {e}") from e

        counter("model_calls_total").add(1, {"schema": schema.__name__})
        text = self._extract_text(body)

        try:
            return schema.model_validate(json.loads(text))
        except json.JSONDecodeError as e:
            raise ModelResponseError(f"Model response is not valid JSON: {e.msg}") from e
        except ValidationError as e:
            raise ModelResponseError(
                f"Model response does not match {schema.__name__}: "
                f"{e.error_count()} validation errors"
            ) from e
