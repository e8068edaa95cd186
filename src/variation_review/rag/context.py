"""
Reference guidance loading for evaluation runs.

The full body of regulatory guidance is injected into every stage prompt, so a
provider returns every stored segment in document order rather than a
similarity-ranked subset. Providers are called once per pipeline run.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import httpx

from ..core.exceptions import ContextFetchError
from ..observability.logging import get_logger

logger = get_logger(__name__)

SEGMENT_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class ReferenceContext:
    """Immutable guidance text shared by every stage of one run."""

    segments: tuple[str, ...]
    text: str

    @classmethod
    def from_segments(cls, segments: list[str] | tuple[str, ...]) -> "ReferenceContext":
        segments = tuple(segments)
        return cls(segments=segments, text=SEGMENT_SEPARATOR.join(segments))

    def __len__(self) -> int:
        return len(self.segments)


@runtime_checkable
class ReferenceContextProvider(Protocol):
    """Source of the ordered guidance segments."""

    async def fetch_reference_context(self) -> list[str]: ...


class SupabaseContextProvider:
    """Reads guidance chunks from a Supabase table through its PostgREST API."""

    def __init__(
        self,
        url: str,
        key: str,
        table: str = "document_chunks",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.table = table
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    async def fetch_reference_context(self) -> list[str]:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Accept": "application/json",
        }
        params = {"select": "content,metadata", "order": "metadata->page.asc"}

        try:
            response = await self._client.get(self.endpoint, headers=headers, params=params)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Error fetching document chunks: HTTP {e.response.status_code}")
            raise ContextFetchError(
                f"Failed to load reference guidance: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching document chunks: {e}")
            raise ContextFetchError(f"Failed to load reference guidance: {e}") from e

        if not isinstance(rows, list):
            raise ContextFetchError("Failed to load reference guidance: unexpected response shape")

        segments = [row["content"] for row in rows if isinstance(row, dict) and row.get("content")]
        logger.debug(f"Fetched {len(segments)} guidance chunks", table=self.table)
        return segments

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class DirectoryContextProvider:
    """Reads guidance from `.txt` and `.md` files in a directory, in name order."""

    patterns = ("*.txt", "*.md")

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _read_segments(self) -> list[str]:
        if not self.directory.is_dir():
            raise ContextFetchError(f"Guidance directory not found: {self.directory}")

        files = sorted(
            {path for pattern in self.patterns for path in self.directory.glob(pattern)}
        )
        segments = []
        for path in files:
            text = path.read_text(encoding="utf-8").strip()
            if text:
                segments.append(text)
        return segments

    async def fetch_reference_context(self) -> list[str]:
        try:
            segments = await asyncio.to_thread(self._read_segments)
        except OSError as e:
            raise ContextFetchError(f"Failed to read guidance files: {e}") from e

        logger.debug(f"Read {len(segments)} guidance files", directory=str(self.directory))
        return segments

    async def aclose(self) -> None:
        pass
