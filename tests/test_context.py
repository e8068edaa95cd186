"""
Tests for reference guidance providers.
"""

import httpx
import pytest

from variation_review.core.exceptions import ContextFetchError
from variation_review.rag.context import (
    DirectoryContextProvider,
    ReferenceContext,
    ReferenceContextProvider,
    SupabaseContextProvider,
)


def supabase(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseContextProvider(
        url="https://project.supabase.co/", key="service-key", table="document_chunks", client=client
    )


class TestReferenceContext:
    def test_segments_joined_with_blank_line(self):
        context = ReferenceContext.from_segments(["first", "second", "third"])
        assert context.text == "first\n\nsecond\n\nthird"
        assert len(context) == 3

    def test_empty_context(self):
        context = ReferenceContext.from_segments([])
        assert context.text == ""
        assert len(context) == 0


class TestSupabaseContextProvider:
    """Test the PostgREST-backed provider."""

    @pytest.mark.asyncio
    async def test_fetches_chunks_in_page_order(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(
                200,
                json=[
                    {"content": "Page 1 guidance", "metadata": {"page": 1}},
                    {"content": "", "metadata": {"page": 2}},
                    {"content": "Page 3 guidance", "metadata": {"page": 3}},
                ],
            )

        provider = supabase(handler)
        segments = await provider.fetch_reference_context()

        assert segments == ["Page 1 guidance", "Page 3 guidance"]
        request = captured["request"]
        assert request.url.path == "/rest/v1/document_chunks"
        assert request.url.params["select"] == "content,metadata"
        assert request.url.params["order"] == "metadata->page.asc"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["authorization"] == "Bearer service-key"

    @pytest.mark.asyncio
    async def test_http_error_raises_context_error(self):
        provider = supabase(lambda request: httpx.Response(401, json={"message": "bad key"}))

        with pytest.raises(ContextFetchError, match="HTTP 401"):
            await provider.fetch_reference_context()

    @pytest.mark.asyncio
    async def test_transport_error_raises_context_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(ContextFetchError, match="unreachable"):
            await supabase(handler).fetch_reference_context()

    @pytest.mark.asyncio
    async def test_unexpected_shape_raises(self):
        provider = supabase(lambda request: httpx.Response(200, json={"rows": []}))

        with pytest.raises(ContextFetchError, match="unexpected response shape"):
            await provider.fetch_reference_context()

    def test_satisfies_provider_protocol(self):
        assert isinstance(supabase(lambda r: httpx.Response(200, json=[])), ReferenceContextProvider)


class TestDirectoryContextProvider:
    """Test the local-files provider."""

    @pytest.mark.asyncio
    async def test_reads_files_in_name_order(self, tmp_path):
        (tmp_path / "02-minor.md").write_text("Minor variations\n", encoding="utf-8")
        (tmp_path / "01-major.txt").write_text("Major variations", encoding="utf-8")
        (tmp_path / "03-empty.txt").write_text("   ", encoding="utf-8")
        (tmp_path / "notes.json").write_text("{}", encoding="utf-8")

        segments = await DirectoryContextProvider(tmp_path).fetch_reference_context()

        assert segments == ["Major variations", "Minor variations"]

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, tmp_path):
        provider = DirectoryContextProvider(tmp_path / "absent")

        with pytest.raises(ContextFetchError, match="not found"):
            await provider.fetch_reference_context()
