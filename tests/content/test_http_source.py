"""
HttpContentSource 테스트

httpx.MockTransport 로 오브젝트 스토리지 응답을 흉내 냄
"""

from datetime import datetime, timezone

import httpx
import pytest

from study_orchestrator.app_context import AppContext
from study_orchestrator.config import AppConfig, ContentCacheConfig, ContentSourceConfig
from study_orchestrator.content.http_source import (
    HttpContentSource,
    normalize_object_path,
)
from study_orchestrator.content.remote_content import RemoteContentService
from study_orchestrator.exceptions import StorageError
from study_orchestrator.providers.registry import ProviderRegistry

from fakes import FakeEmbeddingProvider

BASE_URL = "https://files.example.com/study-bucket/"

OBJECTS = {
    "/study-bucket/notes/bio.md": b"Chlorophyll absorbs mostly blue and red light.",
    "/study-bucket/notes/week%201.md": b"Cells are the unit of life.",
    "/study-bucket/notes/latin1.md": b"caf\xe9 notes on photosynthesis and respiration",
}


@pytest.fixture
def received():
    return []


@pytest.fixture
async def client(received):
    async def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        path = request.url.raw_path.decode()
        if path == "/study-bucket/broken.md":
            return httpx.Response(500, text="internal error")
        if path == "/study-bucket/offline.md":
            raise httpx.ConnectError("connection refused", request=request)
        if path not in OBJECTS:
            return httpx.Response(404)
        return httpx.Response(
            200,
            content=OBJECTS[path],
            headers={"Last-Modified": "Wed, 10 Jan 2024 08:30:00 GMT"},
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as c:
        yield c


@pytest.fixture
def source(client):
    return HttpContentSource(
        ContentSourceConfig(base_url=BASE_URL, max_file_bytes=1024), client=client
    )


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


class TestFetch:
    async def test_fetches_object(self, source):
        item = await source.fetch("notes/bio.md")
        assert item.path == "notes/bio.md"
        assert item.content == "Chlorophyll absorbs mostly blue and red light."
        assert item.size == len(OBJECTS["/study-bucket/notes/bio.md"])
        assert item.last_modified == datetime(2024, 1, 10, 8, 30, tzinfo=timezone.utc)

    async def test_leading_slash_and_spaces(self, source, received):
        item = await source.fetch("/notes/week 1.md")
        assert item.content == "Cells are the unit of life."
        assert received[-1].url.raw_path == b"/study-bucket/notes/week%201.md"

    async def test_non_utf8_object_is_decoded(self, source):
        item = await source.fetch("notes/latin1.md")
        assert item.content.startswith("caf")
        assert "notes on photosynthesis" in item.content

    async def test_missing_object(self, source):
        with pytest.raises(FileNotFoundError):
            await source.fetch("notes/none.md")

    async def test_server_error(self, source):
        with pytest.raises(StorageError) as exc_info:
            await source.fetch("broken.md")
        assert exc_info.value.path == "broken.md"
        assert "500" in str(exc_info.value)

    async def test_transport_error(self, source):
        with pytest.raises(StorageError):
            await source.fetch("offline.md")

    async def test_oversized_object(self, client):
        source = HttpContentSource(
            ContentSourceConfig(base_url=BASE_URL, max_file_bytes=10), client=client
        )
        with pytest.raises(StorageError):
            await source.fetch("notes/bio.md")

    @pytest.mark.parametrize("path", ["", "/", "../secrets.md", "notes/../../x.md", "a\\b.md"])
    async def test_invalid_paths_never_reach_storage(self, source, received, path):
        with pytest.raises(ValueError):
            await source.fetch(path)
        assert received == []

    async def test_injected_client_is_not_closed(self, source, client):
        await source.close()
        assert not client.is_closed


class TestConstruction:
    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            HttpContentSource(ContentSourceConfig())

    async def test_bearer_token_from_env(self, monkeypatch):
        monkeypatch.setenv("CONTENT_TOKEN", "secret")
        source = HttpContentSource(
            ContentSourceConfig(base_url=BASE_URL, token_env="CONTENT_TOKEN")
        )
        assert source._client.headers["Authorization"] == "Bearer secret"
        await source.close()

    def test_normalize_object_path(self):
        assert normalize_object_path(" /notes/bio.md ") == "notes/bio.md"


# ---------------------------------------------------------------------------
# Through the content cache
# ---------------------------------------------------------------------------


class TestCachedFetch:
    async def test_second_read_skips_storage(self, source, received):
        service = RemoteContentService(
            source, ContentCacheConfig(max_entries=10, max_bytes=4096)
        )
        first = await service.get("notes/bio.md")
        second = await service.get("notes/bio.md")
        assert first.content == second.content
        assert len(received) == 1

    async def test_context_builds_source_from_config(self, tmp_path):
        config = AppConfig(
            storage={"sqlite_db_path": str(tmp_path / "app.db")},
            content_source={"base_url": BASE_URL},
        )
        ctx = await AppContext.create(
            config,
            registry=ProviderRegistry(),
            embedding_provider=FakeEmbeddingProvider(),
            start_scheduler=False,
        )
        try:
            assert ctx.content is not None
            assert isinstance(ctx.content._source, HttpContentSource)
            assert ctx.scheduler.get("content-cache-sweep") is not None
            assert "content" in ctx.cache_stats()
        finally:
            await ctx.close()

    async def test_context_without_source_has_no_content_cache(self, tmp_path):
        config = AppConfig(storage={"sqlite_db_path": str(tmp_path / "app.db")})
        ctx = await AppContext.create(
            config,
            registry=ProviderRegistry(),
            embedding_provider=FakeEmbeddingProvider(),
            start_scheduler=False,
        )
        try:
            assert ctx.content is None
            assert ctx.scheduler.get("content-cache-sweep") is None
        finally:
            await ctx.close()
