"""
Study Orchestrator Test Fixtures
공통 테스트 픽스처
"""

import pytest

from study_orchestrator import token_counter
from study_orchestrator.app_context import AppContext
from study_orchestrator.cache.embedding_cache import EmbeddingCache
from study_orchestrator.config import AppConfig, EmbeddingCacheConfig
from study_orchestrator.memory.embedding import EmbeddingService
from study_orchestrator.memory.store import SQLiteMemoryStore
from study_orchestrator.providers.registry import ProviderRegistry

from fakes import (
    FakeClock,
    FakeContentSource,
    FakeEmbeddingProvider,
    ScriptedProvider,
    provider_config,
)


@pytest.fixture(autouse=True)
def offline_token_counter(monkeypatch):
    """tiktoken 인코딩 다운로드 없이 추정치 사용"""
    monkeypatch.setattr(
        token_counter, "_default_counter", token_counter.TokenCounter(encoding=None)
    )


@pytest.fixture
def fake_clock():
    """수동 진행 시계"""
    return FakeClock()


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider):
    return EmbeddingService(embedding_provider, EmbeddingCache(EmbeddingCacheConfig()))


@pytest.fixture
async def memory_store(tmp_path):
    """임시 SQLite 메모리 저장소"""
    store = SQLiteMemoryStore(db_path=str(tmp_path / "memory.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def content_source():
    return FakeContentSource(
        {"notes/bio.md": "Chlorophyll absorbs mostly blue and red light."}
    )


@pytest.fixture
async def app_context(tmp_path, embedding_provider, content_source):
    """
    스크립트 프로바이더 2개(groq tier 1, gemini tier 2)로 구성된 컨텍스트

    프로바이더 동작은 ``ctx.registry.get(name).adapter.behavior``로 바꿉니다.
    """
    providers = [provider_config("groq", tier=1), provider_config("gemini", tier=2)]
    config = AppConfig(
        orchestrator={"providers": providers, "retry_after_seconds": 15},
        storage={"sqlite_db_path": str(tmp_path / "app.db")},
    )
    registry = ProviderRegistry()
    for pc in providers:
        registry.register(pc, ScriptedProvider(pc.name))

    ctx = await AppContext.create(
        config,
        registry=registry,
        embedding_provider=embedding_provider,
        content_source=content_source,
        start_scheduler=False,
    )
    yield ctx
    await ctx.close()
