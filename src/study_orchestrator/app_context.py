"""
Application lifetime context.

Owns every shared instance (caches, health records, provider registry,
memory store, scheduler) so nothing lives in module-level globals. Build
one with ``await AppContext.create(config)`` and release it with
``await ctx.close()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .cache.embedding_cache import EmbeddingCache
from .chat_service import ChatService
from .config import AppConfig
from .content.http_source import HttpContentSource
from .content.remote_content import ContentSource, RemoteContentService
from .memory.classifier import MemoryClassifier
from .memory.context_assembler import ContextAssembler
from .memory.embedding import EmbeddingService
from .memory.retriever import SemanticRetriever
from .memory.store import SQLiteMemoryStore
from .orchestration.health import HealthTracker
from .orchestration.orchestrator import FallbackOrchestrator
from .providers.base import EmbeddingProvider
from .providers.embeddings import create_embedding_provider
from .providers.registry import ProviderRegistry
from .scheduler import TaskScheduler


@dataclass
class AppContext:
    config: AppConfig
    embedding_cache: EmbeddingCache
    health: HealthTracker
    registry: ProviderRegistry
    store: SQLiteMemoryStore
    embedding_provider: EmbeddingProvider
    embeddings: EmbeddingService
    retriever: SemanticRetriever
    assembler: ContextAssembler
    orchestrator: FallbackOrchestrator
    chat: ChatService
    scheduler: TaskScheduler
    content: RemoteContentService | None = None
    _closed: bool = field(default=False, repr=False)

    @classmethod
    async def create(
        cls,
        config: AppConfig,
        registry: ProviderRegistry | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        content_source: ContentSource | None = None,
        start_scheduler: bool = True,
    ) -> "AppContext":
        """Wire all components from configuration.

        Args:
            config: Validated application configuration
            registry: Prebuilt provider registry (built from config if None)
            embedding_provider: Embedding backend (built from config if None)
            content_source: Remote file source (built from
                ``config.content_source`` if None); no content cache without one
            start_scheduler: Start periodic maintenance jobs immediately
        """
        embedding_cache = EmbeddingCache(config.embedding_cache)
        health = HealthTracker(config.orchestrator)
        registry = registry or ProviderRegistry.from_config(config.orchestrator)

        store = SQLiteMemoryStore(config.storage.sqlite_db_path)
        await store.initialize()
        try:
            restored = health.restore_usage(await store.load_provider_usage())
            logger.debug(f"Usage restore: {restored} providers")
        except Exception as e:
            # Unknown usage counts as zero
            logger.warning(f"Could not restore provider usage, starting at zero: {e}")

        embedding_provider = embedding_provider or create_embedding_provider(
            config.embedding
        )
        embeddings = EmbeddingService(embedding_provider, embedding_cache)
        retriever = SemanticRetriever(
            store,
            embeddings,
            default_limit=config.memory.default_limit,
            default_min_similarity=config.memory.default_min_similarity,
            default_context_level=config.memory.default_context_level,
        )
        assembler = ContextAssembler(
            store, retriever, embeddings, MemoryClassifier(), config.memory
        )
        orchestrator = FallbackOrchestrator(
            registry, health, config.orchestrator, usage_store=store
        )
        if content_source is None and config.content_source.enabled:
            content_source = HttpContentSource(config.content_source)
            logger.info(f"Content source: {config.content_source.base_url}")
        content = (
            RemoteContentService(content_source, config.content_cache)
            if content_source is not None
            else None
        )
        chat = ChatService(orchestrator, assembler, content)

        ctx = cls(
            config=config,
            embedding_cache=embedding_cache,
            health=health,
            registry=registry,
            store=store,
            embedding_provider=embedding_provider,
            embeddings=embeddings,
            retriever=retriever,
            assembler=assembler,
            orchestrator=orchestrator,
            chat=chat,
            scheduler=TaskScheduler(),
            content=content,
        )
        ctx._register_jobs()
        if start_scheduler:
            await ctx.scheduler.start()
        logger.info("Application context ready")
        return ctx

    def _register_jobs(self) -> None:
        self.scheduler.register(
            "embedding-cache-sweep",
            self.config.embedding_cache.sweep_interval_seconds,
            self.embedding_cache.sweep_expired,
        )
        if self.content is not None:
            self.scheduler.register(
                "content-cache-sweep",
                self.config.content_cache.sweep_interval_seconds,
                self.content.sweep_expired,
            )
        self.scheduler.register(
            "memory-expiry-sweep",
            self.config.memory.expiry_sweep_interval_seconds,
            self.store.sweep_expired,
        )
        self.scheduler.register(
            "memory-embedding-backfill",
            self.config.memory.backfill_interval_seconds,
            self.assembler.backfill_embeddings,
        )

    def cache_stats(self) -> dict[str, Any]:
        stats = {"embedding": self.embedding_cache.stats()}
        if self.content is not None:
            stats["content"] = self.content.stats()
        return stats

    def provider_health(self) -> dict[str, Any]:
        return self.health.snapshot([p.config for p in self.registry.all()])

    async def close(self) -> None:
        """Stop scheduled jobs, flush background writes and close resources."""
        if self._closed:
            return
        self._closed = True

        await self.scheduler.shutdown()
        await self.assembler.drain()
        await self.orchestrator.drain()
        await self.registry.close()
        if self.content is not None:
            await self.content.close()
        close_embeddings = getattr(self.embedding_provider, "close", None)
        if close_embeddings is not None:
            await close_embeddings()
        await self.store.close()
        logger.info("Application context closed")
