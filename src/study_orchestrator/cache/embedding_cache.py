"""Embedding vector cache keyed by provider and text."""

from __future__ import annotations

import hashlib
import time
from typing import Any, Callable

from ..config import EmbeddingCacheConfig
from .bounded_cache import BoundedCache


class EmbeddingCache:
    """Caches single-text embeddings so repeated queries skip the provider."""

    def __init__(
        self,
        config: EmbeddingCacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config or EmbeddingCacheConfig()
        self._cache: BoundedCache[list[float]] = BoundedCache.from_config(
            "embedding-cache", self._config, clock=clock,
        )

    @property
    def cache(self) -> BoundedCache[list[float]]:
        return self._cache

    @staticmethod
    def make_key(provider: str, text: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]
        return f"{provider}:{digest}"

    def get(self, provider: str, text: str) -> list[float] | None:
        return self._cache.get(self.make_key(provider, text))

    def set(self, provider: str, text: str, vector: list[float]) -> bool:
        # float32 on the wire; the cache has no byte ceiling by default
        return self._cache.set(
            self.make_key(provider, text), list(vector), size_hint=len(vector) * 4,
        )

    def invalidate_provider(self, provider: str) -> int:
        prefix = f"{provider}:"
        return self._cache.invalidate_pattern(lambda key: key.startswith(prefix))

    def sweep_expired(self) -> int:
        return self._cache.sweep_expired()

    def stats(self) -> dict[str, Any]:
        return self._cache.stats()
