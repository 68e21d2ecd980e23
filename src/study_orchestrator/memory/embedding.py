"""Embedding access for memory retrieval.

Wraps an :class:`EmbeddingProvider` with the shared embedding cache and
provides the vector helpers used by the store and the retriever.
"""

from __future__ import annotations

import struct
from typing import Sequence

import numpy as np
from loguru import logger

from ..cache.embedding_cache import EmbeddingCache
from ..providers.base import EmbeddingProvider


def serialize_embedding(embedding: Sequence[float]) -> bytes:
    """Pack a vector as little-endian float32 for SQLite BLOB storage."""
    return struct.pack(f"<{len(embedding)}f", *embedding)


def deserialize_embedding(blob: bytes) -> list[float]:
    count = len(blob) // 4
    return list(struct.unpack(f"<{count}f", blob))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]. Mismatched or zero vectors score 0."""
    if len(a) != len(b) or not a:
        return 0.0
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_similarities(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> list[float]:
    """Vectorized similarity of ``query`` against every row of ``matrix``."""
    if not matrix:
        return []
    if any(len(row) != len(query) for row in matrix):
        return [cosine_similarity(query, row) for row in matrix]
    q = np.asarray(query, dtype=np.float32)
    m = np.asarray(matrix, dtype=np.float32)
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return scores.astype(float).tolist()


class EmbeddingService:
    """Cached embeddings keyed by provider name and text."""

    def __init__(self, provider: EmbeddingProvider, cache: EmbeddingCache):
        self._provider = provider
        self._cache = cache

    @property
    def provider_name(self) -> str:
        return self._provider.name

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text, consulting the cache first.

        Provider errors propagate; callers decide whether to degrade.
        """
        cached = self._cache.get(self._provider.name, text)
        if cached is not None:
            return cached
        vectors = await self._provider.embed([text])
        if not vectors:
            raise ValueError(f"Embedding provider {self._provider.name} returned nothing")
        self._cache.set(self._provider.name, text, vectors[0])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in one provider call for the cache misses."""
        results: list[list[float] | None] = [
            self._cache.get(self._provider.name, t) for t in texts
        ]
        missing = [i for i, v in enumerate(results) if v is None]
        if missing:
            vectors = await self._provider.embed([texts[i] for i in missing])
            if len(vectors) != len(missing):
                raise ValueError(
                    f"Embedding provider {self._provider.name} returned "
                    f"{len(vectors)} vectors for {len(missing)} texts"
                )
            for i, vector in zip(missing, vectors):
                results[i] = vector
                self._cache.set(self._provider.name, texts[i], vector)
            logger.debug(
                f"Embedded {len(missing)} texts ({len(texts) - len(missing)} cached)"
            )
        return [v for v in results if v is not None]
