"""Semantic retrieval over universal memories."""

from __future__ import annotations

from enum import Enum

from loguru import logger

from ..exceptions import MemoryRetrievalDegraded
from .embedding import EmbeddingService, cosine_similarities
from .models import MemoryRecord, RetrievedMemory
from .store import SQLiteMemoryStore


class ContextLevel(str, Enum):
    LIGHT = "light"
    BALANCED = "balanced"
    COMPREHENSIVE = "comprehensive"


LIGHT_MAX_RESULTS = 2
BALANCED_MAX_RESULTS = 4
BALANCED_GUARANTEED = 2


def _topic_key(record: MemoryRecord) -> str:
    # Most specific tag last: ["conversation", scope, marker]
    return record.tags[-1] if record.tags else "general"


def apply_context_level(
    ranked: list[RetrievedMemory], level: ContextLevel | str
) -> list[RetrievedMemory]:
    """Trim an already ranked result list to the requested context level."""
    level = ContextLevel(level)
    if level == ContextLevel.LIGHT:
        return ranked[:LIGHT_MAX_RESULTS]
    if level == ContextLevel.COMPREHENSIVE:
        return ranked

    head = ranked[:BALANCED_MAX_RESULTS]
    seen: set[str] = set()
    diverse: list[RetrievedMemory] = []
    for item in head:
        key = _topic_key(item.record)
        if key not in seen or len(diverse) < BALANCED_GUARANTEED:
            seen.add(key)
            diverse.append(item)
    return diverse


class SemanticRetriever:
    """Ranks a user's universal memories by cosine similarity to a query.

    Only records that already carry an embedding are candidates. Results
    below ``min_similarity`` are discarded; ties on similarity go to the
    more recent record.
    """

    def __init__(
        self,
        store: SQLiteMemoryStore,
        embeddings: EmbeddingService,
        default_limit: int = 5,
        default_min_similarity: float = 0.7,
        default_context_level: str = ContextLevel.BALANCED.value,
    ):
        self._store = store
        self._embeddings = embeddings
        self._default_limit = default_limit
        self._default_min_similarity = default_min_similarity
        self._default_context_level = ContextLevel(default_context_level)

    async def search(
        self,
        user_id: str,
        query_text: str,
        limit: int | None = None,
        min_similarity: float | None = None,
        context_level: ContextLevel | str | None = None,
    ) -> list[RetrievedMemory]:
        """Best-effort search. Any failure yields an empty list."""
        try:
            return await self.search_or_raise(
                user_id, query_text, limit, min_similarity, context_level
            )
        except MemoryRetrievalDegraded as e:
            logger.warning(str(e))
            return []

    async def search_or_raise(
        self,
        user_id: str,
        query_text: str,
        limit: int | None = None,
        min_similarity: float | None = None,
        context_level: ContextLevel | str | None = None,
    ) -> list[RetrievedMemory]:
        """Search, raising ``MemoryRetrievalDegraded`` instead of degrading.

        Args:
            user_id: Owner of the memories
            query_text: Text to embed and compare against
            limit: Maximum results before context-level trimming
            min_similarity: Inclusive similarity floor
            context_level: light, balanced or comprehensive

        Returns:
            Ranked memories, most similar first
        """
        limit = self._default_limit if limit is None else limit
        if min_similarity is None:
            min_similarity = self._default_min_similarity
        level = ContextLevel(context_level or self._default_context_level)

        if limit <= 0 or not query_text.strip():
            return []

        try:
            query_vector = await self._embeddings.embed_one(query_text)
        except Exception as e:
            raise MemoryRetrievalDegraded(
                "universal", f"embedding failed: {e}"
            ) from e

        try:
            candidates = await self._store.query_universal_candidates(user_id)
        except Exception as e:
            raise MemoryRetrievalDegraded(
                "universal", f"candidate lookup failed: {e}"
            ) from e

        if not candidates:
            return []

        scores = cosine_similarities(
            query_vector, [c.embedding for c in candidates]
        )
        scored = [
            RetrievedMemory(record=record, similarity=score)
            for record, score in zip(candidates, scores)
            if score >= min_similarity
        ]
        scored.sort(
            key=lambda m: (m.similarity, m.record.created_at), reverse=True
        )
        ranked = scored[:limit]
        logger.debug(
            f"Universal search for {user_id}: {len(candidates)} candidates, "
            f"{len(scored)} above {min_similarity}, returning {len(ranked)}"
        )
        return apply_context_level(ranked, level)
