"""Context assembler for the dual-layer memory subsystem.

Before a completion it gathers session and universal memories
concurrently and renders them into one context block. After a successful
completion it classifies the turn and persists it in the background.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from loguru import logger

from ..config import MemoryConfig
from ..exceptions import MemoryPersistenceFailed, MemoryRetrievalDegraded
from .classifier import MemoryClassifier
from .embedding import EmbeddingService
from .models import MemoryRecord, MemoryScope, RetrievedMemory
from .retriever import ContextLevel, SemanticRetriever
from .store import SQLiteMemoryStore

SESSION_HEADER = "--- Session Context (Recent Conversation) ---"
UNIVERSAL_HEADER = "--- Universal Knowledge (Relevant Past Learnings) ---"


@dataclass
class AssembledContext:
    """Memory context for one outbound prompt."""

    session: list[RetrievedMemory] = field(default_factory=list)
    """Session memories, oldest first."""

    universal: list[RetrievedMemory] = field(default_factory=list)
    """Universal memories, most similar first."""

    text: str = ""
    degraded: list[str] = field(default_factory=list)

    @property
    def memories_found(self) -> int:
        return len(self.session) + len(self.universal)

    @property
    def references(self) -> list[RetrievedMemory]:
        return self.session + self.universal


class ContextAssembler:
    """Builds memory context and persists finished turns.

    Retrieval failures never fail the turn: the failing layer is logged,
    recorded in ``AssembledContext.degraded`` and left empty.
    """

    def __init__(
        self,
        store: SQLiteMemoryStore,
        retriever: SemanticRetriever,
        embeddings: EmbeddingService,
        classifier: MemoryClassifier | None = None,
        config: MemoryConfig | None = None,
    ):
        self._store = store
        self._retriever = retriever
        self._embeddings = embeddings
        self._classifier = classifier or MemoryClassifier()
        self._config = config or MemoryConfig()
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def build_context(
        self,
        user_id: str,
        query: str,
        conversation_id: str | None = None,
        include_session: bool = True,
        include_universal: bool = True,
        limit: int | None = None,
        min_similarity: float | None = None,
        context_level: ContextLevel | str | None = None,
    ) -> AssembledContext:
        """Gather both memory layers concurrently and render them.

        Args:
            user_id: Owner of the memories
            query: The inbound user message
            conversation_id: Session scope; no session lookup without it
            include_session: Whether to query session memory
            include_universal: Whether to run semantic search
            limit: Maximum memories per layer
            min_similarity: Similarity floor for universal memories
            context_level: Trimming level for universal memories

        Returns:
            AssembledContext with the rendered ``text``
        """
        limit = limit or self._config.default_limit

        async def _session() -> list[RetrievedMemory]:
            if not (include_session and conversation_id):
                return []
            try:
                records = await self._store.query_by_session(
                    conversation_id, limit=limit, user_id=user_id
                )
            except Exception as e:
                raise MemoryRetrievalDegraded("session", str(e)) from e
            # Store returns newest first; context reads oldest to newest
            return [RetrievedMemory(record=r) for r in reversed(records)]

        async def _universal() -> list[RetrievedMemory]:
            if not include_universal:
                return []
            return await self._retriever.search_or_raise(
                user_id,
                query,
                limit=limit,
                min_similarity=min_similarity,
                context_level=context_level,
            )

        session_result, universal_result = await asyncio.gather(
            _session(), _universal(), return_exceptions=True
        )

        context = AssembledContext()
        for layer, result in (("session", session_result), ("universal", universal_result)):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(f"{layer} memory unavailable for {user_id}: {result}")
                context.degraded.append(layer)
            elif layer == "session":
                context.session = result
            else:
                context.universal = result

        context.text = self.format_context(context.session, context.universal)
        logger.debug(
            f"Context for {user_id}: {len(context.session)} session, "
            f"{len(context.universal)} universal"
        )
        return context

    @staticmethod
    def format_context(
        session: list[RetrievedMemory], universal: list[RetrievedMemory]
    ) -> str:
        parts: list[str] = []
        if session:
            parts.append(SESSION_HEADER)
            parts.extend(
                f"{i}. {m.record.content}" for i, m in enumerate(session, 1)
            )
        if universal:
            if parts:
                parts.append("")
            parts.append(UNIVERSAL_HEADER)
            parts.extend(
                f"{i}. [{m.similarity:.2f}] {m.record.content}"
                for i, m in enumerate(universal, 1)
            )
        return "\n".join(parts)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def build_record(
        self,
        user_id: str,
        user_message: str,
        ai_response: str,
        conversation_id: str | None = None,
    ) -> MemoryRecord:
        """Classify a finished turn into a new memory record."""
        result = self._classifier.classify(
            user_message, ai_response, has_conversation_id=bool(conversation_id)
        )
        if result.scope == MemoryScope.UNIVERSAL:
            conversation_id = None
        elif not conversation_id:
            # Session memories always belong to a conversation
            conversation_id = str(uuid4())

        created_at = datetime.now(timezone.utc)
        return MemoryRecord(
            user_id=user_id,
            scope=result.scope,
            conversation_id=conversation_id,
            content=f"User: {user_message}\nAssistant: {ai_response}",
            priority=result.priority,
            retention=result.retention,
            tags=["conversation", result.scope.value, result.marker],
            created_at=created_at,
            expires_at=result.retention.expires_at(created_at, self._config.retention),
        )

    async def store_turn(
        self,
        user_id: str,
        user_message: str,
        ai_response: str,
        conversation_id: str | None = None,
    ) -> MemoryRecord:
        """Classify and append a turn; embed it when universal.

        Raises:
            MemoryPersistenceFailed: classification or append failed
        """
        try:
            record = self.build_record(
                user_id, user_message, ai_response, conversation_id
            )
            await self._store.append(record)
        except Exception as e:
            raise MemoryPersistenceFailed(user_id, str(e)) from e

        logger.info(
            f"Stored {record.scope.value} memory for {user_id} "
            f"({record.priority.value}/{record.retention.value})"
        )
        if record.scope == MemoryScope.UNIVERSAL:
            await self.embed_record(record)
        return record

    def persist_turn(
        self,
        user_id: str,
        user_message: str,
        ai_response: str,
        conversation_id: str | None = None,
    ) -> asyncio.Task:
        """Fire-and-forget :meth:`store_turn`. Failures are only logged."""
        task = asyncio.create_task(
            self._persist_safely(user_id, user_message, ai_response, conversation_id)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _persist_safely(
        self,
        user_id: str,
        user_message: str,
        ai_response: str,
        conversation_id: str | None,
    ) -> MemoryRecord | None:
        try:
            return await self.store_turn(
                user_id, user_message, ai_response, conversation_id
            )
        except MemoryPersistenceFailed as e:
            logger.error(str(e))
            return None

    async def embed_record(self, record: MemoryRecord) -> bool:
        """Attach an embedding to a stored record.

        A failure leaves the record for the backfill job.
        """
        try:
            vector = await self._embeddings.embed_one(record.content)
            await self._store.attach_embedding(record.id, vector)
        except Exception as e:
            logger.warning(f"Embedding deferred for memory {record.id}: {e}")
            return False
        return True

    async def backfill_embeddings(self, batch_size: int | None = None) -> int:
        """Embed universal records still missing a vector.

        Returns:
            Number of records embedded
        """
        batch_size = batch_size or self._config.backfill_batch_size
        records = await self._store.get_missing_embeddings(limit=batch_size)
        if not records:
            return 0

        vectors = await self._embeddings.embed_many([r.content for r in records])
        for record, vector in zip(records, vectors):
            await self._store.attach_embedding(record.id, vector)
        logger.info(f"Backfilled embeddings for {len(records)} memories")
        return len(records)

    async def drain(self) -> None:
        """Wait for in-flight persistence tasks."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
