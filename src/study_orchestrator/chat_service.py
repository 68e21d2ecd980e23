"""Chat-turn service: memory context, fallback completion, memory write-back."""

from __future__ import annotations

import time
import uuid

from loguru import logger

from .content.remote_content import RemoteContent, RemoteContentService
from .exceptions import AllProvidersExhausted
from .memory.context_assembler import AssembledContext, ContextAssembler
from .orchestration.orchestrator import FallbackOrchestrator
from .orchestration.results import OrchestrationRequest
from .providers.base import CompletionParams
from .schemas.api import (
    ChatTurnRequest,
    ChatTurnResponse,
    MemoryReference,
    TokenUsage,
)

DEFAULT_SYSTEM_PROMPT = (
    "You are a patient study assistant. Explain concepts clearly, check "
    "understanding and build on what the student already knows."
)

# Characters of one attached file included in the prompt
MAX_FILE_CHARS = 8000


class ChatService:
    """Runs one chat turn end to end.

    Memory and file failures only shrink the prompt. The turn fails only
    when every provider is exhausted.
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        assembler: ContextAssembler,
        content: RemoteContentService | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        self._orchestrator = orchestrator
        self._assembler = assembler
        self._content = content
        self._system_prompt = system_prompt

    async def handle_turn(self, request: ChatTurnRequest) -> ChatTurnResponse:
        """
        Args:
            request: Validated chat-turn request

        Returns:
            ChatTurnResponse on success

        Raises:
            AllProvidersExhausted: no provider produced a completion
        """
        request_id = uuid.uuid4().hex[:8]
        started = time.monotonic()

        context = await self._assembler.build_context(
            request.user_id,
            request.message,
            conversation_id=request.conversation_id,
            include_session=request.memory.include_session,
            include_universal=request.memory.include_universal,
            limit=request.memory_options.limit,
            min_similarity=request.memory_options.min_similarity,
            context_level=request.memory_options.context_level,
        )
        files = await self._load_files(request.files)

        messages = self.build_messages(request.message, context, files)
        result = await self._orchestrator.execute(
            OrchestrationRequest(
                messages=messages,
                params=CompletionParams(model=request.model),
                provider=request.provider,
                request_id=request_id,
            )
        )
        if isinstance(result, AllProvidersExhausted):
            raise result

        self._assembler.persist_turn(
            request.user_id,
            request.message,
            result.content,
            conversation_id=request.conversation_id,
        )

        latency_ms = (time.monotonic() - started) * 1000.0
        logger.info(
            f"[{request_id}] turn for {request.user_id} completed in "
            f"{latency_ms:.0f}ms via {result.provider_used} "
            f"({context.memories_found} memories)"
        )
        return ChatTurnResponse(
            content=result.content,
            provider_used=result.provider_used,
            model_used=result.model_used,
            tokens_used=TokenUsage(
                input=result.input_tokens, output=result.output_tokens
            ),
            latency_ms=latency_ms,
            fallback_used=result.fallback_used,
            tier_reached=result.tier_reached,
            cached=False,
            memories_found=context.memories_found,
            memory_references=[
                MemoryReference(**m.to_reference()) for m in context.references
            ],
        )

    def build_messages(
        self,
        message: str,
        context: AssembledContext,
        files: list[RemoteContent] | None = None,
    ) -> list[dict]:
        system_parts = [self._system_prompt]
        if context.text:
            system_parts.append(context.text)
        for item in files or []:
            body = item.content
            if len(body) > MAX_FILE_CHARS:
                body = body[:MAX_FILE_CHARS] + "\n[truncated]"
            system_parts.append(f"--- Reference File: {item.path} ---\n{body}")
        return [
            {"role": "system", "content": "\n\n".join(system_parts)},
            {"role": "user", "content": message},
        ]

    async def _load_files(self, paths: list[str]) -> list[RemoteContent]:
        if not paths:
            return []
        if self._content is None:
            logger.warning("Files requested but no content source is configured")
            return []
        return await self._content.get_many(paths)
