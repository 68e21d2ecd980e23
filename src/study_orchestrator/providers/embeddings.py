"""Embedding providers.

The local provider runs sentence-transformers in-process and lazy-loads the
model on first use. The remote provider calls an OpenAI-compatible
``/embeddings`` endpoint.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger
from openai import AsyncOpenAI

from ..config import EmbeddingConfig
from ..env_config import get_env

if TYPE_CHECKING:
    import numpy as np


class LocalEmbeddingProvider:
    """sentence-transformers model, encoded off the event loop."""

    def __init__(self, config: EmbeddingConfig | None = None):
        self._config = config or EmbeddingConfig()
        self._model = None
        self._dimension = self._config.dimension
        self._load_lock = asyncio.Lock()
        self.name = f"local:{self._config.model}"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _load_model(self) -> None:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers is required for local embeddings. "
                "Install with: pip install study-orchestrator[local-embeddings]"
            )

        logger.info(f"Loading embedding model: {self._config.model}")
        self._model = SentenceTransformer(
            self._config.model,
            trust_remote_code=self._config.trust_remote_code,
        )
        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"Embedding model loaded: dim={self._dimension}")

    async def _ensure_model(self) -> None:
        if self._model is not None:
            return
        async with self._load_lock:
            if self._model is None:
                await asyncio.to_thread(self._load_model)

    def _encode(self, texts: list[str]) -> list[list[float]]:
        embeddings: np.ndarray = self._model.encode(
            texts,
            batch_size=32,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return embeddings.tolist()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        await self._ensure_model()
        return await asyncio.to_thread(self._encode, texts)


class OpenAICompatibleEmbeddingProvider:
    """Remote embeddings via ``client.embeddings.create``."""

    def __init__(
        self, config: EmbeddingConfig, client: AsyncOpenAI | None = None
    ):
        self._config = config
        self._client = client
        self.name = f"remote:{config.model}"

    @property
    def dimension(self) -> int:
        return self._config.dimension

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = get_env(self._config.api_key_env) if self._config.api_key_env else None
            self._client = AsyncOpenAI(
                base_url=self._config.base_url, api_key=api_key or None, max_retries=1,
            )
        return self._client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self._get_client().embeddings.create(
            model=self._config.model, input=texts,
        )
        # The API may return items out of order
        items = sorted(response.data, key=lambda d: d.index)
        return [list(item.embedding) for item in items]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


def create_embedding_provider(
    config: EmbeddingConfig,
) -> LocalEmbeddingProvider | OpenAICompatibleEmbeddingProvider:
    if config.provider == "openai_compatible":
        return OpenAICompatibleEmbeddingProvider(config)
    return LocalEmbeddingProvider(config)
