from .base import (
    CompletionParams,
    CompletionProvider,
    CompletionResult,
    EmbeddingProvider,
)
from .embeddings import (
    LocalEmbeddingProvider,
    OpenAICompatibleEmbeddingProvider,
    create_embedding_provider,
)
from .openai_compatible import OpenAICompatibleProvider
from .registry import ProviderRegistry, RegisteredProvider
from .static import StaticProvider

__all__ = [
    "CompletionParams",
    "CompletionProvider",
    "CompletionResult",
    "EmbeddingProvider",
    "LocalEmbeddingProvider",
    "OpenAICompatibleEmbeddingProvider",
    "OpenAICompatibleProvider",
    "ProviderRegistry",
    "RegisteredProvider",
    "StaticProvider",
    "create_embedding_provider",
]
