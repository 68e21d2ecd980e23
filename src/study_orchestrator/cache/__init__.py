from .bounded_cache import BoundedCache, CacheEntry
from .embedding_cache import EmbeddingCache

__all__ = [
    "BoundedCache",
    "CacheEntry",
    "EmbeddingCache",
]
