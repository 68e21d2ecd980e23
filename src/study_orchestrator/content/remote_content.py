"""Remote file content access through the byte-bounded content cache."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from loguru import logger

from ..cache.bounded_cache import BoundedCache
from ..config import ContentCacheConfig


@dataclass
class RemoteContent:
    """File content plus the metadata reported by the source."""

    path: str
    content: str
    size: int
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ContentSource(Protocol):
    """Object-storage capability (e.g. an S3-compatible bucket client)."""

    async def fetch(self, path: str) -> RemoteContent:
        ...


class RemoteContentService:
    """Serves file content from cache, fetching from the source on miss.

    Entries are sized by their UTF-8 byte length so the cache's byte budget
    reflects resident memory. Files larger than half that budget are served
    but never cached.
    """

    def __init__(
        self,
        source: ContentSource,
        config: ContentCacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._config = config or ContentCacheConfig()
        self._cache: BoundedCache[RemoteContent] = BoundedCache.from_config(
            "content-cache", self._config, clock=clock,
        )

    @property
    def cache(self) -> BoundedCache[RemoteContent]:
        return self._cache

    async def get(self, path: str) -> RemoteContent:
        """Return content for ``path``. Source errors propagate to the caller."""
        cached = self._cache.get(path)
        if cached is not None:
            logger.debug(f"Content cache hit: {path}")
            return cached

        item = await self._source.fetch(path)
        size = len(item.content.encode("utf-8"))
        if not self._cache.set(path, item, size_hint=size):
            logger.debug(f"Content not cached (too large): {path} ({size} bytes)")
        return item

    async def get_many(self, paths: list[str]) -> list[RemoteContent]:
        """Best-effort fetch; failed paths are logged and skipped."""
        results: list[RemoteContent] = []
        for path in paths:
            try:
                results.append(await self.get(path))
            except Exception as e:
                logger.warning(f"Failed to fetch remote content {path}: {e}")
        return results

    def invalidate(self, path: str) -> bool:
        return self._cache.invalidate(path)

    def invalidate_prefix(self, prefix: str) -> int:
        return self._cache.invalidate_pattern(lambda key: key.startswith(prefix))

    def sweep_expired(self) -> int:
        return self._cache.sweep_expired()

    def stats(self) -> dict[str, Any]:
        return self._cache.stats()

    async def close(self) -> None:
        close = getattr(self._source, "close", None)
        if close is not None:
            await close()
