"""
범용 바운디드 캐시

TTL 만료와 LRU 제거를 지원하는 인메모리 key→value 캐시입니다.
임베딩 캐시와 원격 파일 콘텐츠 캐시가 같은 구현을 공유합니다.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

from ..config import CacheConfig

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """캐시 항목"""

    key: str
    value: V
    size_hint: int
    created_at: float
    last_accessed_at: float
    access_count: int = 0


class BoundedCache(Generic[V]):
    """
    TTL + LRU 바운디드 캐시

    특징:
    - TTL(Time To Live): 생성 후 일정 시간이 지나면 조회 시 미스로 처리하고 삭제
    - LRU(Least Recently Used): 개수/바이트 예산 초과 시 가장 오래 접근되지 않은 항목 제거
    - 어드미션 제어: 바이트 예산의 절반보다 큰 항목은 저장하지 않음
    - 스레드 안전: Lock을 사용한 동시성 제어
    - 통계 제공: 히트율, 캐시 크기 등
    """

    def __init__(
        self,
        name: str,
        max_entries: int = 1000,
        ttl_seconds: float = 3600.0,
        max_bytes: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: 로그/통계에 사용할 캐시 이름
            max_entries: 최대 항목 수
            ttl_seconds: 항목 만료 시간 (초)
            max_bytes: 최대 바이트 예산 (None이면 바이트 제한 없음)
            clock: 시간 함수 (테스트에서 교체 가능)
        """
        self.name = name
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._max_bytes = max_bytes
        self._clock = clock
        self._cache: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._total_bytes = 0
        self._lock = Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "expirations": 0,
            "rejections": 0,
        }

    @classmethod
    def from_config(
        cls,
        name: str,
        config: CacheConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> "BoundedCache[V]":
        return cls(
            name=name,
            max_entries=config.max_entries,
            ttl_seconds=config.ttl_seconds,
            max_bytes=config.max_bytes,
            clock=clock,
        )

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def max_bytes(self) -> int | None:
        return self._max_bytes

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        """항목 만료 여부 확인"""
        return now - entry.created_at > self._ttl_seconds

    def _remove(self, key: str) -> CacheEntry[V] | None:
        """항목 제거 및 바이트 합계 갱신 (락 획득 상태에서 호출)"""
        entry = self._cache.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size_hint
        return entry

    def _evict_expired(self, now: float) -> int:
        """만료된 항목 제거 (락 획득 상태에서 호출)"""
        expired_keys = [
            key for key, entry in self._cache.items() if self._is_expired(entry, now)
        ]
        for key in expired_keys:
            self._remove(key)
            self._stats["expirations"] += 1
        return len(expired_keys)

    def _over_budget(self, incoming_bytes: int) -> bool:
        if len(self._cache) >= self._max_entries:
            return True
        if self._max_bytes is not None:
            return self._total_bytes + incoming_bytes > self._max_bytes
        return False

    def _make_room(self, incoming_bytes: int, now: float) -> None:
        """만료 항목 → LRU 순으로 예산이 맞을 때까지 제거 (락 획득 상태에서 호출)"""
        if self._over_budget(incoming_bytes):
            self._evict_expired(now)
        while self._cache and self._over_budget(incoming_bytes):
            key, entry = self._cache.popitem(last=False)
            self._total_bytes -= entry.size_hint
            self._stats["evictions"] += 1
            logger.debug(f"[{self.name}] LRU evicted: {key}")

    def get(self, key: str, default: V | None = None) -> V | None:
        """
        캐시에서 값 조회

        히트 시 last_accessed_at/access_count를 갱신하고,
        TTL이 지난 항목은 삭제 후 미스로 처리합니다.

        Returns:
            저장된 값 또는 default (없거나 만료된 경우)
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return default

            now = self._clock()
            if self._is_expired(entry, now):
                self._remove(key)
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return default

            entry.last_accessed_at = now
            entry.access_count += 1
            self._cache.move_to_end(key)
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: V, size_hint: int = 0) -> bool:
        """
        값을 캐시에 저장

        Args:
            key: 캐시 키
            value: 저장할 값
            size_hint: 항목 크기 (바이트). 바이트 예산이 있는 캐시에서만 의미가 있음

        Returns:
            저장 여부. 바이트 예산의 절반을 넘는 항목은 저장하지 않고 False 반환.
            이때 같은 키의 기존 항목도 제거됨 (오래된 값이 남지 않도록)
        """
        size_hint = max(0, int(size_hint))
        if self._max_bytes is not None and size_hint > self._max_bytes * 0.5:
            with self._lock:
                self._remove(key)
                self._stats["rejections"] += 1
            logger.debug(
                f"[{self.name}] admission rejected: {key} "
                f"({size_hint} bytes > half of {self._max_bytes})"
            )
            return False

        with self._lock:
            now = self._clock()
            self._remove(key)
            self._make_room(size_hint, now)
            self._cache[key] = CacheEntry(
                key=key,
                value=value,
                size_hint=size_hint,
                created_at=now,
                last_accessed_at=now,
            )
            self._total_bytes += size_hint
            return True

    def invalidate(self, key: str) -> bool:
        """
        특정 항목 무효화

        Returns:
            무효화된 항목이 있었는지 여부
        """
        with self._lock:
            return self._remove(key) is not None

    def invalidate_pattern(self, predicate: Callable[[str], bool]) -> int:
        """
        조건에 맞는 키를 모두 무효화

        Returns:
            무효화된 항목 수
        """
        with self._lock:
            keys = [key for key in self._cache if predicate(key)]
            for key in keys:
                self._remove(key)
            return len(keys)

    def sweep_expired(self) -> int:
        """
        만료된 항목 정리 (주기 작업에서 호출)

        Returns:
            제거된 항목 수
        """
        with self._lock:
            removed = self._evict_expired(self._clock())
        if removed:
            logger.debug(f"[{self.name}] sweep removed {removed} expired entries")
        return removed

    def clear(self) -> int:
        """
        전체 캐시 삭제

        Returns:
            삭제된 항목 수
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            self._total_bytes = 0
            return count

    def stats(self) -> dict[str, Any]:
        """
        캐시 통계 조회

        Returns:
            통계 딕셔너리
        """
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = self._stats["hits"] / total if total > 0 else 0.0

            return {
                "name": self.name,
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "hit_rate": hit_rate,
                "size": len(self._cache),
                "total_bytes": self._total_bytes,
                "evictions": self._stats["evictions"],
                "expirations": self._stats["expirations"],
                "rejections": self._stats["rejections"],
                "max_entries": self._max_entries,
                "max_bytes": self._max_bytes,
                "ttl_seconds": self._ttl_seconds,
            }

    def reset_stats(self) -> None:
        """통계 초기화"""
        with self._lock:
            self._stats = {
                "hits": 0,
                "misses": 0,
                "evictions": 0,
                "expirations": 0,
                "rejections": 0,
            }

    def __len__(self) -> int:
        """현재 캐시 크기"""
        with self._lock:
            return len(self._cache)

    def __contains__(self, key: str) -> bool:
        """통계/접근 시각을 건드리지 않는 존재 여부 확인"""
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not self._is_expired(entry, self._clock())
