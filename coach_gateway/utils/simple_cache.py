"""In-memory TTL cache used to avoid repeated consultant LLM calls.

Thread-safe with LRU eviction; like the rate limiter it is per-process and
lost on a cold start.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


CachedValue = dict[str, Any]


@dataclass
class CacheItem:
    """Container for cached values with expiration metadata."""

    value: CachedValue
    expires_at: float


class SimpleTTLCache:
    """Thread-safe, in-memory TTL cache with LRU eviction.

    Attributes:
        ttl_seconds: Time-to-live applied to all entries.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        max_entries: int | None = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> CachedValue | None:
        """Return a copy of the cached value, or None if missing/expired."""

        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                logger.debug("cache.miss", extra={"reason": "not_found"})
                return None

            if self._clock() >= item.expires_at:
                self._evict_single(key)
                self._misses += 1
                logger.debug("cache.miss", extra={"reason": "expired"})
                return None

            self._hits += 1
            self._store.move_to_end(key)
            return dict(item.value)

    def set(self, key: str, value: CachedValue) -> None:
        """Store a value with TTL, evicting expired and least recently used entries."""

        with self._lock:
            self._evict_expired_locked()
            self._store[key] = CacheItem(value=dict(value), expires_at=self._clock() + self._ttl)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

            logger.debug(
                "cache.set",
                extra={"size": len(self._store), "ttl_s": self._ttl},
            )

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | None]:
        """Return lightweight cache metrics without exposing values."""

        with self._lock:
            return {
                "ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        for key in [k for k, item in self._store.items() if item.expires_at <= now]:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # oldest (least recently used) first
            self._store.popitem(last=False)
            self._evictions += 1
