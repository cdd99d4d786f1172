"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: every worker (and every cold start) has its own
  counters, so limits are best-effort.
- Thread-safe: keys are spread over lock-guarded shards; a check holds only
  the lock of its key's shard, so the read-modify-write of one key is atomic.
"""

from __future__ import annotations

import random
import threading
import time
import zlib
from typing import Callable

from coach_gateway.adapters.rate_limit.base import AbstractRateLimiter, RateLimitQuota


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Shard:
    __slots__ = ("lock", "history", "windows")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.history: dict[str, list[int]] = {}
        # widest window_ms each key has been checked under
        self.windows: dict[str, int] = {}

    def prune(self, key: str, window_start: int) -> list[int]:
        """Drop timestamps at or before window_start; forget the key if none remain."""
        recent = [ts for ts in self.history.get(key, ()) if ts > window_start]
        if recent:
            self.history[key] = recent
        else:
            self.history.pop(key, None)
            self.windows.pop(key, None)
        return recent


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping a timestamp log per key.

    A request is admitted when fewer than ``max_requests`` timestamps of its
    key fall strictly inside the trailing window. Unlike fixed buckets this
    never allows a burst of twice the quota around a bucket boundary.

    Stale keys are not expired by a timer. Each check prunes its own key and
    has a small probability of sweeping every key, which keeps memory
    eventually bounded when many distinct callers come and go. The sweep
    prunes each key against its own window, so keys checked under different
    quotas can share one limiter.
    """

    def __init__(
        self,
        *,
        sweep_probability: float = 0.01,
        shards: int = 16,
        clock: Callable[[], int] = _now_ms,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the limiter.

        Args:
            sweep_probability: Chance in [0, 1] that a check triggers a sweep.
            shards: Number of independently locked partitions of the store.
            clock: Time source returning UNIX time in milliseconds.
            rng: Source of uniform floats in [0, 1) used for the sweep draw.

        Raises:
            ValueError: If sweep_probability or shards are invalid.
        """
        if not 0.0 <= sweep_probability <= 1.0:
            raise ValueError("sweep_probability must be within [0, 1]")
        if shards < 1:
            raise ValueError("shards must be >= 1")

        self._sweep_probability = sweep_probability
        self._shards = [_Shard() for _ in range(shards)]
        self._clock = clock
        self._rng = rng

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode()) % len(self._shards)]

    def check(self, key: str, quota: RateLimitQuota) -> bool:
        """Admit or reject one request for ``key`` under ``quota``.

        The key's history is pruned to the trailing window on every call,
        whatever the outcome. Only an admitted request is recorded.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        shard = self._shard_for(key)

        with shard.lock:
            recent = shard.prune(key, now - quota.window_ms)
            admitted = len(recent) < quota.max_requests
            if admitted:
                recent.append(now)
                shard.history[key] = recent
            if recent:
                shard.windows[key] = max(shard.windows.get(key, 0), quota.window_ms)

        if self._rng() < self._sweep_probability:
            self._sweep_at(now)

        return admitted

    def sweep(self) -> int:
        """Prune every key against its own trailing window ending now.

        Returns:
            Number of keys removed because no timestamp survived.
        """
        return self._sweep_at(self._clock())

    def _sweep_at(self, now: int) -> int:
        removed = 0
        for shard in self._shards:
            with shard.lock:
                for key in list(shard.history):
                    if not shard.prune(key, now - shard.windows.get(key, 0)):
                        removed += 1
        return removed

    def history(self, key: str) -> tuple[int, ...]:
        """Return a copy of the stored timestamps for a key (diagnostics)."""
        shard = self._shard_for(key)
        with shard.lock:
            return tuple(shard.history.get(key, ()))

    @property
    def tracked_keys(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.history)
        return total
