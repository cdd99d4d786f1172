"""Rate limiter interfaces.

The gate depends on this abstraction (not the concrete implementation) so
the process-local store can be swapped for a shared one without touching
the HTTP layer.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitQuota:
    """Static admission quota of one protected function.

    Attributes:
        max_requests: Maximum admitted requests in any trailing window.
        window_ms: Length of the sliding window in milliseconds.
    """

    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")

    @property
    def retry_after_seconds(self) -> int:
        """Coarse retry hint: the full window, rounded up to seconds."""
        return math.ceil(self.window_ms / 1000)

    def as_dict(self) -> dict[str, int]:
        return {"max": self.max_requests, "window_ms": self.window_ms}


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(self, key: str, quota: RateLimitQuota) -> bool:
        """Decide admission for a key and record it when admitted.

        Args:
            key: Composite key ``"<endpoint>:<caller_key>"``.
            quota: Quota of the endpoint the key belongs to.

        Returns:
            True when admitted (and recorded), False when rejected.
        """
        raise NotImplementedError
