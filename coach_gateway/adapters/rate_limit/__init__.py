"""Rate limiting adapters.

The gate talks to ``AbstractRateLimiter`` only; the process-local sliding
window store can later be replaced by a shared one without changing it.
"""

from coach_gateway.adapters.rate_limit.base import AbstractRateLimiter, RateLimitQuota
from coach_gateway.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemorySlidingWindowRateLimiter",
    "RateLimitQuota",
]
