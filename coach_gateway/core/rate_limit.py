"""Per-function rate limiting for the protected endpoints.

This module wires the rate limiting adapter into the request gate.

Strategy:
- Sliding window per ``(function, caller)`` pair, quotas fixed at startup.
- Caller is the declared ``userId`` when present, else the client IP.
- Rejections are audited and surface as HTTP 429 with a Retry-After hint
  equal to the whole window (not the actual remaining wait).
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping

from coach_gateway.adapters.rate_limit.base import AbstractRateLimiter, RateLimitQuota
from coach_gateway.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from coach_gateway.core.audit import SecurityAuditor, SecurityEventKind
from coach_gateway.core.config import settings
from coach_gateway.core.errors import RateLimitExceededError
from coach_gateway.core.logging import hash_identifier

logger = logging.getLogger(__name__)

SALES_ANALYSIS = "sales-analysis"
HABITS_VERIFICATION = "habits-verification"
AI_CONSULTANT = "ai-consultant"
ADVANCED_ANALYTICS = "advanced-analytics"

ENDPOINT_QUOTAS: Mapping[str, RateLimitQuota] = MappingProxyType(
    {
        # expensive analysis
        SALES_ANALYSIS: RateLimitQuota(max_requests=10, window_ms=60_000),
        ADVANCED_ANALYTICS: RateLimitQuota(max_requests=10, window_ms=60_000),
        # cheap, high volume
        HABITS_VERIFICATION: RateLimitQuota(max_requests=50, window_ms=60_000),
        AI_CONSULTANT: RateLimitQuota(max_requests=20, window_ms=60_000),
    }
)


_limiter: AbstractRateLimiter | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide limiter instance.

    State lives as long as the process (a warm instance); a cold start
    resets every counter.
    """

    global _limiter
    if _limiter is None:
        _limiter = InMemorySlidingWindowRateLimiter(
            sweep_probability=settings.app.rate_limit_sweep_probability,
            shards=settings.app.rate_limit_shards,
        )
    return _limiter


def reset_rate_limiter() -> None:
    """Drop all rate limit state (new limiter on next use)."""

    global _limiter
    _limiter = None


def build_rate_limit_key(endpoint: str, caller_id: str | None, client_ip: str) -> str:
    """Build the composite limiter key ``"<endpoint>:<userId or IP>"``."""

    return f"{endpoint}:{caller_id or client_ip}"


async def enforce_rate_limit(
    endpoint: str,
    *,
    caller_id: str | None,
    client_ip: str,
    auditor: SecurityAuditor,
    limiter: AbstractRateLimiter | None = None,
) -> str:
    """Consume one admission for the caller or reject the request.

    Functions without a configured quota are not limited.

    Args:
        endpoint: Protected function name.
        caller_id: Declared user id, if any.
        client_ip: Extracted client IP.
        auditor: Security event emitter.
        limiter: Limiter override (defaults to the process-wide one).

    Returns:
        The composite rate limit key used for the decision.

    Raises:
        RateLimitExceededError: When the quota is exhausted (after auditing).
    """

    key = build_rate_limit_key(endpoint, caller_id, client_ip)
    quota = ENDPOINT_QUOTAS.get(endpoint)
    if quota is None or not settings.app.rate_limit_enabled:
        return key

    limiter = limiter or get_rate_limiter()
    key_type = "user_id" if caller_id else "ip"

    # Decision is synchronous: no await between counting and recording.
    if limiter.check(key, quota):
        logger.info(
            "rate_limit.allowed",
            extra={
                "endpoint": endpoint,
                "key_type": key_type,
                "key_hash": hash_identifier(key),
                "limit": quota.max_requests,
                "window_ms": quota.window_ms,
            },
        )
        return key

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "endpoint": endpoint,
            "key_type": key_type,
            "key_hash": hash_identifier(key),
            "limit": quota.max_requests,
            "window_ms": quota.window_ms,
            "retry_after_s": quota.retry_after_seconds,
        },
    )
    await auditor.emit(
        SecurityEventKind.RATE_LIMIT_EXCEEDED,
        {"key": key, "limit": quota.as_dict()},
        caller_id=caller_id,
        client_ip=client_ip,
    )
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message="Rate limit exceeded. Try again later.",
        details={"retry_after": quota.retry_after_seconds},
        retry_after_seconds=quota.retry_after_seconds,
    )
