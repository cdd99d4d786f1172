"""Request gate for the protected functions.

Rejects malformed or oversized requests before they reach the rate limiter
or business logic, and leaves an audit trail of every decision.

Pipeline (strictly ordered, first failure wins):
1. method must be POST                      → 405 INVALID_METHOD
2. Content-Type must include application/json → 400 INVALID_CONTENT_TYPE
3. body must not exceed the size ceiling     → 413 PAYLOAD_TOO_LARGE
4. body must be a JSON object                → 400 INVALID_JSON
5. prototype-pollution keys are stripped
6. sliding-window rate limit per caller      → 429 RATE_LIMIT_EXCEEDED
7. REQUEST_VALIDATED is audited

CORS preflight (OPTIONS) is answered by the routes and never gets here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi import Request

from coach_gateway.adapters.rate_limit.base import AbstractRateLimiter
from coach_gateway.core.audit import SecurityAuditor, SecurityEventKind, get_auditor
from coach_gateway.core.config import settings
from coach_gateway.core.errors import (
    GateError,
    InvalidContentTypeError,
    InvalidJsonError,
    MethodNotAllowedError,
    PayloadTooLargeError,
)
from coach_gateway.core.rate_limit import enforce_rate_limit

logger = logging.getLogger(__name__)

# Order is a trust chain and must not change.
CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "x-client-ip",
)
UNKNOWN_IP = "unknown"

BLOCKED_KEYS = frozenset({"__proto__", "constructor", "prototype"})

USER_AGENT_MAX_CHARS = 100


@dataclass(frozen=True)
class GatedRequest:
    """A request that passed every gate step.

    Attributes:
        endpoint: Protected function name.
        payload: Sanitized JSON object.
        caller_id: Declared ``userId`` if the payload carried one.
        client_ip: Client IP extracted from proxy headers.
        user_agent: Raw User-Agent header (or "unknown").
        rate_limit_key: Composite key charged by the limiter.
    """

    endpoint: str
    payload: dict[str, Any]
    caller_id: str | None
    client_ip: str
    user_agent: str
    rate_limit_key: str


def extract_client_ip(headers: Mapping[str, str]) -> str:
    """Return the client IP from the first proxy header present.

    Examples:
        >>> extract_client_ip({"x-forwarded-for": "1.2.3.4, 5.6.7.8"})
        '1.2.3.4'
        >>> extract_client_ip({})
        'unknown'
    """
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return UNKNOWN_IP


def sanitize_payload(value: Any) -> Any:
    """Drop prototype-pollution keys from every object in a JSON value."""
    if isinstance(value, dict):
        return {k: sanitize_payload(v) for k, v in value.items() if k not in BLOCKED_KEYS}
    if isinstance(value, list):
        return [sanitize_payload(v) for v in value]
    return value


def extract_caller_id(payload: Mapping[str, Any]) -> str | None:
    user_id = payload.get("userId")
    if isinstance(user_id, str) and user_id.strip():
        return user_id
    return None


def _declared_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class SecurityGate:
    """Validate, rate limit and audit requests to the protected functions."""

    def __init__(
        self,
        auditor: SecurityAuditor,
        *,
        limiter: AbstractRateLimiter | None = None,
        max_payload_bytes: int | None = None,
    ) -> None:
        self.auditor = auditor
        self.limiter = limiter
        if max_payload_bytes is None:
            max_payload_bytes = settings.app.max_payload_bytes
        self.max_payload_bytes = max_payload_bytes

    async def _reject(
        self,
        error: GateError,
        kind: SecurityEventKind,
        details: dict[str, Any],
        *,
        endpoint: str,
        client_ip: str,
    ) -> GateError:
        logger.warning(
            "gate.rejected",
            extra={
                "endpoint": endpoint,
                "event_kind": kind.value,
                "status_code": error.status_code,
            },
        )
        await self.auditor.emit(kind, details, client_ip=client_ip)
        return error

    async def _read_body(self, request: Request, *, endpoint: str, client_ip: str) -> bytes:
        """Read the body, stopping as soon as it exceeds the size ceiling."""
        declared = _declared_length(request)
        if declared is not None and declared > self.max_payload_bytes:
            raise await self._reject(
                PayloadTooLargeError(code="payload_too_large", message="Payload too large"),
                SecurityEventKind.PAYLOAD_TOO_LARGE,
                {"size": declared},
                endpoint=endpoint,
                client_ip=client_ip,
            )

        size = 0
        chunks: list[bytes] = []
        async for chunk in request.stream():
            size += len(chunk)
            if size > self.max_payload_bytes:
                raise await self._reject(
                    PayloadTooLargeError(code="payload_too_large", message="Payload too large"),
                    SecurityEventKind.PAYLOAD_TOO_LARGE,
                    {"size": size},
                    endpoint=endpoint,
                    client_ip=client_ip,
                )
            chunks.append(chunk)

        return b"".join(chunks)

    async def admit(self, request: Request, endpoint: str) -> GatedRequest:
        """Run the full gate pipeline for one request.

        Args:
            request: Incoming request (method other than OPTIONS).
            endpoint: Protected function name.

        Returns:
            GatedRequest with the sanitized payload and caller identity.

        Raises:
            GateError: On the first failing step, after it was audited.
        """
        client_ip = extract_client_ip(request.headers)
        user_agent = request.headers.get("user-agent") or "unknown"

        if request.method != "POST":
            raise await self._reject(
                MethodNotAllowedError(code="method_not_allowed", message="Method not allowed"),
                SecurityEventKind.INVALID_METHOD,
                {"method": request.method},
                endpoint=endpoint,
                client_ip=client_ip,
            )

        content_type = request.headers.get("content-type")
        if not content_type or "application/json" not in content_type:
            raise await self._reject(
                InvalidContentTypeError(code="invalid_content_type", message="Invalid content type"),
                SecurityEventKind.INVALID_CONTENT_TYPE,
                {"content_type": content_type},
                endpoint=endpoint,
                client_ip=client_ip,
            )

        body = await self._read_body(request, endpoint=endpoint, client_ip=client_ip)

        try:
            parsed = json.loads(body)
        except ValueError as exc:
            raise await self._reject(
                InvalidJsonError(code="invalid_json", message="Invalid JSON"),
                SecurityEventKind.INVALID_JSON,
                {"error": str(exc) or type(exc).__name__},
                endpoint=endpoint,
                client_ip=client_ip,
            ) from exc

        if not isinstance(parsed, dict):
            raise await self._reject(
                InvalidJsonError(code="invalid_json", message="Invalid JSON"),
                SecurityEventKind.INVALID_JSON,
                {"error": f"expected a JSON object, got {type(parsed).__name__}"},
                endpoint=endpoint,
                client_ip=client_ip,
            )

        payload = sanitize_payload(parsed)
        caller_id = extract_caller_id(payload)

        rate_limit_key = await enforce_rate_limit(
            endpoint,
            caller_id=caller_id,
            client_ip=client_ip,
            auditor=self.auditor,
            limiter=self.limiter,
        )

        await self.auditor.emit(
            SecurityEventKind.REQUEST_VALIDATED,
            {
                "function": endpoint,
                "has_user_id": caller_id is not None,
                "user_agent": user_agent[:USER_AGENT_MAX_CHARS],
            },
            caller_id=caller_id,
            client_ip=client_ip,
        )

        return GatedRequest(
            endpoint=endpoint,
            payload=payload,
            caller_id=caller_id,
            client_ip=client_ip,
            user_agent=user_agent,
            rate_limit_key=rate_limit_key,
        )


def get_security_gate() -> SecurityGate:
    """FastAPI dependency returning a gate bound to the process-wide auditor."""
    return SecurityGate(get_auditor())
