"""Security event auditing.

Every security-relevant branch of the request pipeline emits exactly one
``SecurityEvent``. Events are converted to audit entries and handed to the
configured sink. A failing sink never blocks the response: the failure is
logged locally and reported to the caller as ``False``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from coach_gateway.adapters.audit.base import AbstractAuditSink, AuditEntry
from coach_gateway.adapters.audit.factory import create_audit_sink
from coach_gateway.core.errors import AuditSinkError

logger = logging.getLogger(__name__)


class SecurityEventKind(str, Enum):
    INVALID_METHOD = "INVALID_METHOD"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    INVALID_JSON = "INVALID_JSON"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    REQUEST_VALIDATED = "REQUEST_VALIDATED"
    SECURITY_ERROR = "SECURITY_ERROR"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SecurityEvent:
    """Immutable record of one validation or enforcement decision."""

    kind: SecurityEventKind
    details: dict[str, Any]
    caller_id: str | None = None
    client_ip: str | None = None
    timestamp: datetime = field(default_factory=_utc_now)

    def to_audit_entry(self) -> AuditEntry:
        return AuditEntry(
            action=f"SECURITY_{self.kind.value}",
            resource_type="security",
            new_values={
                "event": self.kind.value,
                "details": self.details,
                "ip": self.client_ip,
                "timestamp": self.timestamp.isoformat(),
                "user_id": self.caller_id,
            },
        )


class SecurityAuditor:
    """Emit security events to an audit sink without ever raising."""

    def __init__(self, sink: AbstractAuditSink) -> None:
        self.sink = sink

    async def emit(
        self,
        kind: SecurityEventKind,
        details: dict[str, Any],
        *,
        caller_id: str | None = None,
        client_ip: str | None = None,
    ) -> bool:
        """Write one security event.

        Args:
            kind: Event kind.
            details: Event specific context (never the raw payload).
            caller_id: Declared user id, when known.
            client_ip: Extracted client IP, when known.

        Returns:
            True when the sink accepted the entry, False when it failed.
        """
        event = SecurityEvent(kind=kind, details=details, caller_id=caller_id, client_ip=client_ip)

        try:
            await self.sink.write(event.to_audit_entry())
        except AuditSinkError as exc:
            logger.error(
                "audit.write_failed",
                extra={
                    "event_kind": kind.value,
                    "error_code": exc.code,
                    "error_message": exc.message,
                },
            )
            return False

        logger.debug("audit.written", extra={"event_kind": kind.value})
        return True


_auditor: SecurityAuditor | None = None


def get_auditor() -> SecurityAuditor:
    """Return the process-wide auditor, building the sink on first use."""

    global _auditor
    if _auditor is None:
        _auditor = SecurityAuditor(create_audit_sink())
    return _auditor
