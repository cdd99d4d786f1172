"""Audit sink writing entries to the application log."""

from __future__ import annotations

import logging

from coach_gateway.adapters.audit.base import AbstractAuditSink, AuditEntry

logger = logging.getLogger("coach_gateway.audit")


class LoggingAuditSink(AbstractAuditSink):
    """Fallback sink used when no hosted audit procedure is configured."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def write(self, entry: AuditEntry) -> None:
        logger.log(self.level, "audit.entry", extra={"audit": entry.to_dict()})
