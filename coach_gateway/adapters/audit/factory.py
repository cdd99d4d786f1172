"""Factory for the audit sink selected by configuration."""

import logging

from coach_gateway.adapters.audit.base import AbstractAuditSink
from coach_gateway.adapters.audit.logging_sink import LoggingAuditSink
from coach_gateway.adapters.audit.supabase_sink import SupabaseAuditSink
from coach_gateway.core.config import settings

logger = logging.getLogger(__name__)


def create_audit_sink() -> AbstractAuditSink:
    """Instantiate the audit sink.

    Uses the hosted audit procedure when Supabase credentials are configured,
    otherwise falls back to writing entries to the application log.

    Returns:
        AbstractAuditSink: Configured sink instance.
    """
    cfg = settings.supabase

    if cfg.url and cfg.service_role_key:
        return SupabaseAuditSink.from_credentials(
            cfg.url,
            cfg.service_role_key,
            rpc_name=cfg.audit_rpc,
        )

    logger.warning(
        "audit.sink_fallback",
        extra={"reason": "supabase_not_configured", "sink": "logging"},
    )
    return LoggingAuditSink()
