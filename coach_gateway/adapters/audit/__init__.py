"""Audit sink adapters - abstracts over where security events are stored."""

from coach_gateway.adapters.audit.base import AbstractAuditSink, AuditEntry
from coach_gateway.adapters.audit.factory import create_audit_sink
from coach_gateway.adapters.audit.logging_sink import LoggingAuditSink
from coach_gateway.adapters.audit.supabase_sink import SupabaseAuditSink

__all__ = [
    "AbstractAuditSink",
    "AuditEntry",
    "LoggingAuditSink",
    "SupabaseAuditSink",
    "create_audit_sink",
]
