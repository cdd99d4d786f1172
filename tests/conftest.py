"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment so that settings never pick up a developer's
.env file, a real LLM key or a real Supabase project.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o")
os.environ.setdefault("LLM_LIGHT_MODEL", "gpt-4o-mini")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("LOG_FORMAT", "plain")
# No Supabase credentials: audit events go to the logging sink
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""

from typing import Any

import pytest

from coach_gateway.adapters.audit.base import AbstractAuditSink, AuditEntry
from coach_gateway.core.audit import SecurityAuditor
from coach_gateway.core.rate_limit import reset_rate_limiter


class RecordingAuditSink(AbstractAuditSink):
    """Audit sink keeping every entry in memory."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    @property
    def actions(self) -> list[str]:
        return [entry.action for entry in self.entries]

    def last(self, action: str) -> dict[str, Any]:
        matching = [entry for entry in self.entries if entry.action == action]
        assert matching, f"no audit entry for {action}: {self.actions}"
        return matching[-1].new_values or {}


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def auditor(audit_sink: RecordingAuditSink) -> SecurityAuditor:
    return SecurityAuditor(audit_sink)


@pytest.fixture(autouse=True)
def _fresh_rate_limiter():
    """Every test starts with an empty process-wide limiter."""
    reset_rate_limiter()
    yield
    reset_rate_limiter()
