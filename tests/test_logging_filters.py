"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from coach_gateway.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identifier,
    set_request_id,
)


def _logger_with_stream(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_credentials():
    """Ensure SensitiveDataFilter redacts provider and Supabase credentials."""

    logger, stream = _logger_with_stream("test_redaction")

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "service_role_key": "supabase-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "sk-secret-123" not in output
    assert "supabase-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_user_content():
    """Ensure prompts and habit evidence never reach the logs."""

    logger, stream = _logger_with_stream("test_content_redaction")

    logger.info(
        "llm_event",
        extra={
            "prompt": "Client Jane Roe closed a deal worth 40k",
            "evidence": "call recording transcript",
            "tokens_used": 321,
        },
    )

    output = stream.getvalue()

    assert "Jane Roe" not in output
    assert "transcript" not in output
    assert "tokens_used" in output


def test_sensitive_filter_allows_safe_fields():
    """Verify safe fields pass through unmodified."""

    logger, stream = _logger_with_stream("test_safe_fields")

    logger.info(
        "safe_event",
        extra={
            "endpoint": "sales-analysis",
            "key_hash": hash_identifier("sales-analysis:1.2.3.4"),
            "status_code": 429,
            "window_ms": 60000,
        },
    )

    output = stream.getvalue()

    assert "sales-analysis" in output
    assert "429" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts():
    """Ensure nested sensitive fields are redacted."""

    logger, stream = _logger_with_stream("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "authorization": "Bearer secret-token",
                "user-agent": "pytest",
            },
            "audit": {"details": {"apikey": "anon-key", "method": "GET"}},
        },
    )

    output = stream.getvalue()

    assert "secret-token" not in output
    assert "anon-key" not in output
    assert "pytest" in output
    assert "GET" in output


def test_request_id_is_attached_to_records():
    logger, stream = _logger_with_stream("test_request_id")

    set_request_id("req-abc")
    try:
        logger.info("with_id")
    finally:
        clear_request_id()

    record = json.loads(stream.getvalue().strip())
    assert record["request_id"] == "req-abc"
    assert record["message"] == "with_id"


def test_hash_identifier_is_short_and_stable():
    first = hash_identifier("ai-consultant:user-1")

    assert first == hash_identifier("ai-consultant:user-1")
    assert first != hash_identifier("ai-consultant:user-2")
    assert len(first) == 16
    assert "user-1" not in first


def test_credential_suffixes_and_header_spellings_are_redacted():
    """Names ending in a credential suffix are redacted whatever their prefix."""

    logger, stream = _logger_with_stream("test_suffixes")

    logger.info(
        "config_event",
        extra={
            "openai_api_key": "sk-live-999",
            "headers": {"X-Refresh-Token": "refresh-abc", "Set-Cookie": "sid=1"},
            "key_hash": "0123456789abcdef",
        },
    )

    output = stream.getvalue()

    assert "sk-live-999" not in output
    assert "refresh-abc" not in output
    assert "sid=1" not in output
    assert "0123456789abcdef" in output


def test_coaching_context_is_redacted():
    logger, stream = _logger_with_stream("test_context")

    logger.info(
        "consultant_event",
        extra={
            "context": {"salesData": {"acme": 125000}},
            "consultation_type": "sales",
        },
    )

    output = stream.getvalue()

    assert "acme" not in output
    assert "sales" in output
