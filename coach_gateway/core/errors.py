"""Application-level exception types.

This module defines domain errors used across the gate, services and
adapters, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    field: str
    max_chars: int
    actual_chars: int
    retry_after: int
    model: str
    missing: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when business input or config validation fails."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""


class AuditSinkError(AppError):
    """Raised by audit sinks when an entry could not be written."""


class GateError(AppError):
    """Deterministic, input-driven rejection raised by the request gate.

    Subclasses pin the HTTP status; the gate audits the rejection before
    raising, so handlers only have to render the response.
    """

    status_code: ClassVar[int] = 400

    def response_headers(self) -> dict[str, str]:
        return {}


class MethodNotAllowedError(GateError):
    status_code = 405


class InvalidContentTypeError(GateError):
    status_code = 400


class PayloadTooLargeError(GateError):
    status_code = 413


class InvalidJsonError(GateError):
    status_code = 400


@dataclass
class RateLimitExceededError(GateError):
    """Raised when the caller exhausted the function's sliding-window quota."""

    retry_after_seconds: int = 60

    status_code = 429

    def response_headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}
