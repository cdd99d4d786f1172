"""Protected coaching functions.

Each function answers the CORS preflight, then runs the security gate
before any business logic. The coaching service (and its LLM client) is
built on first admitted request so that a missing provider key surfaces
as a 500 on use rather than at import time.
"""

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from coach_gateway.adapters.llm.factory import create_llm_client
from coach_gateway.core.config import settings
from coach_gateway.core.cors import cors_headers_for, preflight_response
from coach_gateway.core.gate import SecurityGate, get_security_gate
from coach_gateway.core.rate_limit import (
    ADVANCED_ANALYTICS,
    AI_CONSULTANT,
    HABITS_VERIFICATION,
    SALES_ANALYSIS,
)
from coach_gateway.services.coaching_service import CoachingService
from coach_gateway.utils.simple_cache import SimpleTTLCache

router = APIRouter(prefix="/functions/v1", tags=["Functions"])

FUNCTION_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

_coaching_service: CoachingService | None = None


def get_coaching_service() -> CoachingService:
    """Return the process-wide coaching service, creating it on first use."""
    global _coaching_service
    if _coaching_service is None:
        cache = SimpleTTLCache(
            ttl_seconds=settings.app.consultation_cache_ttl_seconds,
            max_entries=settings.app.consultation_cache_max_entries,
        )
        _coaching_service = CoachingService(llm=create_llm_client(), cache=cache)
    return _coaching_service


async def _run_function(
    request: Request,
    gate: SecurityGate,
    endpoint: str,
    handler: Callable[[CoachingService], Callable[[dict], Awaitable[BaseModel]]],
) -> Response:
    if request.method == "OPTIONS":
        return preflight_response(request)

    gated = await gate.admit(request, endpoint)
    result = await handler(get_coaching_service())(gated.payload)

    return JSONResponse(
        content=result.model_dump(mode="json", by_alias=True),
        headers=cors_headers_for(request),
    )


@router.api_route(f"/{SALES_ANALYSIS}", methods=FUNCTION_METHODS)
async def sales_analysis(
    request: Request,
    gate: SecurityGate = Depends(get_security_gate),
) -> Response:
    """Analyse a sales data snapshot (10 requests/minute per caller)."""
    return await _run_function(request, gate, SALES_ANALYSIS, lambda s: s.analyze_sales)


@router.api_route(f"/{HABITS_VERIFICATION}", methods=FUNCTION_METHODS)
async def habits_verification(
    request: Request,
    gate: SecurityGate = Depends(get_security_gate),
) -> Response:
    """Verify habit completion evidence (50 requests/minute per caller)."""
    return await _run_function(request, gate, HABITS_VERIFICATION, lambda s: s.verify_habit)


@router.api_route(f"/{AI_CONSULTANT}", methods=FUNCTION_METHODS)
async def ai_consultant(
    request: Request,
    gate: SecurityGate = Depends(get_security_gate),
) -> Response:
    """Answer a coaching question (20 requests/minute per caller)."""
    return await _run_function(request, gate, AI_CONSULTANT, lambda s: s.consult)


@router.api_route(f"/{ADVANCED_ANALYTICS}", methods=FUNCTION_METHODS)
async def advanced_analytics(
    request: Request,
    gate: SecurityGate = Depends(get_security_gate),
) -> Response:
    """Forecast, habit insights or ROI analysis (10 requests/minute per caller)."""
    return await _run_function(request, gate, ADVANCED_ANALYTICS, lambda s: s.advanced_analytics)
