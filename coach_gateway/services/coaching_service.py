"""Coaching service behind the protected functions.

Turns sanitized, gate-approved payloads into LLM-backed coaching answers:
- ai-consultant: free-text advice with prompt-injection screening and caching
- habits-verification: JSON verdict on habit evidence, with a safe fallback
- sales-analysis: local aggregates plus a JSON analysis, with a safe fallback
- advanced-analytics: forecast, habit insights or ROI over numeric series
"""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from coach_gateway.adapters.llm.base import AbstractLLMClient
from coach_gateway.core.config import settings
from coach_gateway.core.errors import LLMAppError, ValidationAppError
from coach_gateway.schemas.coaching import (
    AdvancedAnalyticsRequest,
    AdvancedAnalyticsResponse,
    AnalysisKpis,
    AnalysisSummary,
    ConsultationMetadata,
    ConsultationRequest,
    ConsultationResponse,
    HabitInsights,
    HabitVerification,
    HabitVerificationRequest,
    HabitVerificationResponse,
    RoiAnalysis,
    SalesAnalysis,
    SalesAnalysisMetadata,
    SalesAnalysisRequest,
    SalesAnalysisResponse,
    SalesMetrics,
    SalesPrediction,
)
from coach_gateway.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SUSPICIOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"system\s*:",
        r"ignore\s+previous",
        r"forget\s+everything",
        r"<script",
        r"javascript:",
    )
)

COMPLEX_MESSAGE_CHARS = 500
AUTO_APPROVE_CONFIDENCE = 80
CACHE_KEY_MESSAGE_CHARS = 100

CONSULTANT_SYSTEM_PROMPTS = {
    "sales": "You are a sales performance consultant. Focus on prospecting, closing and pipeline process.",
    "habits": "You are an expert in atomic habits and productivity. Give practical, implementable strategies.",
    "goals": "You are a goal-setting consultant. Use SMART goals and OKRs with concrete milestones.",
    "strategy": "You are a strategic business consultant. Consider long-term growth, market and people.",
    "general": "You are a business coach for sales teams. Give practical, actionable advice.",
}

HABIT_SYSTEM_PROMPT = "You verify whether sales habits were really completed, based on the evidence given."
SALES_SYSTEM_PROMPT = "You analyse sales team performance and produce actionable insights."

ANALYTICS_SYSTEM_PROMPTS = {
    "prediction": (
        "You are a senior B2B sales analyst. Combine statistics with market intuition, "
        "consider trends, seasonality and the link between habits and results, and "
        "back every forecast with a confidence interval."
    ),
    "insights": (
        "You are a sales performance consultant specialised in behavioural data and "
        "productive habits. Give direct, measurable insights the team can apply now."
    ),
    "roi_analysis": (
        "You are an ROI and operational efficiency specialist. Measure the return of a "
        "sales habits and training programme and recommend how to improve it."
    ),
}

ANALYTICS_RESULT_MODELS: dict[str, type[BaseModel]] = {
    "prediction": SalesPrediction,
    "insights": HabitInsights,
    "roi_analysis": RoiAnalysis,
}

FALLBACK_VERIFICATION = HabitVerification(
    verified=False,
    confidence=0,
    score=0,
    feedback="Automatic analysis failed. Manual verification required.",
    suggestions=[
        "Provide clearer evidence",
        "Include more details about how the habit was performed",
    ],
    evidence_quality="poor",
)

FALLBACK_ANALYSIS = SalesAnalysis(
    summary=AnalysisSummary(
        performance="fair",
        goal_attainment=50,
        trend_direction="stable",
        risk_level="medium",
    ),
    insights=["Automatic analysis failed. Data was collected but no analysis is available."],
    warnings=["Analysis service temporarily unavailable"],
    kpis=AnalysisKpis(sales_efficiency=50, habit_correlation=0, team_synergy=50, growth_potential=50),
)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_payload(model: type[ModelT], payload: dict[str, Any]) -> ModelT:
    """Validate a sanitized payload against a request model.

    Raises:
        ValidationAppError: With the first failing field in the details.
    """
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationAppError(
            code="invalid_request",
            message=f"Invalid request: {field or 'body'}: {first.get('msg', 'invalid value')}",
            details={"field": field},
        ) from exc


def is_suspicious(message: str) -> bool:
    return any(pattern.search(message) for pattern in SUSPICIOUS_PATTERNS)


def build_consultation_cache_key(request: ConsultationRequest) -> str:
    return (
        f"{request.consultation_type}:{request.user_id or 'anonymous'}:"
        f"{request.message[:CACHE_KEY_MESSAGE_CHARS]}"
    )


def compute_sales_metrics(request: SalesAnalysisRequest) -> SalesMetrics:
    """Aggregate the sales snapshot before it is sent to the model."""
    reps = request.sales_reps
    return SalesMetrics(
        total_sales=sum(rep.total_sales for rep in reps),
        total_goals=sum(goal.target_value for goal in request.goals),
        average_conversion=sum(rep.conversion_rate for rep in reps) / (len(reps) or 1),
        completed_habits=sum(1 for habit in request.habits if habit.completed),
        total_habits=len(request.habits),
    )


def build_consultation_prompt(request: ConsultationRequest) -> str:
    context = (
        json.dumps(request.context, indent=2, ensure_ascii=False)
        if request.context
        else "No additional context provided"
    )
    return (
        f"ADDITIONAL CONTEXT:\n{context}\n\n"
        "Be specific and practical, use the data when available and propose "
        "measurable actions. Ask targeted questions if information is missing.\n\n"
        f"QUESTION:\n{request.message}"
    )


def build_habit_prompt(request: HabitVerificationRequest) -> str:
    evidence = request.evidence
    return f"""
HABIT:
- Title: {request.habit_title}
- Description: {request.habit_description or 'Not specified'}
- Expected schedule: {request.schedule or 'Not specified'}
- Expected outcome: {request.expected_outcome or 'Not specified'}

EVIDENCE:
- Type: {evidence.type}
- Content: {evidence.content}
- Metadata: {json.dumps(evidence.metadata or {}, ensure_ascii=False)}

Return a JSON object with keys: verified (bool), confidence (0-100),
score (0-100), feedback (string), suggestions (list of strings),
evidenceQuality ("excellent"|"good"|"fair"|"poor").
""".strip()


def build_sales_prompt(request: SalesAnalysisRequest, metrics: SalesMetrics) -> str:
    reps = "\n".join(
        f"- {rep.name}: sales {rep.total_sales:.2f}, goal {rep.current_goal:.2f}, "
        f"conversion {rep.conversion_rate * 100:.1f}%"
        for rep in request.sales_reps
    ) or "- none"
    return f"""
SALES DATA ({request.period.upper()}), analysis type: {request.analysis_type}
- Total sales: {metrics.total_sales:.2f}
- Total goals: {metrics.total_goals:.2f}
- Average conversion: {metrics.average_conversion * 100:.1f}%
- Habits completed: {metrics.completed_habits}/{metrics.total_habits}
- Sales reps: {len(request.sales_reps)}, teams: {len(request.teams)}

REPS:
{reps}

Return a JSON object with keys: summary {{performance, goalAttainment,
trendDirection, riskLevel}}, insights, recommendations [{{priority, category,
action, expectedImpact}}], opportunities, warnings, kpis {{salesEfficiency,
habitCorrelation, teamSynergy, growthPotential}}.
""".strip()


def build_analytics_prompt(request: AdvancedAnalyticsRequest) -> str:
    data = request.data
    if request.type == "prediction":
        return f"""
Forecast next month's sales from this data:
- Sales over the last months: {json.dumps(data.sales)}
- Current month sales: {data.current_month}
- Target: {data.target}

Include a 90% confidence interval, the probability of reaching the target,
the main trends in the data and actions that maximise results.

Return a JSON object with keys: prediction (number), confidence_low (number),
confidence_high (number), probability (number), trends (list of strings),
recommendations (list of strings).
""".strip()

    if request.type == "insights":
        return f"""
Analyse how habit completion relates to sales performance:
- Sales over time: {json.dumps(data.sales)}
- Habit completion rates: {json.dumps(data.habits)}

Cover the correlation between habits and sales, performance patterns,
priority improvements and risks to mitigate.

Return a JSON object with keys: roi_score (number), correlations, patterns,
improvements, risks (each a list of strings).
""".strip()

    baseline = data.sales[0] if data.sales else 0
    habit_rate = data.habits[-1] if data.habits else 0
    return f"""
Compute the ROI of the sales habits programme:
- Baseline sales (before the habits): {baseline}
- Current sales (with the habits programme): {data.current_month or 0}
- Habit completion rate: {habit_rate * 100:.1f}%

Return a JSON object with keys: roi_percentage (number), revenue_increase
(number), efficiency_gain (number), cost_benefit (string), summary (string).
""".strip()


class CoachingService:
    """LLM-backed handlers for the protected coaching functions.

    Attributes:
        llm: LLM client adapter.
        cache: TTL cache for consultant answers.
    """

    def __init__(self, llm: AbstractLLMClient, cache: SimpleTTLCache) -> None:
        self.llm = llm
        self.cache = cache

    # ------------------------------------------------------------ ai-consultant

    def _validate_message(self, request: ConsultationRequest) -> None:
        max_chars = settings.app.max_message_chars
        if len(request.message) > max_chars:
            raise ValidationAppError(
                code="message_too_long",
                message="Message too long",
                details={"max_chars": max_chars, "actual_chars": len(request.message)},
            )
        if is_suspicious(request.message):
            logger.warning(
                "consultant.request_blocked",
                extra={"consultation_type": request.consultation_type},
            )
            raise ValidationAppError(
                code="request_blocked",
                message="Request blocked for security reasons",
            )

    async def consult(self, payload: dict[str, Any]) -> ConsultationResponse:
        """Answer a coaching question.

        Raises:
            ValidationAppError: Invalid, too long or blocked message.
            LLMAppError: Provider failure.
        """
        request = parse_payload(ConsultationRequest, payload)
        self._validate_message(request)

        cache_key = build_consultation_cache_key(request)
        cached = self.cache.get(cache_key)
        if cached:
            logger.info("consultant.cache_hit", extra={"consultation_type": request.consultation_type})
            response = ConsultationResponse.model_validate(cached)
            response.cached = True
            response.metadata.cache_hit = True
            return response

        is_complex = (
            len(request.message) > COMPLEX_MESSAGE_CHARS
            or request.consultation_type == "strategy"
        )
        model = settings.llm.model if is_complex else settings.llm.light_model

        started = time.perf_counter()
        completion = await self.llm.generate_text(
            build_consultation_prompt(request),
            system=CONSULTANT_SYSTEM_PROMPTS[request.consultation_type],
            model=model,
            temperature=0.7,
            max_tokens=2000 if request.consultation_type == "strategy" else 1500,
        )
        response_time = int((time.perf_counter() - started) * 1000)

        logger.info(
            "consultant.completed",
            extra={
                "consultation_type": request.consultation_type,
                "model": completion.model,
                "tokens_used": completion.usage.get("total_tokens", 0),
                "response_time_ms": response_time,
                "authenticated": request.user_id is not None,
            },
        )

        response = ConsultationResponse(
            response=completion.text,
            consultation_type=request.consultation_type,
            context_used=bool(request.context),
            metadata=ConsultationMetadata(
                timestamp=_utc_timestamp(),
                user_id=request.user_id,
                model=completion.model,
                token_usage=completion.usage or None,
                response_time=response_time,
            ),
        )
        self.cache.set(cache_key, response.model_dump())
        return response

    # ------------------------------------------------------ habits-verification

    async def verify_habit(self, payload: dict[str, Any]) -> HabitVerificationResponse:
        """Judge habit evidence; falls back to a manual-review verdict."""
        request = parse_payload(HabitVerificationRequest, payload)

        try:
            raw = await self.llm.generate_json(
                build_habit_prompt(request),
                system=HABIT_SYSTEM_PROMPT,
                temperature=0.3,
                max_tokens=1000,
            )
            verification = HabitVerification.model_validate(raw)
        except (LLMAppError, ValidationError) as exc:
            if isinstance(exc, LLMAppError) and exc.code != "llm_invalid_json":
                raise
            logger.warning(
                "habits.verification_fallback",
                extra={"habit_id": request.habit_id, "error_type": type(exc).__name__},
            )
            verification = FALLBACK_VERIFICATION.model_copy(deep=True)

        auto_approved = verification.verified and verification.confidence > AUTO_APPROVE_CONFIDENCE
        logger.info(
            "habits.verified",
            extra={
                "habit_id": request.habit_id,
                "verified": verification.verified,
                "confidence": verification.confidence,
                "score": verification.score,
                "auto_approved": auto_approved,
            },
        )
        return HabitVerificationResponse(
            verification=verification,
            habit_id=request.habit_id,
            auto_approved=auto_approved,
        )

    # ----------------------------------------------------------- sales-analysis

    async def analyze_sales(self, payload: dict[str, Any]) -> SalesAnalysisResponse:
        """Analyse a sales snapshot; falls back to a neutral analysis."""
        request = parse_payload(SalesAnalysisRequest, payload)
        metrics = compute_sales_metrics(request)

        try:
            raw = await self.llm.generate_json(
                build_sales_prompt(request, metrics),
                system=SALES_SYSTEM_PROMPT,
                temperature=0.4,
                max_tokens=2000,
            )
            analysis = SalesAnalysis.model_validate(raw)
        except (LLMAppError, ValidationError) as exc:
            if isinstance(exc, LLMAppError) and exc.code != "llm_invalid_json":
                raise
            logger.warning(
                "sales.analysis_fallback",
                extra={"analysis_type": request.analysis_type, "error_type": type(exc).__name__},
            )
            analysis = FALLBACK_ANALYSIS.model_copy(deep=True)

        return SalesAnalysisResponse(
            analysis=analysis,
            metrics=metrics,
            metadata=SalesAnalysisMetadata(
                period=request.period,
                analysis_type=request.analysis_type,
                data_points={
                    "salesReps": len(request.sales_reps),
                    "goals": len(request.goals),
                    "habits": len(request.habits),
                    "teams": len(request.teams),
                },
                timestamp=_utc_timestamp(),
            ),
        )

    # ------------------------------------------------------- advanced-analytics

    async def advanced_analytics(self, payload: dict[str, Any]) -> AdvancedAnalyticsResponse:
        """Run a forecast, habit-insights or ROI analysis.

        There is no fallback: a reply of the wrong shape is an error.

        Raises:
            ValidationAppError: Unknown analysis type or malformed data.
            LLMAppError: Provider failure or unusable reply.
        """
        request = parse_payload(AdvancedAnalyticsRequest, payload)
        model = settings.llm.light_model

        raw = await self.llm.generate_json(
            build_analytics_prompt(request),
            system=ANALYTICS_SYSTEM_PROMPTS[request.type],
            model=model,
            temperature=0.7,
            max_tokens=1500,
        )
        try:
            result = ANALYTICS_RESULT_MODELS[request.type].model_validate(raw)
        except ValidationError as exc:
            logger.error(
                "analytics.invalid_response",
                extra={"analysis_type": request.type, "model": model},
            )
            raise LLMAppError(
                code="llm_invalid_json",
                message="AI service returned an unexpected analysis",
                details={"model": model},
            ) from exc

        logger.info(
            "analytics.completed",
            extra={"analysis_type": request.type, "data_points": len(request.data.sales)},
        )
        return AdvancedAnalyticsResponse(type=request.type, result=result)
