"""Pydantic schemas for the coaching functions.

Payloads arrive in camelCase (``userId``, ``habitTitle``); models accept
both camelCase and snake_case and dump camelCase.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------- ai-consultant

ConsultationType = Literal["sales", "habits", "goals", "general", "strategy"]


class ConsultationRequest(CamelModel):
    """Question sent to the AI sales coach."""

    message: str = Field(..., min_length=1, description="User question or situation.")
    user_id: str | None = None
    company_id: str | None = None
    context: dict[str, Any] | None = Field(
        default=None,
        description="Optional client-side context (goals, habits, sales data, history).",
    )
    consultation_type: ConsultationType = "general"


class ConsultationMetadata(CamelModel):
    timestamp: str
    user_id: str | None = None
    model: str
    token_usage: dict[str, int] | None = None
    response_time: int = Field(..., description="Milliseconds spent producing the answer.")
    cache_hit: bool = False


class ConsultationResponse(CamelModel):
    success: bool = True
    response: str
    consultation_type: ConsultationType
    context_used: bool
    metadata: ConsultationMetadata
    cached: bool = False


# ---------------------------------------------------------- habits-verification


class HabitEvidence(CamelModel):
    type: Literal["text", "image", "data"]
    content: str = Field(..., min_length=1)
    metadata: dict[str, Any] | None = None


class HabitVerificationRequest(CamelModel):
    habit_id: str = Field(..., min_length=1)
    habit_title: str = Field(..., min_length=1)
    habit_description: str = ""
    evidence: HabitEvidence
    schedule: str | None = None
    expected_outcome: str | None = None


class HabitVerification(CamelModel):
    """Verdict on whether the evidence proves the habit was done."""

    verified: bool
    confidence: int = Field(..., ge=0, le=100)
    score: int = Field(..., ge=0, le=100)
    feedback: str
    suggestions: list[str] = Field(default_factory=list)
    evidence_quality: Literal["excellent", "good", "fair", "poor"]


class HabitVerificationResponse(CamelModel):
    success: bool = True
    verification: HabitVerification
    habit_id: str
    auto_approved: bool


# --------------------------------------------------------------- sales-analysis


class SalesRep(CamelModel):
    name: str = ""
    total_sales: float = 0.0
    current_goal: float = 0.0
    conversion_rate: float = 0.0


class SalesGoal(CamelModel):
    name: str = ""
    target_value: float = 0.0
    current_value: float = 0.0


class SalesHabit(CamelModel):
    title: str = ""
    completed: bool = False


class SalesAnalysisRequest(CamelModel):
    """Snapshot of a company/team/rep's sales data to analyse."""

    period: Literal["week", "month", "quarter", "year"]
    analysis_type: Literal["performance", "trends", "opportunities", "complete"]
    company_id: str | None = None
    team_id: str | None = None
    sales_rep_id: str | None = None
    sales_reps: list[SalesRep] = Field(default_factory=list)
    goals: list[SalesGoal] = Field(default_factory=list)
    habits: list[SalesHabit] = Field(default_factory=list)
    teams: list[dict[str, Any]] = Field(default_factory=list)


class SalesMetrics(CamelModel):
    total_sales: float
    total_goals: float
    average_conversion: float
    completed_habits: int
    total_habits: int


class AnalysisSummary(CamelModel):
    performance: Literal["excellent", "good", "fair", "poor"]
    goal_attainment: float = Field(..., ge=0, le=100)
    trend_direction: Literal["up", "down", "stable"]
    risk_level: Literal["low", "medium", "high"]


class Recommendation(CamelModel):
    priority: Literal["high", "medium", "low"]
    category: Literal["habits", "goals", "team", "process"]
    action: str
    expected_impact: str = ""


class AnalysisKpis(CamelModel):
    sales_efficiency: float = 0
    habit_correlation: float = 0
    team_synergy: float = 0
    growth_potential: float = 0


class SalesAnalysis(CamelModel):
    summary: AnalysisSummary
    insights: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    kpis: AnalysisKpis = Field(default_factory=AnalysisKpis)


class SalesAnalysisMetadata(CamelModel):
    period: str
    analysis_type: str
    data_points: dict[str, int]
    timestamp: str


class SalesAnalysisResponse(CamelModel):
    success: bool = True
    analysis: SalesAnalysis
    metrics: SalesMetrics
    metadata: SalesAnalysisMetadata


# ----------------------------------------------------------- advanced-analytics

AnalyticsType = Literal["prediction", "insights", "roi_analysis"]


class AnalyticsData(CamelModel):
    """Numeric series the analytics are computed over."""

    sales: list[float] = Field(default_factory=list, description="Sales totals, oldest first.")
    habits: list[float] = Field(
        default_factory=list,
        description="Habit completion rates in [0, 1], aligned with ``sales``.",
    )
    period: str | None = None
    current_month: float | None = None
    target: float | None = None


class AdvancedAnalyticsRequest(CamelModel):
    type: AnalyticsType
    data: AnalyticsData = Field(default_factory=AnalyticsData)


class SalesPrediction(CamelModel):
    """Next-month forecast with a 90% confidence interval."""

    prediction: float
    confidence_low: float
    confidence_high: float
    probability: float = Field(..., description="Probability of reaching the target.")
    trends: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class HabitInsights(CamelModel):
    roi_score: float
    correlations: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)


class RoiAnalysis(CamelModel):
    roi_percentage: float
    revenue_increase: float
    efficiency_gain: float
    cost_benefit: str
    summary: str


class AdvancedAnalyticsResponse(CamelModel):
    success: bool = True
    type: AnalyticsType
    result: SalesPrediction | HabitInsights | RoiAnalysis
