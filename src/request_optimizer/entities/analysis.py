"""Metrics analysis entities."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Severity = Literal["low", "medium", "high", "critical"]
IssueType = Literal["high_cost", "high_latency", "high_error_rate", "low_cache_hit", "rate_limiting"]
Trend = Literal["improving", "degrading", "stable"]


@dataclass(frozen=True)
class ComponentSummary:
    """Totals of one component over the analysed window."""

    total_calls: int = 0
    total_cost: float = 0.0
    avg_latency_ms: float = 0.0
    error_rate: float = 0.0
    cache_hit_rate: float = 0.0
    rate_limit_hits: int = 0


@dataclass(frozen=True)
class OptimizationIssue:
    """A metric outside its healthy range.

    Attributes:
        severity: How urgently it needs attention
        type: Which threshold was crossed
        description: Human-readable finding with the observed value
        impact: What the issue costs the system
        current_value: Observed value
        target_value: Value to aim for
    """

    severity: Severity
    type: IssueType
    description: str
    impact: str
    current_value: float
    target_value: float


@dataclass(frozen=True)
class OptimizationRecommendation:
    """Action suggested for one issue."""

    issue_type: IssueType
    priority: Severity
    action: str
    expected_improvement: str
    risk_level: Literal["low", "medium", "high"]
    reasoning: str


@dataclass(frozen=True)
class TrendAnalysis:
    """Change of one metric against the previous period of equal length."""

    metric: str
    trend: Trend
    change_percentage: float
    period: str


@dataclass(frozen=True)
class MetricsAnalysis:
    """Issues, recommendations and trends of one component."""

    component_name: str
    window_start: datetime
    window_end: datetime
    summary: ComponentSummary
    issues: list[OptimizationIssue] = field(default_factory=list)
    recommendations: list[OptimizationRecommendation] = field(default_factory=list)
    trends: list[TrendAnalysis] = field(default_factory=list)


@dataclass(frozen=True)
class OptimizationOpportunities:
    """Recommendation counts across every component with traffic."""

    components: list[str] = field(default_factory=list)
    total_opportunities: int = 0
    high_priority: int = 0
    estimated_savings: float = 0.0
