"""Metrics analysis.

Turns the aggregated call log into per-component findings: thresholds that
are crossed, the action recommended for each and how the main metrics moved
against the previous period.

A component is a feature name; windows without a feature are matched by
endpoint.
"""

import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

from request_optimizer.entities import (
    ApiMetricsWindow,
    ComponentSummary,
    MetricsAnalysis,
    OptimizationIssue,
    OptimizationOpportunities,
    OptimizationRecommendation,
    TrendAnalysis,
)

from .telemetry import TelemetryAggregator

logger = logging.getLogger(__name__)

MAX_DAILY_COST = 10.0  # USD
MAX_AVG_LATENCY = 2000.0  # ms
MAX_ERROR_RATE = 0.05
MIN_CACHE_HIT_RATE = 0.5
MAX_RATE_LIMIT_HITS = 10

TARGET_REDUCTION = 0.7
TARGET_ERROR_RATE = 0.02
TARGET_CACHE_HIT_RATE = 0.7
SAVINGS_PER_COST_RECOMMENDATION = 0.3

# Percent change below which a metric counts as stable
TREND_TOLERANCE = {"latency": 5.0, "error_rate": 10.0, "cache_hit_rate": 5.0}

RECOMMENDATIONS: dict[str, dict[str, str]] = {
    "high_cost": {
        "priority": "high",
        "action": "Optimize API model selection and reduce token usage",
        "expected_improvement": "30-50% cost reduction",
        "risk_level": "low",
        "reasoning": "Cost optimization can be achieved by using cheaper models for non-critical tasks",
    },
    "high_latency": {
        "priority": "medium",
        "action": "Increase batch sizes and optimize concurrency",
        "expected_improvement": "20-40% latency reduction",
        "risk_level": "medium",
        "reasoning": "Batch processing and concurrency tuning can improve throughput",
    },
    "high_error_rate": {
        "priority": "critical",
        "action": "Reduce concurrency and add retry logic with backoff",
        "expected_improvement": "Error rate reduction to <2%",
        "risk_level": "low",
        "reasoning": "Lower concurrency reduces API rate limit errors",
    },
    "low_cache_hit": {
        "priority": "medium",
        "action": "Increase cache TTL and improve cache key strategy",
        "expected_improvement": "Cache hit rate increase to 70%+",
        "risk_level": "low",
        "reasoning": "Longer TTL for stable data can significantly improve cache performance",
    },
    "rate_limiting": {
        "priority": "high",
        "action": "Implement rate limit detection and adaptive throttling",
        "expected_improvement": "Eliminate rate limit hits",
        "risk_level": "low",
        "reasoning": "Adaptive throttling prevents hitting API rate limits",
    },
}


def component_of(window: ApiMetricsWindow) -> str:
    return window.feature_name or window.endpoint


def matches_component(window: ApiMetricsWindow, component_name: str) -> bool:
    return window.feature_name == component_name or component_name in window.endpoint


def summarize(windows: Iterable[ApiMetricsWindow]) -> ComponentSummary:
    """Combine metrics windows, weighting averages by call count."""
    calls = cached = failed = rate_limits = 0
    cost = latency = 0.0
    for window in windows:
        calls += window.total_calls
        cached += window.cached_calls
        failed += window.failed_calls
        rate_limits += window.rate_limit_hits
        cost += window.estimated_cost
        latency += window.avg_latency_ms * window.total_calls
    if not calls:
        return ComponentSummary()
    return ComponentSummary(
        total_calls=calls,
        total_cost=cost,
        avg_latency_ms=latency / calls,
        error_rate=failed / calls,
        cache_hit_rate=cached / calls,
        rate_limit_hits=rate_limits,
    )


def identify_issues(summary: ComponentSummary, hours: float = 24) -> list[OptimizationIssue]:
    """Compare a component summary against the health thresholds.

    Cost is scaled to a daily figure before it is compared. A component
    without calls has no issues.
    """
    if not summary.total_calls:
        return []

    issues = []
    daily_cost = summary.total_cost * 24 / hours if hours > 0 else summary.total_cost
    if daily_cost > MAX_DAILY_COST:
        issues.append(
            OptimizationIssue(
                severity="high",
                type="high_cost",
                description=f"High API costs: ${daily_cost:.2f} per day",
                impact="Significant cost impact on operations",
                current_value=daily_cost,
                target_value=daily_cost * TARGET_REDUCTION,
            )
        )

    if summary.avg_latency_ms > MAX_AVG_LATENCY:
        issues.append(
            OptimizationIssue(
                severity="medium",
                type="high_latency",
                description=f"High average latency: {summary.avg_latency_ms:.0f}ms",
                impact="Poor user experience",
                current_value=summary.avg_latency_ms,
                target_value=summary.avg_latency_ms * TARGET_REDUCTION,
            )
        )

    if summary.error_rate > MAX_ERROR_RATE:
        issues.append(
            OptimizationIssue(
                severity="critical",
                type="high_error_rate",
                description=f"High error rate: {summary.error_rate * 100:.1f}%",
                impact="System reliability issues",
                current_value=summary.error_rate,
                target_value=TARGET_ERROR_RATE,
            )
        )

    if summary.cache_hit_rate < MIN_CACHE_HIT_RATE:
        issues.append(
            OptimizationIssue(
                severity="medium",
                type="low_cache_hit",
                description=f"Low cache hit rate: {summary.cache_hit_rate * 100:.0f}%",
                impact="Increased API costs and latency",
                current_value=summary.cache_hit_rate,
                target_value=TARGET_CACHE_HIT_RATE,
            )
        )

    if summary.rate_limit_hits > MAX_RATE_LIMIT_HITS:
        issues.append(
            OptimizationIssue(
                severity="high",
                type="rate_limiting",
                description=f"Rate limit hits: {summary.rate_limit_hits}",
                impact="API throttling affecting performance",
                current_value=summary.rate_limit_hits,
                target_value=0,
            )
        )
    return issues


def generate_recommendations(issues: Iterable[OptimizationIssue]) -> list[OptimizationRecommendation]:
    """One recommendation per issue, in issue order."""
    return [OptimizationRecommendation(issue_type=issue.type, **RECOMMENDATIONS[issue.type]) for issue in issues]


def analyze_trends(current: ComponentSummary, previous: ComponentSummary, hours: float = 24) -> list[TrendAnalysis]:
    """Compare latency, error rate and cache hit rate with the previous period.

    A metric is only reported when it was non-zero in the previous period.
    Lower is better for latency and error rate, higher for cache hit rate.
    """
    period = f"{hours:g}h"
    metrics = (
        ("latency", current.avg_latency_ms, previous.avg_latency_ms, False),
        ("error_rate", current.error_rate, previous.error_rate, False),
        ("cache_hit_rate", current.cache_hit_rate, previous.cache_hit_rate, True),
    )

    trends = []
    for name, now, before, higher_is_better in metrics:
        if before <= 0:
            continue
        change = (now - before) / before * 100
        tolerance = TREND_TOLERANCE[name]
        if abs(change) <= tolerance:
            trend = "stable"
        elif (change > 0) == higher_is_better:
            trend = "improving"
        else:
            trend = "degrading"
        trends.append(TrendAnalysis(metric=name, trend=trend, change_percentage=change, period=period))
    return trends


class MetricsAnalyzer:
    """Finds optimization opportunities in the call log.

    Example:
        ```python
        analyzer = MetricsAnalyzer(telemetry)
        analysis = await analyzer.analyze("news", hours=24)
        for recommendation in analysis.recommendations:
            print(recommendation.priority, recommendation.action)
        ```
    """

    def __init__(self, telemetry: TelemetryAggregator, clock: Callable[[], float] = time.time) -> None:
        self._telemetry = telemetry
        self._clock = clock

    async def analyze(self, component_name: str, hours: float = 24) -> MetricsAnalysis:
        """Analyse one component over the last ``hours`` hours.

        Trends compare against the ``hours`` hours before that.

        Args:
            component_name: Feature name, or part of an endpoint name
            hours: Window length

        Returns:
            MetricsAnalysis; empty summary and no findings when the component
            had no calls or the call log is unavailable
        """
        end = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        start = end - timedelta(hours=hours)
        return await self._analyze(component_name, start, end, hours)

    async def optimization_opportunities(self, hours: float = 24) -> OptimizationOpportunities:
        """Count recommendations across every component with traffic.

        Estimated savings assume each cost recommendation recovers 30% of the
        component's cost in the window.
        """
        end = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        start = end - timedelta(hours=hours)

        components: list[str] = []
        for window in await self._telemetry.aggregate(start, end):
            name = component_of(window)
            if name not in components:
                components.append(name)

        total = high_priority = 0
        savings = 0.0
        for name in components:
            analysis = await self._analyze(name, start, end, hours)
            total += len(analysis.recommendations)
            high_priority += sum(1 for r in analysis.recommendations if r.priority in ("high", "critical"))
            cost_recommendations = sum(1 for r in analysis.recommendations if r.issue_type == "high_cost")
            savings += analysis.summary.total_cost * SAVINGS_PER_COST_RECOMMENDATION * cost_recommendations

        return OptimizationOpportunities(
            components=components,
            total_opportunities=total,
            high_priority=high_priority,
            estimated_savings=savings,
        )

    async def _analyze(self, component_name: str, start: datetime, end: datetime, hours: float) -> MetricsAnalysis:
        current = summarize(
            w for w in await self._telemetry.aggregate(start, end) if matches_component(w, component_name)
        )
        previous = summarize(
            w
            for w in await self._telemetry.aggregate(start - (end - start), start)
            if matches_component(w, component_name)
        )

        issues = identify_issues(current, hours)
        if issues:
            logger.info(
                "%s: %d issue(s) in the last %gh (%s)",
                component_name,
                len(issues),
                hours,
                ", ".join(issue.type for issue in issues),
            )
        return MetricsAnalysis(
            component_name=component_name,
            window_start=start,
            window_end=end,
            summary=current,
            issues=issues,
            recommendations=generate_recommendations(issues),
            trends=analyze_trends(current, previous, hours),
        )
