"""Domain entities for internal representation.

These are pure dataclasses (frozen) used internally by services
and repositories. They are NOT used for provider payload validation - use
the pydantic models from the dto package for that.

Entities should have:
- No JSON serialization logic
- No Pydantic validation
- No external dependencies
- Pure domain logic only
"""

from .access_pattern import AccessPattern, AccessRecord, ReusePrediction
from .analysis import (
    ComponentSummary,
    MetricsAnalysis,
    OptimizationIssue,
    OptimizationOpportunities,
    OptimizationRecommendation,
    TrendAnalysis,
)
from .cache_entry import CacheEntryEntity, CacheOptions, CacheResult, CacheStats, PrewarmItem
from .call_log import ApiCallLogEntity, ApiMetricsWindow, ProviderSummary, TelemetrySummary
from .optimization import Objective, OptimizationResult, Solution, TradeOffAnalysis
from .prediction import (
    ApiConfig,
    ConfigOptimization,
    CostQualityPrediction,
    ModelSelection,
    TaskRequirements,
)
from .query_pool import QueryPoolEntry

__all__ = [
    "AccessPattern",
    "AccessRecord",
    "ApiCallLogEntity",
    "ApiConfig",
    "ApiMetricsWindow",
    "CacheEntryEntity",
    "CacheOptions",
    "CacheResult",
    "CacheStats",
    "ComponentSummary",
    "ConfigOptimization",
    "CostQualityPrediction",
    "MetricsAnalysis",
    "ModelSelection",
    "Objective",
    "OptimizationIssue",
    "OptimizationOpportunities",
    "OptimizationRecommendation",
    "OptimizationResult",
    "PrewarmItem",
    "ProviderSummary",
    "QueryPoolEntry",
    "ReusePrediction",
    "Solution",
    "TaskRequirements",
    "TelemetrySummary",
    "TradeOffAnalysis",
    "TrendAnalysis",
]
