"""Service layer for business logic.

This layer contains the core business logic and orchestration.
Services depend on protocols (interfaces), not concrete implementations,
making them testable and flexible.

Architecture:
    RequestGateway -> CacheService / TelemetryAggregator -> Repository
    (Routing)      -> (Business)                         -> (Data Access)

Usage:
    ```python
    from request_optimizer.services import CacheService, AdaptiveTTLPredictor

    repository = RedisCacheRepository.create()
    cache = CacheService(repository, ttl_predictor=AdaptiveTTLPredictor(repository))
    ```
"""

from .cache_service import CacheService, generate_key, generate_request_hash
from .cost_quality import CostQualityPredictor
from .gateway import RequestGateway
from .metrics_analyzer import MetricsAnalyzer
from .model_selector import ModelSelector
from .multi_objective import MultiObjectiveOptimizer
from .query_pool import QueryDeduplicationPool, normalize_query
from .telemetry import TelemetryAggregator
from .ttl_predictor import AdaptiveTTLPredictor

__all__ = [
    "AdaptiveTTLPredictor",
    "CacheService",
    "CostQualityPredictor",
    "MetricsAnalyzer",
    "ModelSelector",
    "MultiObjectiveOptimizer",
    "QueryDeduplicationPool",
    "RequestGateway",
    "TelemetryAggregator",
    "generate_key",
    "generate_request_hash",
    "normalize_query",
]
