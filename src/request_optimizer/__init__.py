"""Request Optimizer - adaptive caching and model selection for metered APIs.

This package provides a layered architecture for the optimization layer that
sits between application features and paid completion/search providers:

Layers:
    - protocols: Interface contracts (CacheStore, CallLogStore, TTLPredictor, providers)
    - repositories: Data access and provider client implementations
    - services: Business logic
    - dto: Validated provider payloads and configuration (trust boundary)
    - entities: Domain models (internal)
    - dependencies: Composition root

Usage:
    ```python
    from request_optimizer import build_layer

    layer = build_layer()
    prediction = await layer.predictor.predict("event_extraction", 4000, ApiConfig("gpt-4o"))
    ```
"""

from request_optimizer.config import Settings, get_redis_client, get_settings
from request_optimizer.dependencies import OptimizationLayer, build_layer, build_memory_layer, optimization_layer
from request_optimizer.dto import CompletionConfig, SearchConfig, parse_provider_config
from request_optimizer.entities import (
    ApiCallLogEntity,
    ApiConfig,
    CacheOptions,
    CacheResult,
    Objective,
    TaskRequirements,
)
from request_optimizer.errors import OptimizerError, ProviderError, StorageError
from request_optimizer.protocols import CacheStore, CallLogStore, TTLPredictor
from request_optimizer.services import (
    AdaptiveTTLPredictor,
    CacheService,
    CostQualityPredictor,
    MetricsAnalyzer,
    ModelSelector,
    MultiObjectiveOptimizer,
    QueryDeduplicationPool,
    RequestGateway,
    TelemetryAggregator,
)

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "get_redis_client",
    # Composition
    "OptimizationLayer",
    "build_layer",
    "build_memory_layer",
    "optimization_layer",
    # Protocols (interfaces)
    "CacheStore",
    "CallLogStore",
    "TTLPredictor",
    # Services (business logic)
    "AdaptiveTTLPredictor",
    "CacheService",
    "CostQualityPredictor",
    "MetricsAnalyzer",
    "ModelSelector",
    "MultiObjectiveOptimizer",
    "QueryDeduplicationPool",
    "RequestGateway",
    "TelemetryAggregator",
    # Entities (domain models)
    "ApiCallLogEntity",
    "ApiConfig",
    "CacheOptions",
    "CacheResult",
    "Objective",
    "TaskRequirements",
    # DTOs (trust boundary)
    "CompletionConfig",
    "SearchConfig",
    "parse_provider_config",
    # Errors
    "OptimizerError",
    "ProviderError",
    "StorageError",
]
