"""Composition root.

Builds every component of the optimization layer from one ``Settings``
instance and hands each its collaborators explicitly:

    CacheStore ──> AdaptiveTTLPredictor ──> CacheService ──> CostQualityPredictor
                                                 │                 │
    CallLogStore ──> TelemetryAggregator ────────┼─────────────────┤
                          └──> MetricsAnalyzer   │                 │
                                                 │                 ├──> ModelSelector
    QueryDeduplicationPool ──> RequestGateway <──┘                 └──> MultiObjectiveOptimizer

Usage:
    ```python
    async with optimization_layer() as layer:
        selection = await layer.selector.select_for_realtime("event_extraction", 4000)
        result = await layer.gateway.complete("event_extraction", messages, selection.config)
    ```
"""

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis.asyncio as redis

from request_optimizer.config import Settings, get_redis_client, get_settings
from request_optimizer.protocols import CacheStore, CallLogStore, CompletionProvider, SearchProvider
from request_optimizer.repositories import (
    MemoryCacheRepository,
    MemoryCallLogRepository,
    OpenAICompletionProvider,
    RedisCacheRepository,
    RedisCallLogRepository,
    TavilySearchProvider,
)
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

logger = logging.getLogger(__name__)


@dataclass
class OptimizationLayer:
    """Every wired component of the layer."""

    settings: Settings
    cache_repository: CacheStore
    call_log_repository: CallLogStore
    ttl_predictor: AdaptiveTTLPredictor
    cache: CacheService
    telemetry: TelemetryAggregator
    analyzer: MetricsAnalyzer
    predictor: CostQualityPredictor
    selector: ModelSelector
    optimizer: MultiObjectiveOptimizer
    pool: QueryDeduplicationPool
    gateway: RequestGateway
    search_provider: SearchProvider | None = None
    completion_provider: CompletionProvider | None = None
    redis_client: redis.Redis | None = None

    async def aclose(self) -> None:
        """Close provider HTTP clients and the Redis connection pool."""
        for provider in (self.search_provider, self.completion_provider):
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        if self.redis_client is not None:
            await self.redis_client.aclose()


def build_layer(
    settings: Settings | None = None,
    *,
    cache_repository: CacheStore | None = None,
    call_log_repository: CallLogStore | None = None,
    search_provider: SearchProvider | None = None,
    completion_provider: CompletionProvider | None = None,
    clock: Callable[[], float] = time.time,
) -> OptimizationLayer:
    """Wire the layer.

    Stores default to Redis (one shared client) and providers to OpenAI and
    Tavily clients built from the same settings.

    Args:
        settings: Application settings. Defaults to ``get_settings()``.
        cache_repository: Cache entry store override.
        call_log_repository: Call log store override.
        search_provider: Search provider override.
        completion_provider: Completion provider override.
        clock: Returns the current Unix time; shared by every component.

    Returns:
        OptimizationLayer
    """
    settings = settings or get_settings()

    redis_client = None
    if cache_repository is None or call_log_repository is None:
        redis_client = get_redis_client(settings)
    if cache_repository is None:
        cache_repository = RedisCacheRepository(redis_client=redis_client, settings=settings)
    if call_log_repository is None:
        call_log_repository = RedisCallLogRepository(redis_client=redis_client, settings=settings)

    if search_provider is None:
        search_provider = TavilySearchProvider.create(settings)
    if completion_provider is None:
        completion_provider = OpenAICompletionProvider.create(settings)

    return _wire(
        settings,
        cache_repository,
        call_log_repository,
        search_provider,
        completion_provider,
        clock,
        redis_client,
    )


def build_memory_layer(
    settings: Settings | None = None,
    *,
    search_provider: SearchProvider | None = None,
    completion_provider: CompletionProvider | None = None,
    clock: Callable[[], float] = time.time,
) -> OptimizationLayer:
    """Wire the layer on in-process stores, for tests and local tools.

    Providers are left unset unless given.
    """
    return _wire(
        settings or get_settings(),
        MemoryCacheRepository(),
        MemoryCallLogRepository(),
        search_provider,
        completion_provider,
        clock,
        None,
    )


def _wire(
    settings: Settings,
    cache_repository: CacheStore,
    call_log_repository: CallLogStore,
    search_provider: SearchProvider | None,
    completion_provider: CompletionProvider | None,
    clock: Callable[[], float],
    redis_client: redis.Redis | None,
) -> OptimizationLayer:
    ttl_predictor = AdaptiveTTLPredictor(cache_repository, clock=clock)
    cache = CacheService(cache_repository, ttl_predictor=ttl_predictor, settings=settings, clock=clock)
    telemetry = TelemetryAggregator(call_log_repository, settings=settings, clock=clock)
    predictor = CostQualityPredictor(cache, telemetry=telemetry, settings=settings)
    pool = QueryDeduplicationPool(settings=settings, clock=clock)
    gateway = RequestGateway(
        cache,
        telemetry,
        pool,
        search_provider=search_provider,
        completion_provider=completion_provider,
        clock=clock,
    )

    logger.debug(
        "Optimization layer wired (cache=%s, call log=%s)",
        type(cache_repository).__name__,
        type(call_log_repository).__name__,
    )
    return OptimizationLayer(
        settings=settings,
        cache_repository=cache_repository,
        call_log_repository=call_log_repository,
        ttl_predictor=ttl_predictor,
        cache=cache,
        telemetry=telemetry,
        analyzer=MetricsAnalyzer(telemetry, clock=clock),
        predictor=predictor,
        selector=ModelSelector(predictor),
        optimizer=MultiObjectiveOptimizer(predictor),
        pool=pool,
        gateway=gateway,
        search_provider=search_provider,
        completion_provider=completion_provider,
        redis_client=redis_client,
    )


@asynccontextmanager
async def optimization_layer(settings: Settings | None = None) -> AsyncIterator[OptimizationLayer]:
    """Build the Redis-backed layer and close its clients on exit."""
    layer = build_layer(settings)
    try:
        yield layer
    finally:
        await layer.aclose()
