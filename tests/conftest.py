"""
Shared fixtures for the request optimizer tests.
"""

import pytest

from request_optimizer.config import Settings
from request_optimizer.errors import StorageError
from request_optimizer.repositories import MemoryCacheRepository, MemoryCallLogRepository
from request_optimizer.services import CacheService, CostQualityPredictor, TelemetryAggregator


class FakeClock:
    """Manually advanced Unix clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingCacheStore:
    """CacheStore whose backend is always down."""

    async def fetch(self, key):
        raise StorageError("redis down")

    async def upsert(self, entry):
        raise StorageError("redis down")

    async def delete(self, key):
        raise StorageError("redis down")

    async def record_hit(self, key, at):
        raise StorageError("redis down")

    async def record_access(self, key, at):
        raise StorageError("redis down")

    async def fetch_access(self, key):
        raise StorageError("redis down")

    async def delete_matching(self, provider_type=None, endpoint=None, request_hash=None):
        raise StorageError("redis down")

    async def delete_expired(self, now):
        raise StorageError("redis down")

    async def hit_counts(self, provider_type=None):
        raise StorageError("redis down")

    async def health_check(self):
        raise StorageError("redis down")


class FailingCallLogStore:
    """CallLogStore whose backend is always down."""

    async def append(self, entry):
        raise StorageError("redis down")

    async def fetch_window(self, start, end):
        raise StorageError("redis down")

    async def delete_before(self, cutoff):
        raise StorageError("redis down")


@pytest.fixture
def clock():
    """Clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def settings():
    """Settings independent of the environment."""
    return Settings(
        cache_single_flight=True,
        telemetry_exact_percentiles=True,
        query_pool_capacity=1000,
        prediction_cache_ttl=86400,
        telemetry_retention_days=30,
        cache_version=1,
        openai_api_key="test-openai-key",
        tavily_api_key="test-tavily-key",
        openai_base_url="https://api.openai.com/v1",
        tavily_base_url="https://api.tavily.com",
    )


@pytest.fixture
def repository():
    return MemoryCacheRepository()


@pytest.fixture
def failing_store():
    return FailingCacheStore()


@pytest.fixture
def failing_log_store():
    return FailingCallLogStore()


@pytest.fixture
def call_log():
    return MemoryCallLogRepository()


@pytest.fixture
def cache(repository, settings, clock):
    """Cache service on an in-memory store without a TTL predictor."""
    return CacheService(repository, settings=settings, clock=clock)


@pytest.fixture
def telemetry(call_log, settings, clock):
    return TelemetryAggregator(call_log, settings=settings, clock=clock)


@pytest.fixture
def predictor(cache, settings):
    """Cost/quality predictor with static tables only (no telemetry)."""
    return CostQualityPredictor(cache, settings=settings)
