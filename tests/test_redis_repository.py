"""
Tests for the Redis cache and call-log repositories.

Run against fakeredis by default; set REDIS_TEST_URL to also run them
against a live Redis.
"""

import os
import uuid

import fakeredis
import pytest
import pytest_asyncio
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

from request_optimizer.entities import ApiCallLogEntity, CacheEntryEntity
from request_optimizer.errors import StorageError
from request_optimizer.repositories import RedisCacheRepository, RedisCallLogRepository
from request_optimizer.services import CacheService

NOW = 1_700_000_000.0


@pytest_asyncio.fixture(params=["fake", "live"])
async def redis_client(request):
    if request.param == "fake":
        yield fakeredis.FakeAsyncRedis(decode_responses=True)
        return

    url = os.getenv("REDIS_TEST_URL")
    if not url:
        pytest.skip("REDIS_TEST_URL is not set")
    client = redis.from_url(url, decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def prefix(redis_client):
    """Key prefix unique to the test; its keys are removed afterwards."""
    prefix = f"test_{uuid.uuid4().hex}"
    yield prefix
    async for key in redis_client.scan_iter(match=f"{prefix}*"):
        await redis_client.delete(key)


@pytest.fixture
def store(redis_client, prefix, settings):
    return RedisCacheRepository(redis_client=redis_client, key_prefix=prefix, settings=settings)


@pytest.fixture
def log_store(redis_client, prefix, settings):
    return RedisCallLogRepository(redis_client=redis_client, log_key=f"{prefix}_calls", settings=settings)


def entry(key, **overrides):
    provider_type, endpoint, request_hash = key.split(":")
    fields = {
        "key": key,
        "provider_type": provider_type,
        "endpoint": endpoint,
        "request_hash": request_hash,
        "response_data": {"answer": request_hash},
        "created_at": NOW,
    }
    fields.update(overrides)
    return CacheEntryEntity(**fields)


def call(started_at, **overrides):
    fields = {
        "provider_type": "tavily",
        "endpoint": "search",
        "success": True,
        "latency_ms": 100.0,
        "started_at": started_at,
        "completed_at": started_at + 1,
    }
    fields.update(overrides)
    return ApiCallLogEntity(**fields)


class UnreachableRedis:
    """Client whose every command fails to connect."""

    async def _refuse(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    hgetall = exists = ping = zadd = zrangebyscore = zremrangebyscore = _refuse


@pytest.mark.asyncio
async def test_fetch_round_trips_an_entry(store):
    stored = entry("openai:chat:a", response_metadata={"model": "gpt-4o"}, ttl_seconds=60, expires_at=NOW + 60)
    await store.upsert(stored)

    assert await store.fetch("openai:chat:a") == stored
    assert await store.fetch("openai:chat:missing") is None


@pytest.mark.asyncio
async def test_upsert_preserves_the_hit_counter(store):
    await store.upsert(entry("openai:chat:a"))
    await store.record_hit("openai:chat:a", NOW + 1)
    await store.record_hit("openai:chat:a", NOW + 2)

    await store.upsert(entry("openai:chat:a", response_data="refreshed", created_at=NOW + 3))
    refreshed = await store.fetch("openai:chat:a")

    assert refreshed.response_data == "refreshed"
    assert refreshed.hit_count == 2
    assert refreshed.last_hit_at == NOW + 2
    assert refreshed.created_at == NOW + 3


@pytest.mark.asyncio
async def test_record_hit_ignores_missing_entries(store, redis_client, prefix):
    await store.record_hit("openai:chat:gone", NOW)

    assert await redis_client.exists(f"{prefix}:openai:chat:gone") == 0


@pytest.mark.asyncio
async def test_permanent_upsert_removes_the_native_ttl(store, redis_client, prefix):
    redis_key = f"{prefix}:openai:chat:a"

    await store.upsert(entry("openai:chat:a", ttl_seconds=60, expires_at=NOW + 60))
    assert 0 < await redis_client.ttl(redis_key) <= 60

    await store.upsert(entry("openai:chat:a"))
    assert await redis_client.ttl(redis_key) == -1
    assert (await store.fetch("openai:chat:a")).expires_at is None


@pytest.mark.asyncio
async def test_delete_matching_filters_and_ignores_access_records(store):
    for key in ("openai:chat:a", "openai:embed:a", "tavily:search:a"):
        await store.upsert(entry(key))
        await store.record_access(key, NOW)

    assert await store.delete_matching(provider_type="openai", endpoint="chat") == 1
    assert await store.delete_matching(request_hash="nope") == 0
    assert await store.delete_matching(provider_type="tavily") == 1
    assert await store.delete_matching() == 1
    assert (await store.fetch_access("openai:chat:a")).access_count == 1


@pytest.mark.asyncio
async def test_delete_expired_uses_the_stored_expiry(store):
    await store.upsert(entry("openai:chat:past", ttl_seconds=3600, expires_at=NOW - 1))
    await store.upsert(entry("openai:chat:edge", ttl_seconds=3600, expires_at=NOW))
    await store.upsert(entry("openai:chat:future", ttl_seconds=3600, expires_at=NOW + 100))
    await store.upsert(entry("openai:chat:forever"))

    assert await store.delete_expired(NOW) == 2
    assert await store.fetch("openai:chat:edge") is None
    assert await store.fetch("openai:chat:future") is not None
    assert await store.fetch("openai:chat:forever") is not None


@pytest.mark.asyncio
async def test_hit_counts_per_provider(store):
    await store.upsert(entry("openai:chat:a"))
    await store.upsert(entry("tavily:search:a"))
    await store.record_hit("openai:chat:a", NOW)
    await store.record_hit("openai:chat:a", NOW)
    await store.record_access("openai:chat:a", NOW)

    assert sorted(await store.hit_counts()) == [0, 2]
    assert await store.hit_counts("openai") == [2]
    assert await store.hit_counts("firecrawl") == []


@pytest.mark.asyncio
async def test_access_record_outlives_the_entry(store, redis_client, prefix):
    await store.upsert(entry("openai:chat:a"))
    await store.record_access("openai:chat:a", NOW)
    await store.record_access("openai:chat:a", NOW + 20)
    await store.delete("openai:chat:a")

    record = await store.fetch_access("openai:chat:a")

    assert record.access_count == 2
    assert record.first_access == NOW
    assert record.last_access == NOW + 20
    assert await redis_client.ttl(f"{prefix}_access:openai:chat:a") > 0
    assert await store.fetch_access("openai:chat:never") is None


@pytest.mark.asyncio
async def test_corrupt_records_raise_storage_error(store, redis_client, prefix):
    await redis_client.hset(
        f"{prefix}:openai:chat:bad",
        mapping={"key": "openai:chat:bad", "provider_type": "openai", "endpoint": "chat", "response_data": "{oops"},
    )
    await redis_client.hset(f"{prefix}:openai:chat:partial", mapping={"provider_type": "openai"})

    with pytest.raises(StorageError):
        await store.fetch("openai:chat:bad")
    with pytest.raises(StorageError):
        await store.fetch("openai:chat:partial")


@pytest.mark.asyncio
async def test_health_check(store):
    assert await store.health_check() is True


@pytest.mark.asyncio
async def test_call_log_window_and_exclusive_cutoff(log_store):
    await log_store.append(call(NOW - 100))
    await log_store.append(call(NOW - 50))
    await log_store.append(call(NOW - 50))
    await log_store.append(call(NOW, feature_name="news", metadata={"query": "oil"}))

    window = await log_store.fetch_window(NOW - 50, NOW)
    assert [e.started_at for e in window] == [NOW - 50, NOW - 50, NOW]
    assert window[-1] == call(NOW, feature_name="news", metadata={"query": "oil"})

    assert await log_store.delete_before(NOW - 50) == 1
    assert len(await log_store.fetch_window(0, NOW + 1)) == 3


@pytest.mark.asyncio
async def test_unreachable_redis_raises_storage_error(settings):
    store = RedisCacheRepository(redis_client=UnreachableRedis(), settings=settings)
    log_store = RedisCallLogRepository(redis_client=UnreachableRedis(), settings=settings)

    with pytest.raises(StorageError, match="Redis fetch failed"):
        await store.fetch("openai:chat:a")
    with pytest.raises(StorageError):
        await store.fetch_access("openai:chat:a")
    with pytest.raises(StorageError):
        await store.record_hit("openai:chat:a", NOW)
    with pytest.raises(StorageError):
        await log_store.fetch_window(0, NOW)
    with pytest.raises(StorageError):
        await log_store.delete_before(NOW)
    assert await store.health_check() is False


@pytest.mark.asyncio
async def test_cache_service_fails_open_on_unreachable_redis(settings, clock):
    cache = CacheService(
        RedisCacheRepository(redis_client=UnreachableRedis(), settings=settings), settings=settings, clock=clock
    )

    assert await cache.get("openai:chat:a") is None
