"""
Tests for the read-through cache service.
"""

import asyncio

import pytest

from request_optimizer.entities import CacheOptions
from request_optimizer.errors import OptimizerError, ProviderError
from request_optimizer.services import AdaptiveTTLPredictor, CacheService, generate_key
from request_optimizer.services.ttl_predictor import DEFAULT_TTLS


def make_producer(data, metadata=None):
    """Producer that counts its invocations."""
    calls = []

    async def producer():
        calls.append(1)
        return data, metadata

    return producer, calls


class StaticTTLPredictor:
    def __init__(self, ttl):
        self.ttl = ttl
        self.calls = []

    async def compute_ttl(self, provider_type, key, context=None, advisory=False):
        self.calls.append((provider_type, key, context))
        return self.ttl


class BrokenTTLPredictor:
    async def compute_ttl(self, provider_type, key, context=None, advisory=False):
        raise OptimizerError("predictor unavailable")


def test_generate_key_ignores_key_order():
    """Equal payloads with different key order share a key."""
    a = generate_key("openai", "chat", {"model": "gpt-4o", "params": {"x": 1, "y": [1, 2]}})
    b = generate_key("openai", "chat", {"params": {"y": [1, 2], "x": 1}, "model": "gpt-4o"})

    assert a == b
    assert a.startswith("openai:chat:")
    assert len(a.split(":")[2]) == 16


def test_generate_key_differs_for_different_payloads():
    assert generate_key("tavily", "search", {"query": "a"}) != generate_key("tavily", "search", {"query": "b"})
    assert generate_key("tavily", "search", {"query": "a"}) != generate_key("tavily", "extract", {"query": "a"})


@pytest.mark.asyncio
async def test_second_call_is_served_from_cache(cache):
    """Identical calls invoke the producer once."""
    options = CacheOptions(provider_type="tavily", endpoint="search")
    producer, calls = make_producer({"articles": [1, 2]}, {"count": 2})

    first = await cache.with_cache(options, {"query": "oil"}, producer)
    second = await cache.with_cache(options, {"query": "oil"}, producer)

    assert first.cached is False
    assert second.cached is True
    assert second.data == {"articles": [1, 2]}
    assert second.metadata == {"count": 2}
    assert second.key == first.key
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_force_refresh_skips_the_read(cache):
    options = CacheOptions(provider_type="tavily", endpoint="search")
    producer, calls = make_producer("fresh")

    await cache.with_cache(options, {"query": "oil"}, producer)
    result = await cache.with_cache(
        CacheOptions(provider_type="tavily", endpoint="search", force_refresh=True),
        {"query": "oil"},
        producer,
    )

    assert result.cached is False
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_expired_entry_is_absent_and_removed(cache, repository, clock):
    key = generate_key("tavily", "search", {"query": "oil"})
    await cache.set(key, "value", ttl_seconds=10)

    clock.advance(11)

    assert await cache.get(key) is None
    assert await repository.fetch(key) is None


@pytest.mark.asyncio
async def test_version_mismatch_is_a_miss_and_deletes(cache, repository):
    key = generate_key("openai", "chat", {"prompt": "hi"})
    await cache.set(key, "old schema", version=1)

    assert await cache.get(key, expected_version=2) is None
    assert len(repository) == 0


@pytest.mark.asyncio
async def test_hit_increments_counter(cache, repository, clock):
    key = generate_key("openai", "chat", {"prompt": "hi"})
    await cache.set(key, "value")

    entry = await cache.get(key)

    assert entry.hit_count == 1
    assert entry.last_hit_at == clock.now
    stored = await repository.fetch(key)
    assert stored.hit_count == 1


@pytest.mark.asyncio
async def test_set_without_ttl_is_permanent(cache, repository, clock):
    key = generate_key("openai", "chat", {"prompt": "hi"})
    await cache.set(key, "value")

    stored = await repository.fetch(key)
    assert stored.expires_at is None
    assert stored.ttl_seconds is None

    clock.advance(10 * 365 * 86400)
    assert (await cache.get(key)).response_data == "value"


@pytest.mark.asyncio
async def test_set_derives_provider_and_endpoint_from_key(cache, repository, clock):
    await cache.set("tavily:search:abcdef0123456789", {"ok": True}, ttl_seconds=60)

    stored = await repository.fetch("tavily:search:abcdef0123456789")
    assert stored.provider_type == "tavily"
    assert stored.endpoint == "search"
    assert stored.request_hash == "abcdef0123456789"
    assert stored.expires_at == clock.now + 60


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider_type, expected_ttl",
    [
        ("openai", None),
        ("tavily", 7 * 24 * 3600),
        ("firecrawl", None),
        ("newsapi", 3600),
    ],
)
async def test_static_ttl_without_predictor(cache, repository, provider_type, expected_ttl):
    producer, _ = make_producer("data")

    result = await cache.with_cache(CacheOptions(provider_type=provider_type, endpoint="x"), {"q": 1}, producer)

    stored = await repository.fetch(result.key)
    assert stored.ttl_seconds == expected_ttl


@pytest.mark.asyncio
async def test_explicit_ttl_wins_over_predictor(repository, settings, clock):
    predictor = StaticTTLPredictor(123)
    cache = CacheService(repository, ttl_predictor=predictor, settings=settings, clock=clock)
    producer, _ = make_producer("data")

    result = await cache.with_cache(CacheOptions(provider_type="tavily", endpoint="search", ttl_seconds=50), {}, producer)

    assert (await repository.fetch(result.key)).ttl_seconds == 50
    assert predictor.calls == []


@pytest.mark.asyncio
async def test_predictor_ttl_and_context(repository, settings, clock):
    predictor = StaticTTLPredictor(123)
    cache = CacheService(repository, ttl_predictor=predictor, settings=settings, clock=clock)
    producer, _ = make_producer("data")

    result = await cache.with_cache(
        CacheOptions(provider_type="tavily", endpoint="search", context={"relevance_score": 0.9}),
        {"query": "oil"},
        producer,
    )

    assert (await repository.fetch(result.key)).ttl_seconds == 123
    assert predictor.calls == [("tavily", result.key, {"relevance_score": 0.9})]


@pytest.mark.asyncio
async def test_predictor_failure_falls_back_to_static_default(repository, settings, clock):
    cache = CacheService(repository, ttl_predictor=BrokenTTLPredictor(), settings=settings, clock=clock)
    producer, _ = make_producer("data")

    result = await cache.with_cache(CacheOptions(provider_type="tavily", endpoint="search"), {}, producer)

    assert result.cached is False
    assert (await repository.fetch(result.key)).ttl_seconds == 7 * 24 * 3600


@pytest.mark.asyncio
async def test_hot_key_gets_a_longer_ttl_after_expiry(repository, settings, clock):
    cache = CacheService(
        repository,
        ttl_predictor=AdaptiveTTLPredictor(repository, clock=clock),
        settings=settings,
        clock=clock,
    )
    options = CacheOptions(provider_type="openai", endpoint="chat")
    producer, calls = make_producer("answer")

    first = await cache.with_cache(options, {"prompt": "hi"}, producer)
    first_ttl = (await repository.fetch(first.key)).ttl_seconds
    for _ in range(20):
        assert (await cache.with_cache(options, {"prompt": "hi"}, producer)).cached is True

    clock.advance(first_ttl + 1)
    again = await cache.with_cache(options, {"prompt": "hi"}, producer)

    assert again.cached is False
    assert len(calls) == 2
    assert first_ttl == int(DEFAULT_TTLS["openai"] * 0.75)
    # 21 accesses over the expired lifetime, last one within a day
    frequency = 21 / ((first_ttl + 1) / 3600)
    probability = 0.5 + min(0.3, frequency * 0.1) + 0.2
    expected = int(DEFAULT_TTLS["openai"] * (0.5 + probability * 0.5))
    assert (await repository.fetch(again.key)).ttl_seconds == expected
    assert expected > first_ttl


@pytest.mark.asyncio
async def test_access_history_survives_invalidation(cache, repository, clock):
    key = generate_key("tavily", "search", {"q": "oil"})
    await cache.set(key, "value")
    await cache.get(key)
    clock.advance(30)
    await cache.invalidate(provider_type="tavily")

    record = await repository.fetch_access(key)

    assert await repository.fetch(key) is None
    assert record.access_count == 2
    assert record.last_access == clock.now - 30


@pytest.mark.asyncio
async def test_storage_failures_fail_open(failing_store, settings, clock):
    """A dead backend never breaks the calling feature."""
    cache = CacheService(failing_store, settings=settings, clock=clock)
    producer, calls = make_producer({"answer": 42})
    options = CacheOptions(provider_type="openai", endpoint="chat")

    first = await cache.with_cache(options, {"prompt": "hi"}, producer)
    second = await cache.with_cache(options, {"prompt": "hi"}, producer)

    assert first.data == {"answer": 42}
    assert second.cached is False
    assert len(calls) == 2
    assert await cache.get("openai:chat:0000") is None
    await cache.set("openai:chat:0000", "value")
    assert await cache.invalidate(provider_type="openai") == 0
    assert await cache.cleanup_expired() == 0
    stats = await cache.get_stats()
    assert stats.total_entries == 0
    assert stats.hit_rate == 0.0
    assert await cache.is_healthy() is False


@pytest.mark.asyncio
async def test_producer_errors_propagate_and_nothing_is_stored(cache, repository):
    async def producer():
        raise ProviderError("rate limited", code="429", rate_limited=True)

    with pytest.raises(ProviderError):
        await cache.with_cache(CacheOptions(provider_type="openai", endpoint="chat"), {}, producer)

    assert len(repository) == 0


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_producer_call(cache):
    release = asyncio.Event()
    calls = []

    async def producer():
        calls.append(1)
        await release.wait()
        return {"v": 1}, None

    options = CacheOptions(provider_type="tavily", endpoint="search")
    first = asyncio.create_task(cache.with_cache(options, {"query": "oil"}, producer))
    second = asyncio.create_task(cache.with_cache(options, {"query": "oil"}, producer))
    for _ in range(5):
        await asyncio.sleep(0)
    release.set()

    results = await asyncio.gather(first, second)

    assert len(calls) == 1
    assert sorted(result.cached for result in results) == [False, True]
    assert all(result.data == {"v": 1} for result in results)


@pytest.mark.asyncio
async def test_concurrent_joiners_receive_the_producer_error(cache):
    release = asyncio.Event()

    async def producer():
        await release.wait()
        raise ProviderError("boom", code="500")

    options = CacheOptions(provider_type="tavily", endpoint="search")
    tasks = [asyncio.create_task(cache.with_cache(options, {"query": "oil"}, producer)) for _ in range(3)]
    for _ in range(5):
        await asyncio.sleep(0)
    release.set()

    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(result, ProviderError) for result in results)


@pytest.mark.asyncio
async def test_without_single_flight_each_miss_calls_the_producer(repository, settings, clock):
    cache = CacheService(repository, settings=settings, single_flight=False, clock=clock)
    release = asyncio.Event()
    calls = []

    async def producer():
        calls.append(1)
        await release.wait()
        return "data", None

    options = CacheOptions(provider_type="tavily", endpoint="search")
    tasks = [asyncio.create_task(cache.with_cache(options, {"query": "oil"}, producer)) for _ in range(2)]
    for _ in range(5):
        await asyncio.sleep(0)
    release.set()
    await asyncio.gather(*tasks)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_invalidate_by_filter(cache):
    await cache.set(generate_key("openai", "chat", {"p": 1}), "a")
    await cache.set(generate_key("openai", "embed", {"p": 1}), "b")
    await cache.set(generate_key("tavily", "search", {"q": 1}), "c")

    assert await cache.invalidate(provider_type="openai", endpoint="chat") == 1
    assert await cache.invalidate(provider_type="tavily") == 1
    assert await cache.invalidate() == 1


@pytest.mark.asyncio
async def test_cleanup_expired(cache, clock):
    await cache.set(generate_key("tavily", "search", {"q": 1}), "short", ttl_seconds=10)
    await cache.set(generate_key("tavily", "search", {"q": 2}), "long", ttl_seconds=1000)
    await cache.set(generate_key("openai", "chat", {"p": 1}), "forever")

    clock.advance(100)

    assert await cache.cleanup_expired() == 1


@pytest.mark.asyncio
async def test_stats(cache):
    hot = generate_key("tavily", "search", {"q": "hot"})
    await cache.set(hot, "hot")
    await cache.set(generate_key("tavily", "search", {"q": "cold"}), "cold")
    await cache.set(generate_key("openai", "chat", {"p": 1}), "other")
    for _ in range(3):
        await cache.get(hot)

    stats = await cache.get_stats(provider_type="tavily")

    assert stats.total_entries == 2
    assert stats.total_hits == 3
    assert stats.hit_rate == pytest.approx(3 / 5)
    assert stats.avg_hits_per_entry == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_stats_for_empty_cache(cache):
    stats = await cache.get_stats()

    assert stats.total_entries == 0
    assert stats.hit_rate == 0.0
    assert stats.avg_hits_per_entry == 0.0
