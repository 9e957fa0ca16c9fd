"""
Tests for adaptive TTL prediction.
"""

import pytest

from request_optimizer.entities import PrewarmItem
from request_optimizer.services import AdaptiveTTLPredictor
from request_optimizer.services.ttl_predictor import DEFAULT_TTLS, FALLBACK_TTL

DAY = 24 * 3600


@pytest.fixture
def ttl_predictor(repository, clock):
    return AdaptiveTTLPredictor(repository, clock=clock)


async def seed(repository, key, first_access, access_count=1, last_access=None):
    """Record ``access_count`` accesses, the first at ``first_access``."""
    await repository.record_access(key, first_access)
    for _ in range(access_count - 1):
        await repository.record_access(key, first_access if last_access is None else last_access)


@pytest.mark.asyncio
async def test_no_history_is_neutral(ttl_predictor):
    prediction = await ttl_predictor.predict_reuse_probability("openai:chat:unknown")

    assert prediction.probability == pytest.approx(0.5)
    assert prediction.confidence == pytest.approx(0.3)
    assert "No access history" in prediction.reasoning


@pytest.mark.asyncio
async def test_no_history_still_blends_relevance(ttl_predictor):
    prediction = await ttl_predictor.predict_reuse_probability("k", {"relevance_score": 1.0})

    assert prediction.probability == pytest.approx(0.5 * 0.7 + 1.0 * 0.3)


@pytest.mark.asyncio
async def test_malformed_relevance_is_ignored(ttl_predictor):
    prediction = await ttl_predictor.predict_reuse_probability("k", {"relevance_score": "very"})

    assert prediction.probability == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_frequent_recent_access_raises_probability(ttl_predictor, repository, clock):
    """Ten accesses within an hour, last one a minute ago."""
    await seed(repository, "openai:chat:hot", clock.now - 3600, access_count=10, last_access=clock.now - 60)

    pattern = await ttl_predictor.access_pattern("openai:chat:hot")
    prediction = await ttl_predictor.predict_reuse_probability("openai:chat:hot")

    assert pattern.access_count == 10
    assert pattern.access_frequency == pytest.approx(10.0)
    assert prediction.probability == pytest.approx(1.0)
    assert prediction.confidence == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_access_within_a_week(ttl_predictor, repository, clock):
    await seed(repository, "openai:chat:warm", clock.now - 3 * DAY)

    prediction = await ttl_predictor.predict_reuse_probability("openai:chat:warm")

    assert prediction.probability == pytest.approx(0.6)
    assert prediction.confidence == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_stale_history_stays_neutral(ttl_predictor, repository, clock):
    await seed(repository, "openai:chat:stale", clock.now - 10 * DAY)

    prediction = await ttl_predictor.predict_reuse_probability("openai:chat:stale")

    assert prediction.probability == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_lookup_and_advisory_ranges(ttl_predictor):
    default = DEFAULT_TTLS["openai"]

    lookup = await ttl_predictor.compute_ttl("openai", "openai:chat:new")
    advisory = await ttl_predictor.compute_ttl("openai", "openai:chat:new", advisory=True)

    assert lookup == int(default * (0.5 + 0.5 * 0.5))
    assert advisory == int(default * (0.5 + 0.5 * 1.5))


@pytest.mark.asyncio
async def test_advisory_ttl_is_capped_at_twice_the_default(ttl_predictor, repository, clock):
    await seed(repository, "openai:chat:hot", clock.now - 3600, access_count=10, last_access=clock.now - 60)

    ttl = await ttl_predictor.compute_ttl("openai", "openai:chat:hot", advisory=True)

    assert ttl == 2 * DEFAULT_TTLS["openai"]


@pytest.mark.asyncio
@pytest.mark.parametrize("provider_type", ["openai", "tavily", "firecrawl", "newsapi"])
@pytest.mark.parametrize("relevance", [None, 0.0, 0.5, 1.0, 7.0, -3.0])
@pytest.mark.parametrize("advisory", [False, True])
async def test_ttl_stays_within_bounds(ttl_predictor, repository, clock, provider_type, relevance, advisory):
    await seed(repository, "openai:chat:hot", clock.now - 3600, access_count=51, last_access=clock.now)
    default = DEFAULT_TTLS.get(provider_type, FALLBACK_TTL)
    context = None if relevance is None else {"relevance_score": relevance}

    for key in ("openai:chat:hot", "openai:chat:cold"):
        ttl = await ttl_predictor.compute_ttl(provider_type, key, context, advisory=advisory)
        assert 0 < ttl <= 2 * default


@pytest.mark.asyncio
async def test_recommended_ttl_uses_the_advisory_range(ttl_predictor):
    prediction = await ttl_predictor.predict_reuse_probability("k", provider_type="tavily")

    assert prediction.recommended_ttl == int(DEFAULT_TTLS["tavily"] * 1.25)


@pytest.mark.asyncio
async def test_recommended_ttl_takes_the_provider_from_the_key(ttl_predictor):
    openai = await ttl_predictor.predict_reuse_probability("openai:chat:x")
    unknown = await ttl_predictor.predict_reuse_probability("newsapi:top:x")
    explicit = await ttl_predictor.predict_reuse_probability("openai:chat:x", provider_type="firecrawl")

    assert openai.recommended_ttl == int(DEFAULT_TTLS["openai"] * 1.25)
    assert unknown.recommended_ttl == int(FALLBACK_TTL * 1.25)
    assert explicit.recommended_ttl == int(DEFAULT_TTLS["firecrawl"] * 1.25)


@pytest.mark.asyncio
async def test_prewarm_writes_only_likely_reuse(ttl_predictor, repository, clock):
    await seed(repository, "openai:chat:hot", clock.now - 3600, access_count=10, last_access=clock.now - 60)

    warmed = await ttl_predictor.prewarm(
        "openai",
        [
            PrewarmItem(key="openai:chat:hot", data={"fresh": True}),
            PrewarmItem(key="openai:chat:cold", data={"fresh": True}, context={"relevance_score": 1.0}),
        ],
    )

    assert warmed == 1
    hot = await repository.fetch("openai:chat:hot")
    assert hot.endpoint == "prewarm"
    assert hot.response_data == {"fresh": True}
    assert hot.ttl_seconds == DEFAULT_TTLS["openai"]
    assert hot.expires_at == clock.now + DEFAULT_TTLS["openai"]
    assert await repository.fetch("openai:chat:cold") is None


@pytest.mark.asyncio
async def test_storage_failure_means_no_history(failing_store, clock):
    ttl_predictor = AdaptiveTTLPredictor(failing_store, clock=clock)

    assert await ttl_predictor.access_pattern("k") is None
    assert await ttl_predictor.compute_ttl("tavily", "k") == int(DEFAULT_TTLS["tavily"] * 0.75)
    assert await ttl_predictor.prewarm("tavily", [PrewarmItem(key="k", data=1)]) == 0
