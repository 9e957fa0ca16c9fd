"""Adaptive TTL prediction.

Estimates how likely a cached result is to be read again from its access
history and stretches or shrinks the provider's default TTL accordingly.
"""

import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from request_optimizer.entities import AccessPattern, CacheEntryEntity, PrewarmItem, ReusePrediction
from request_optimizer.errors import StorageError
from request_optimizer.protocols import CacheStore

logger = logging.getLogger(__name__)

DEFAULT_TTLS: dict[str, int] = {
    "openai": 24 * 3600,
    "tavily": 7 * 24 * 3600,
    "firecrawl": 30 * 24 * 3600,
}
FALLBACK_TTL = 3600

LOOKUP_SCALE = 0.5
ADVISORY_SCALE = 1.5
MAX_TTL_MULTIPLIER = 2
PREWARM_THRESHOLD = 0.7
PREWARM_ENDPOINT = "prewarm"


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class AdaptiveTTLPredictor:
    """Reuse-probability based TTL predictor.

    Satisfies the TTLPredictor protocol, so it can be injected into
    ``CacheService``. Access history is read from the same ``CacheStore``
    the cache writes to: every write and served hit is counted in the
    key's access record.

    Example:
        ```python
        predictor = AdaptiveTTLPredictor(repository=RedisCacheRepository.create())
        ttl = await predictor.compute_ttl("tavily", key, {"relevance_score": 0.9})
        ```
    """

    def __init__(
        self,
        repository: CacheStore,
        default_ttls: dict[str, int] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the predictor.

        Args:
            repository: Store holding cache entries and their hit counters.
            default_ttls: Per-provider base TTLs. Defaults to ``DEFAULT_TTLS``.
            clock: Returns the current Unix time.
        """
        self._repository = repository
        self._default_ttls = default_ttls or DEFAULT_TTLS
        self._clock = clock

    def default_ttl(self, provider_type: str | None) -> int:
        return self._default_ttls.get(provider_type or "", FALLBACK_TTL)

    async def access_pattern(self, key: str) -> AccessPattern | None:
        """Derive the access history of a key from its access record.

        Every write and every served hit counts as one access. The record
        outlives the entry, so a re-produced key keeps its history.

        Returns:
            AccessPattern, or None when the key has no history (or storage is down)
        """
        try:
            record = await self._repository.fetch_access(key)
        except StorageError as e:
            logger.warning("Access history unavailable for %s: %s", key, e)
            return None
        if record is None:
            return None

        hours = max((self._clock() - record.first_access) / 3600, 0.0)
        return AccessPattern(
            cache_key=key,
            access_count=record.access_count,
            first_access=record.first_access,
            last_access=record.last_access,
            access_frequency=record.access_count / max(hours, 1.0),
            hours_since_first_access=hours,
        )

    async def predict_reuse_probability(
        self,
        key: str,
        context: dict[str, Any] | None = None,
        provider_type: str | None = None,
    ) -> ReusePrediction:
        """Estimate the probability that ``key`` is read again.

        Args:
            key: Cache key
            context: Optional hints; ``relevance_score`` (0-1) is blended in 70/30
            provider_type: Provider whose default TTL the advisory TTL scales;
                defaults to the key's first segment when that names a known provider

        Returns:
            ReusePrediction with probability in [0, 1]
        """
        relevance = _relevance_score(context)
        if provider_type is None:
            provider_type = self._provider_from_key(key)
        pattern = await self.access_pattern(key)

        if pattern is None:
            probability = 0.5
            if relevance is not None:
                probability = probability * 0.7 + relevance * 0.3
            probability = _clamp(probability)
            return ReusePrediction(
                cache_key=key,
                probability=probability,
                confidence=0.3,
                recommended_ttl=self._scaled_ttl(provider_type, probability, ADVISORY_SCALE),
                reasoning="No access history available",
            )

        reasons = []
        probability = 0.5

        if pattern.access_frequency > 1:
            probability += min(0.3, pattern.access_frequency * 0.1)
            reasons.append(f"high access frequency ({pattern.access_frequency:.1f}/hour)")

        hours_since_last = (self._clock() - pattern.last_access) / 3600
        if hours_since_last < 24:
            probability += 0.2
            reasons.append("accessed within 24 hours")
        elif hours_since_last < 168:
            probability += 0.1
            reasons.append("accessed within 7 days")

        if relevance is not None:
            probability = probability * 0.7 + relevance * 0.3
            reasons.append(f"relevance score {relevance:.2f}")

        probability = _clamp(probability)
        return ReusePrediction(
            cache_key=key,
            probability=probability,
            confidence=0.8 if pattern.access_count > 5 else 0.5,
            recommended_ttl=self._scaled_ttl(provider_type, probability, ADVISORY_SCALE),
            reasoning=", ".join(reasons) or "stale access history",
        )

    async def compute_ttl(
        self,
        provider_type: str,
        key: str,
        context: dict[str, Any] | None = None,
        advisory: bool = False,
    ) -> int:
        """Recommend a TTL for a cache key.

        Args:
            provider_type: Provider the cached response came from
            key: The cache key
            context: Optional hints (e.g. ``relevance_score``)
            advisory: Use the wider advisory range (0.5x to 2x) instead of 0.5x to 1x

        Returns:
            TTL in seconds, never above twice the provider default
        """
        prediction = await self.predict_reuse_probability(key, context, provider_type)
        scale = ADVISORY_SCALE if advisory else LOOKUP_SCALE
        return self._scaled_ttl(provider_type, prediction.probability, scale)

    async def prewarm(self, provider_type: str, items: Iterable[PrewarmItem]) -> int:
        """Cache results that are likely to be requested again.

        Items whose reuse probability exceeds 0.7 are written with the lookup
        TTL under the ``prewarm`` endpoint.

        Returns:
            Number of items written
        """
        warmed = 0
        for item in items:
            prediction = await self.predict_reuse_probability(item.key, item.context, provider_type)
            if prediction.probability <= PREWARM_THRESHOLD:
                continue

            ttl = self._scaled_ttl(provider_type, prediction.probability, LOOKUP_SCALE)
            now = self._clock()
            entry = CacheEntryEntity(
                key=item.key,
                provider_type=provider_type,
                endpoint=PREWARM_ENDPOINT,
                request_hash=item.key.rsplit(":", 1)[-1],
                response_data=item.data,
                ttl_seconds=ttl,
                expires_at=now + ttl,
                created_at=now,
            )
            try:
                await self._repository.upsert(entry)
            except StorageError as e:
                logger.warning("Prewarm write failed for %s: %s", item.key, e)
                continue
            warmed += 1

        if warmed:
            logger.info("Prewarmed %d %s cache entries", warmed, provider_type)
        return warmed

    def _provider_from_key(self, key: str) -> str | None:
        prefix, sep, _ = key.partition(":")
        return prefix if sep and prefix in self._default_ttls else None

    def _scaled_ttl(self, provider_type: str | None, probability: float, scale: float) -> int:
        default = self.default_ttl(provider_type)
        if default <= 0:
            return 0
        ttl = min(default * (0.5 + probability * scale), default * MAX_TTL_MULTIPLIER)
        return max(1, int(ttl))


def _relevance_score(context: dict[str, Any] | None) -> float | None:
    if not context:
        return None
    value = context.get("relevance_score")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return _clamp(float(value))
