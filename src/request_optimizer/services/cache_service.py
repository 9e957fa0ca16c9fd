"""Cache service for core business logic.

This service owns the read-through cache that sits in front of every metered
provider call. It coordinates the repository (entry persistence) and an
optional TTL predictor (adaptive expiry) and is fail-open: a broken cache
backend degrades to "always call the provider", it never fails a request.
"""

import asyncio
import dataclasses
import hashlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from request_optimizer.config import Settings, get_settings
from request_optimizer.entities import CacheEntryEntity, CacheOptions, CacheResult, CacheStats
from request_optimizer.errors import OptimizerError, StorageError
from request_optimizer.protocols import CacheStore, TTLPredictor

logger = logging.getLogger(__name__)

# None = permanent
STATIC_TTLS: dict[str, int | None] = {
    "openai": None,
    "tavily": 7 * 24 * 3600,
    "firecrawl": None,
}
FALLBACK_TTL = 3600

Producer = Callable[[], Awaitable[tuple[Any, dict[str, Any] | None]]]


def canonical_json(payload: Any) -> str:
    """Serialize a payload with sorted keys so equal payloads hash equally."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False)


def generate_request_hash(payload: Any) -> str:
    """Full SHA-256 fingerprint of a request payload."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def generate_key(provider_type: str, endpoint: str, payload: Any) -> str:
    """Build a deterministic cache key.

    Args:
        provider_type: Provider being called (openai, tavily, ...)
        endpoint: Endpoint or feature name
        payload: Request payload (any JSON-serializable value)

    Returns:
        Key of the form ``provider_type:endpoint:<16 hex chars>``
    """
    return f"{provider_type}:{endpoint}:{generate_request_hash(payload)[:16]}"


class CacheService:
    """Core cache orchestration service.

    This service depends on PROTOCOLS, not concrete implementations:
    - CacheStore: can be Redis, in-memory, etc.
    - TTLPredictor: the adaptive predictor, or nothing at all

    Example:
        ```python
        from request_optimizer.entities import CacheOptions
        from request_optimizer.repositories import RedisCacheRepository
        from request_optimizer.services import CacheService

        cache = CacheService.create(repository=RedisCacheRepository.create())

        async def call_search():
            result = await tavily.search("ceasefire talks")
            return result.model_dump(), {"articles": len(result.articles)}

        result = await cache.with_cache(
            CacheOptions(provider_type="tavily", endpoint="search"),
            {"query": "ceasefire talks"},
            call_search,
        )
        ```
    """

    def __init__(
        self,
        repository: CacheStore,
        ttl_predictor: TTLPredictor | None = None,
        settings: Settings | None = None,
        single_flight: bool | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache service.

        Args:
            repository: Cache storage backend (required).
            ttl_predictor: Adaptive TTL source. Static defaults are used without it.
            settings: Application settings. Defaults to ``get_settings()``.
            single_flight: Coalesce concurrent misses on one key. Defaults to settings.
            clock: Returns the current Unix time.
        """
        settings = settings or get_settings()
        self._repository = repository
        self._ttl_predictor = ttl_predictor
        self._single_flight = settings.cache_single_flight if single_flight is None else single_flight
        self._clock = clock
        self._in_flight: dict[str, asyncio.Future] = {}

    @classmethod
    def create(
        cls,
        repository: CacheStore,
        ttl_predictor: TTLPredictor | None = None,
        settings: Settings | None = None,
    ) -> "CacheService":
        """Factory method to create CacheService with settings defaults."""
        return cls(repository=repository, ttl_predictor=ttl_predictor, settings=settings)

    @staticmethod
    def generate_key(provider_type: str, endpoint: str, payload: Any) -> str:
        return generate_key(provider_type, endpoint, payload)

    async def get(self, key: str, expected_version: int = 1) -> CacheEntryEntity | None:
        """Read a live entry.

        Expired entries and entries written with another schema version are
        deleted and reported as a miss. A hit bumps the entry's counter and
        its access record.

        Args:
            key: Cache key
            expected_version: Schema version the caller understands

        Returns:
            The entry as it stands after the hit, or None on a miss
        """
        try:
            entry = await self._repository.fetch(key)
        except StorageError as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, e)
            return None

        if entry is None:
            return None

        now = self._clock()
        if entry.is_expired(now) or entry.cache_version != expected_version:
            await self._delete_quietly(key)
            return None

        try:
            await self._repository.record_hit(key, now)
            await self._repository.record_access(key, now)
        except StorageError as e:
            logger.warning("Failed to record cache hit for %s: %s", key, e)

        return dataclasses.replace(entry, hit_count=entry.hit_count + 1, last_hit_at=now)

    async def set(
        self,
        key: str,
        value: Any,
        metadata: dict[str, Any] | None = None,
        ttl_seconds: int | None = None,
        version: int = 1,
        *,
        provider_type: str | None = None,
        endpoint: str | None = None,
        request_hash: str | None = None,
    ) -> None:
        """Upsert an entry. Storage failures are logged and dropped.

        Args:
            key: Cache key
            value: Any JSON value
            metadata: Optional metadata stored alongside the value
            ttl_seconds: Lifetime in seconds; None (or 0) stores it permanently
            version: Schema version of the value
            provider_type: Defaults to the first segment of the key
            endpoint: Defaults to the second segment of the key
            request_hash: Defaults to the key's hash segment
        """
        parts = key.split(":", 2)
        if len(parts) != 3:
            parts = ["default", "", generate_request_hash(key)]

        now = self._clock()
        entry = CacheEntryEntity(
            key=key,
            provider_type=provider_type or parts[0],
            endpoint=endpoint if endpoint is not None else parts[1],
            request_hash=request_hash or parts[2],
            response_data=value,
            response_metadata=metadata,
            ttl_seconds=ttl_seconds or None,
            expires_at=now + ttl_seconds if ttl_seconds else None,
            cache_version=version,
            created_at=now,
        )

        try:
            await self._repository.upsert(entry)
            await self._repository.record_access(key, now)
        except StorageError as e:
            logger.warning("Cache write failed for %s, result not cached: %s", key, e)

    async def with_cache(self, options: CacheOptions, payload: Any, producer: Producer) -> CacheResult:
        """Read-through cache around a provider call.

        Business logic:
        1. Derive the key from provider, endpoint and payload
        2. Serve a live entry unless ``force_refresh`` is set
        3. Otherwise call the producer, resolve a TTL and store the result

        With single-flight enabled, concurrent misses on the same key wait
        for the first caller's producer instead of calling their own.

        Args:
            options: Provider, endpoint, TTL and version options
            payload: Request payload the key is derived from
            producer: Coroutine function returning ``(data, metadata)``

        Returns:
            CacheResult with ``cached`` telling whether the producer was skipped

        Raises:
            Whatever the producer raises.
        """
        key = generate_key(options.provider_type, options.endpoint, payload)

        if not options.force_refresh:
            entry = await self.get(key, options.cache_version)
            if entry is not None:
                return CacheResult(cached=True, data=entry.response_data, metadata=entry.response_metadata, key=key)

        if not self._single_flight:
            return await self._produce(key, options, payload, producer)

        pending = self._in_flight.get(key)
        if pending is not None:
            try:
                data, metadata = await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The leader was cancelled, not us
                return await self._produce(key, options, payload, producer)
            return CacheResult(cached=True, data=data, metadata=metadata, key=key)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await self._produce(key, options, payload, producer)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unjoined future does not log a warning
            future.exception()
            raise
        else:
            future.set_result((result.data, result.metadata))
            return result
        finally:
            self._in_flight.pop(key, None)

    async def _produce(self, key: str, options: CacheOptions, payload: Any, producer: Producer) -> CacheResult:
        data, metadata = await producer()
        ttl = await self._resolve_ttl(options, key, payload)
        await self.set(
            key,
            data,
            metadata,
            ttl,
            options.cache_version,
            provider_type=options.provider_type,
            endpoint=options.endpoint,
            request_hash=generate_request_hash(payload),
        )
        return CacheResult(cached=False, data=data, metadata=metadata, key=key)

    async def _resolve_ttl(self, options: CacheOptions, key: str, payload: Any) -> int | None:
        if options.ttl_seconds is not None:
            return options.ttl_seconds

        if self._ttl_predictor is not None:
            context = options.context
            if context is None and isinstance(payload, dict) and isinstance(payload.get("context"), dict):
                context = payload["context"]
            try:
                return await self._ttl_predictor.compute_ttl(options.provider_type, key, context)
            except OptimizerError as e:
                logger.warning("TTL prediction failed for %s, using static default: %s", key, e)

        return STATIC_TTLS.get(options.provider_type, FALLBACK_TTL)

    async def invalidate(
        self,
        provider_type: str | None = None,
        endpoint: str | None = None,
        request_hash: str | None = None,
    ) -> int:
        """Delete every entry matching all given filters.

        With no filters every entry under the cache prefix is removed.

        Returns:
            Number of entries deleted (0 when the backend is unavailable)
        """
        try:
            return await self._repository.delete_matching(provider_type, endpoint, request_hash)
        except StorageError as e:
            logger.error("Cache invalidation failed: %s", e)
            return 0

    async def cleanup_expired(self) -> int:
        """Delete every entry whose expiry has passed.

        Returns:
            Number of entries deleted
        """
        try:
            count = await self._repository.delete_expired(self._clock())
        except StorageError as e:
            logger.error("Expired cache cleanup failed: %s", e)
            return 0
        if count:
            logger.info("Removed %d expired cache entries", count)
        return count

    async def get_stats(self, provider_type: str | None = None) -> CacheStats:
        """Get cache statistics.

        Args:
            provider_type: Restrict the statistics to one provider

        Returns:
            CacheStats; all zeros when the backend is unavailable
        """
        try:
            counts = await self._repository.hit_counts(provider_type)
        except StorageError as e:
            logger.warning("Cache statistics unavailable: %s", e)
            return CacheStats()

        total_entries = len(counts)
        total_hits = sum(counts)
        hit_rate = min(1.0, total_hits / (total_hits + total_entries)) if total_hits > 0 else 0.0
        return CacheStats(
            total_entries=total_entries,
            total_hits=total_hits,
            hit_rate=hit_rate,
            avg_hits_per_entry=total_hits / total_entries if total_entries else 0.0,
        )

    async def is_healthy(self) -> bool:
        """Check if the cache backend is reachable."""
        try:
            return await self._repository.health_check()
        except StorageError:
            return False

    async def _delete_quietly(self, key: str) -> None:
        try:
            await self._repository.delete(key)
        except StorageError as e:
            logger.warning("Failed to delete stale cache entry %s: %s", key, e)

    @property
    def repository(self) -> CacheStore:
        """Get the underlying repository (for testing)."""
        return self._repository
