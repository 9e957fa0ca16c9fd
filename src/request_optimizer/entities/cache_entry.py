"""Cache entry domain entity and the value objects around it."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntryEntity:
    """Domain entity for a cached provider response.

    This is an internal representation used by services and repositories.

    Attributes:
        key: Deterministic cache key (``provider_type:endpoint:hash``)
        provider_type: Provider the response came from (openai, tavily, ...)
        endpoint: Endpoint or feature name the request targeted
        request_hash: Full fingerprint of the request payload
        response_data: The cached payload (any JSON value)
        response_metadata: Optional metadata (model used, tokens, etc.)
        ttl_seconds: Time-to-live in seconds (None = permanent)
        expires_at: Absolute expiry as a Unix timestamp (None = permanent)
        cache_version: Schema version the payload was written with
        hit_count: Number of cache hits served from this entry
        created_at: When the entry was written (Unix timestamp)
        last_hit_at: When the entry last served a hit (Unix timestamp)
    """

    key: str
    provider_type: str
    endpoint: str
    request_hash: str
    response_data: Any
    response_metadata: dict[str, Any] | None = None
    ttl_seconds: int | None = None
    expires_at: float | None = None
    cache_version: int = 1
    hit_count: int = 0
    created_at: float = 0.0
    last_hit_at: float | None = None

    def is_expired(self, now: float) -> bool:
        """Check whether the entry's expiry has passed."""
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class CacheOptions:
    """Options for a ``CacheService.with_cache`` call.

    Attributes:
        provider_type: Provider being called
        endpoint: Endpoint or feature name
        ttl_seconds: Explicit TTL; when None the TTL predictor decides
        cache_version: Expected schema version of cached payloads
        force_refresh: Skip the cache read and always call the producer
        context: Hints for the TTL predictor (e.g. ``relevance_score``)
    """

    provider_type: str
    endpoint: str
    ttl_seconds: int | None = None
    cache_version: int = 1
    force_refresh: bool = False
    context: dict[str, Any] | None = None


@dataclass(frozen=True)
class CacheResult:
    """Result of a ``with_cache`` call."""

    cached: bool
    data: Any
    metadata: dict[str, Any] | None = None
    key: str = ""


@dataclass(frozen=True)
class PrewarmItem:
    """A result offered to the TTL predictor for proactive caching."""

    key: str
    data: Any
    context: dict[str, Any] | None = None


@dataclass(frozen=True)
class CacheStats:
    """Aggregate cache statistics."""

    total_entries: int = 0
    total_hits: int = 0
    hit_rate: float = 0.0
    avg_hits_per_entry: float = 0.0
