"""Access pattern and reuse prediction entities."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AccessRecord:
    """Stored access counters of one cache key.

    Kept apart from the cache entry so the history survives expiry,
    invalidation and re-production of the entry.

    Attributes:
        cache_key: The cache key
        access_count: Writes plus served hits
        first_access: First access (Unix timestamp)
        last_access: Most recent access (Unix timestamp)
    """

    cache_key: str
    access_count: int
    first_access: float
    last_access: float


@dataclass(frozen=True)
class AccessPattern:
    """Observed access history of one cache key.

    Derived on demand from the key's AccessRecord, never persisted itself.

    Attributes:
        cache_key: The cache key
        access_count: Number of accesses on record (writes and hits)
        first_access: First access (Unix timestamp)
        last_access: Most recent access (Unix timestamp)
        access_frequency: Accesses per hour
        hours_since_first_access: Age of the history in hours
    """

    cache_key: str
    access_count: int
    first_access: float
    last_access: float
    access_frequency: float
    hours_since_first_access: float


@dataclass(frozen=True)
class ReusePrediction:
    """Predicted likelihood that a cached result is requested again."""

    cache_key: str
    probability: float
    confidence: float
    recommended_ttl: int
    reasoning: str = ""
