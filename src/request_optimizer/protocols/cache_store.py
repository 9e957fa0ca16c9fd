"""Cache storage protocol.

Defines the interface for any persistence backend that holds cache entries
addressed by a deterministic key.

Implementations can include:
- Redis (default)
- In-process memory (tests, single-process tools)
- PostgreSQL or any other key-addressable store
"""

from typing import Protocol, runtime_checkable

from request_optimizer.entities import AccessRecord, CacheEntryEntity


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for cache storage backends.

    Implementations raise ``StorageError`` on backend failures; the service
    layer turns those into misses (reads) or dropped writes.

    Example:
        ```python
        from request_optimizer.protocols import CacheStore

        store: CacheStore = RedisCacheRepository.create()
        store: CacheStore = MemoryCacheRepository()
        ```
    """

    async def fetch(self, key: str) -> CacheEntryEntity | None:
        """Fetch an entry by key, ignoring expiry.

        Args:
            key: The cache key

        Returns:
            The stored entry, or None if there is none
        """
        ...

    async def upsert(self, entry: CacheEntryEntity) -> None:
        """Insert or replace the entry stored under ``entry.key``.

        The hit counter of an existing entry is preserved.

        Args:
            entry: The entry to store
        """
        ...

    async def delete(self, key: str) -> bool:
        """Delete a specific entry by key.

        Args:
            key: The cache key

        Returns:
            True if deleted, False otherwise
        """
        ...

    async def record_hit(self, key: str, at: float) -> None:
        """Increment the hit counter of an entry and stamp its last hit.

        Args:
            key: The cache key
            at: Hit time (Unix timestamp)
        """
        ...

    async def record_access(self, key: str, at: float) -> None:
        """Count one access to a key in its access record.

        The record is independent of the entry: deleting, expiring or
        replacing the entry leaves it in place.

        Args:
            key: The cache key
            at: Access time (Unix timestamp)
        """
        ...

    async def fetch_access(self, key: str) -> AccessRecord | None:
        """Fetch the access record of a key.

        Returns:
            The record, or None if the key was never accessed
        """
        ...

    async def delete_matching(
        self,
        provider_type: str | None = None,
        endpoint: str | None = None,
        request_hash: str | None = None,
    ) -> int:
        """Delete every entry matching all given filters.

        Args:
            provider_type: Match on provider type
            endpoint: Match on endpoint
            request_hash: Match on request fingerprint

        Returns:
            Number of entries deleted
        """
        ...

    async def delete_expired(self, now: float) -> int:
        """Delete every entry whose expiry is at or before ``now``.

        Returns:
            Number of entries deleted
        """
        ...

    async def hit_counts(self, provider_type: str | None = None) -> list[int]:
        """Return the hit counter of every entry, optionally per provider."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is accessible."""
        ...
