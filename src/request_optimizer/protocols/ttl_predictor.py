"""TTL predictor protocol.

``CacheService`` only needs a TTL for a freshly produced result. Keeping that
behind a protocol lets the adaptive predictor be injected instead of imported.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TTLPredictor(Protocol):
    """Protocol for anything that recommends a TTL for a cache key."""

    async def compute_ttl(
        self,
        provider_type: str,
        key: str,
        context: dict[str, Any] | None = None,
        advisory: bool = False,
    ) -> int:
        """Recommend a TTL in seconds for a cache key.

        Args:
            provider_type: Provider the cached response came from
            key: The cache key
            context: Optional hints (e.g. ``relevance_score``)
            advisory: Use the wider advisory scaling range

        Returns:
            TTL in seconds
        """
        ...
