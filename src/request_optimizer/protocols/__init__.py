"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (Redis → memory, OpenAI → test double, etc.)
- Unit testing with mock implementations
- Clear separation of concerns

Usage:
    ```python
    from request_optimizer.protocols import CacheStore, TTLPredictor

    # Type hints work with any implementation
    store: CacheStore = RedisCacheRepository.create()  # works
    store: CacheStore = MemoryCacheRepository()        # also works
    ```
"""

from .cache_store import CacheStore
from .call_log_store import CallLogStore
from .providers import CompletionProvider, SearchProvider
from .ttl_predictor import TTLPredictor

__all__ = [
    "CacheStore",
    "CallLogStore",
    "CompletionProvider",
    "SearchProvider",
    "TTLPredictor",
]
