"""Repository layer for data access.

This layer abstracts external dependencies (Redis, completion and search
APIs) behind protocol-based interfaces. This enables:
- Easy swapping of implementations (Redis → memory, OpenAI → test double, etc.)
- Unit testing with mock implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from request_optimizer.protocols import CacheStore, CallLogStore, CompletionProvider, SearchProvider

from .memory_repository import MemoryCacheRepository, MemoryCallLogRepository
from .openai_completion_provider import OpenAICompletionProvider
from .redis_call_log_repository import RedisCallLogRepository
from .redis_repository import RedisCacheRepository
from .tavily_search_provider import TavilySearchProvider

__all__ = [
    "CacheStore",
    "CallLogStore",
    "CompletionProvider",
    "SearchProvider",
    "MemoryCacheRepository",
    "MemoryCallLogRepository",
    "OpenAICompletionProvider",
    "RedisCacheRepository",
    "RedisCallLogRepository",
    "TavilySearchProvider",
]
