"""Data Transfer Objects for the provider trust boundary.

These Pydantic models validate everything that crosses into the optimization
layer from outside: provider responses and caller-supplied provider
configurations. Internal domain logic should use entities from the entities
package.
"""

from .provider_config import (
    CompletionConfig,
    ProviderConfig,
    SearchConfig,
    parse_provider_config,
)
from .provider_responses import (
    CompletionResult,
    SearchArticle,
    SearchResult,
    TokenUsage,
)

__all__ = [
    "CompletionConfig",
    "SearchConfig",
    "ProviderConfig",
    "parse_provider_config",
    "TokenUsage",
    "CompletionResult",
    "SearchArticle",
    "SearchResult",
]
