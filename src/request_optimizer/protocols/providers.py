"""External provider protocols.

The optimization layer treats providers as cost/latency/quality-bearing black
boxes. These protocols describe the two kinds it routes calls to.

Implementations can include:
- OpenAI-compatible chat completion APIs
- Tavily search
- Any test double with the same methods
"""

from typing import Any, Protocol, runtime_checkable

from request_optimizer.dto import CompletionResult, SearchResult


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol for completion providers."""

    @property
    def provider_type(self) -> str:
        """Return the provider type used for caching and telemetry."""
        ...

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
        response_format: str | None = None,
    ) -> CompletionResult:
        """Run one completion.

        Args:
            model: Model identifier
            messages: Chat messages (``{"role": ..., "content": ...}``)
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            response_format: ``json_object`` to request structured output

        Returns:
            Validated completion result
        """
        ...


@runtime_checkable
class SearchProvider(Protocol):
    """Protocol for web-search providers."""

    @property
    def provider_type(self) -> str:
        """Return the provider type used for caching and telemetry."""
        ...

    async def search(
        self,
        query: str,
        depth: str = "advanced",
        max_results: int = 50,
        days: int | None = None,
        include_answer: bool = False,
    ) -> SearchResult:
        """Run one search.

        Args:
            query: Query text
            depth: ``basic`` or ``advanced``
            max_results: Maximum number of results
            days: Freshness window in days
            include_answer: Ask the provider for a generated answer

        Returns:
            Validated search result
        """
        ...
