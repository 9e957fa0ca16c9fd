"""Tavily search provider.

Calls Tavily's ``/search`` endpoint and validates the response into
``SearchResult``.
"""

from typing import Any

import httpx

from request_optimizer.config import Settings, get_settings
from request_optimizer.dto import SearchResult
from request_optimizer.errors import ProviderError


class TavilySearchProvider:
    """Tavily implementation of the SearchProvider protocol.

    This class satisfies the SearchProvider protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the search provider.

        Args:
            api_key: API key. Defaults to settings.tavily_api_key.
            base_url: API base URL. Defaults to settings.tavily_base_url.
            timeout: Request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport (tests use ``MockTransport``).
            settings: Application settings. Defaults to ``get_settings()``.
        """
        settings = settings or get_settings()
        self._api_key = api_key or settings.tavily_api_key
        self._base_url = (base_url or settings.tavily_base_url).rstrip("/")
        self._timeout = timeout or settings.provider_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def create(cls, settings: Settings | None = None) -> "TavilySearchProvider":
        """Factory method to create TavilySearchProvider from settings."""
        return cls(settings=settings)

    @property
    def provider_type(self) -> str:
        return "tavily"

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._client

    async def search(
        self,
        query: str,
        depth: str = "advanced",
        max_results: int = 50,
        days: int | None = None,
        include_answer: bool = False,
    ) -> SearchResult:
        """Run one search.

        Raises:
            ProviderError: If the request fails or the payload is malformed
        """
        payload: dict[str, Any] = {
            "api_key": self._api_key,
            "query": query,
            "search_depth": depth,
            "max_results": max_results,
            "include_answer": include_answer,
        }
        if days:
            payload["days"] = days

        try:
            response = await self.client.post("/search", json=payload)
            response.raise_for_status()
            return SearchResult.from_tavily(response.json(), query)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise ProviderError(
                f"Tavily API error: {e}",
                code=str(status_code),
                rate_limited=status_code == 429,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Tavily API error: {e}", code="transport_error") from e
        except ValueError as e:
            raise ProviderError(f"Tavily API returned an invalid payload: {e}", code="invalid_payload") from e

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
