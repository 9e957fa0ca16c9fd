"""OpenAI-compatible completion provider.

Calls the ``/chat/completions`` endpoint of any OpenAI-compatible API and
validates the response into ``CompletionResult`` before it reaches the
optimization layer.

Requirements:
    - ``OPENAI_API_KEY`` set (or an explicit ``api_key``)
    - ``OPENAI_BASE_URL`` for non-default deployments
"""

from typing import Any

import httpx

from request_optimizer.config import Settings, get_settings
from request_optimizer.dto import CompletionResult
from request_optimizer.errors import ProviderError


class OpenAICompletionProvider:
    """OpenAI implementation of the CompletionProvider protocol.

    This class satisfies the CompletionProvider protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        provider = OpenAICompletionProvider.create()
        result = await provider.complete(
            model="gpt-4o-mini",
            messages=[{"role": "user", "content": "Summarise the event"}],
            temperature=0.1,
            max_tokens=500,
        )
        print(result.usage.total_tokens)
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the completion provider.

        Args:
            api_key: API key. Defaults to settings.openai_api_key.
            base_url: API base URL. Defaults to settings.openai_base_url.
            timeout: Request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport (tests use ``MockTransport``).
            settings: Application settings. Defaults to ``get_settings()``.
        """
        settings = settings or get_settings()
        self._api_key = api_key or settings.openai_api_key
        self._base_url = (base_url or settings.openai_base_url).rstrip("/")
        self._timeout = timeout or settings.provider_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def create(cls, settings: Settings | None = None) -> "OpenAICompletionProvider":
        """Factory method to create OpenAICompletionProvider from settings."""
        return cls(settings=settings)

    @property
    def provider_type(self) -> str:
        return "openai"

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client.

        Returns:
            The httpx.AsyncClient instance
        """
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
            )
        return self._client

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int,
        response_format: str | None = None,
    ) -> CompletionResult:
        """Run one chat completion.

        Args:
            model: Model identifier
            messages: Chat messages
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            response_format: ``json_object`` to request structured output

        Returns:
            Validated CompletionResult

        Raises:
            ProviderError: If the request fails or the payload is malformed
        """
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            payload["response_format"] = {"type": response_format}

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            return CompletionResult.from_chat_completion(response.json(), response_format)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise ProviderError(
                f"OpenAI API error: {e}",
                code=str(status_code),
                rate_limited=status_code == 429,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI API error: {e}", code="transport_error") from e
        except ValueError as e:
            raise ProviderError(f"OpenAI API returned an invalid payload: {e}", code="invalid_payload") from e

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
