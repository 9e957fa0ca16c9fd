"""Validated provider response DTOs.

Raw provider payloads are parsed into these models at the client boundary, so
the rest of the layer only ever sees one well-typed shape per provider kind.
"""

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError


class TokenUsage(BaseModel):
    """Token usage reported by a completion provider."""

    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)


class _ChatMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class _ChatChoice(BaseModel):
    message: _ChatMessage


class _ChatCompletionPayload(BaseModel):
    model: str = ""
    choices: list[_ChatChoice] = Field(..., min_length=1)
    usage: TokenUsage = Field(default_factory=TokenUsage)


class CompletionResult(BaseModel):
    """Completion provider result."""

    model: str = Field(..., description="Model that produced the completion")
    content: str = Field("", description="Raw text content")
    structured: dict[str, Any] | list[Any] | None = Field(
        None,
        description="Parsed JSON content when structured output was requested",
    )
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @classmethod
    def from_chat_completion(
        cls,
        payload: dict[str, Any],
        response_format: str | None = None,
    ) -> "CompletionResult":
        """Validate an OpenAI-style chat completion payload.

        Args:
            payload: Decoded JSON body of the provider response
            response_format: ``json_object`` if structured output was requested

        Returns:
            CompletionResult

        Raises:
            ValueError: If the payload or its structured content is malformed
        """
        try:
            parsed = _ChatCompletionPayload.model_validate(payload)
        except ValidationError as e:
            raise ValueError(f"Unexpected completion payload: {e}") from e

        content = parsed.choices[0].message.content or ""
        structured = None
        if response_format == "json_object":
            try:
                structured = json.loads(content)
            except json.JSONDecodeError as e:
                raise ValueError(f"Structured output is not valid JSON: {e}") from e

        return cls(
            model=parsed.model,
            content=content,
            structured=structured,
            usage=parsed.usage,
        )


class SearchArticle(BaseModel):
    """Single search hit."""

    title: str = ""
    url: str = ""
    content: str = ""
    published_date: str | None = None
    score: float = Field(0.5, ge=0.0)


class SearchResult(BaseModel):
    """Search provider result."""

    query: str
    articles: list[SearchArticle] = Field(default_factory=list)
    answer: str | None = None

    @classmethod
    def from_tavily(cls, payload: dict[str, Any], query: str) -> "SearchResult":
        """Validate a Tavily search payload.

        Hits without a title or URL are dropped.

        Raises:
            ValueError: If the payload is malformed
        """
        raw_results = payload.get("results") or []
        try:
            articles = [
                SearchArticle(
                    title=item.get("title") or "",
                    url=item.get("url") or "",
                    content=item.get("content") or item.get("raw_content") or "",
                    published_date=item.get("published_date"),
                    score=item["score"] if item.get("score") is not None else 0.5,
                )
                for item in raw_results
            ]
            return cls(
                query=query,
                articles=[a for a in articles if a.title and a.url],
                answer=payload.get("answer"),
            )
        except (AttributeError, ValidationError) as e:
            raise ValueError(f"Unexpected search payload: {e}") from e
