"""Provider configuration tagged union.

Callers describe a provider call with a plain mapping carrying a ``kind``
discriminator. Parsing it here yields exactly one config type per provider
kind.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from request_optimizer.entities import ApiConfig


class CompletionConfig(BaseModel):
    """Configuration of a completion call."""

    kind: Literal["completion"] = "completion"
    model: str = Field("gpt-4o-mini", min_length=1)
    temperature: float = Field(0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(2000, gt=0)
    response_format: Literal["text", "json_object"] | None = None

    def to_entity(self) -> ApiConfig:
        """Convert to the internal ``ApiConfig`` entity."""
        return ApiConfig(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format=self.response_format,
        )


class SearchConfig(BaseModel):
    """Configuration of a search call."""

    kind: Literal["search"] = "search"
    query_type: Literal["news", "personalized", "context", "live"] = "news"
    depth: Literal["basic", "advanced"] = "advanced"
    max_results: int = Field(50, gt=0, le=100)
    days: int | None = Field(None, gt=0)
    include_answer: bool = False
    min_score: float = Field(0.5, ge=0.0, le=1.0, description="Drop articles scored below this")


ProviderConfig = Annotated[CompletionConfig | SearchConfig, Field(discriminator="kind")]

_provider_config_adapter: TypeAdapter[CompletionConfig | SearchConfig] = TypeAdapter(ProviderConfig)


def parse_provider_config(raw: dict[str, Any]) -> CompletionConfig | SearchConfig:
    """Validate a raw provider configuration mapping.

    Args:
        raw: Mapping with a ``kind`` of ``completion`` or ``search``

    Returns:
        The matching config model

    Raises:
        pydantic.ValidationError: If the mapping matches no config kind
    """
    return _provider_config_adapter.validate_python(raw)
