"""
Tests for the HTTP provider clients and provider config parsing.
"""

import json

import httpx
import pytest
from pydantic import ValidationError

from request_optimizer.dto import CompletionConfig, SearchConfig, parse_provider_config
from request_optimizer.errors import ProviderError
from request_optimizer.repositories import OpenAICompletionProvider, TavilySearchProvider

CHAT_COMPLETION = {
    "model": "gpt-4o-mini",
    "choices": [{"message": {"role": "assistant", "content": '{"events": [{"name": "summit"}]}'}}],
    "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
}


def openai_provider(settings, handler):
    return OpenAICompletionProvider(settings=settings, transport=httpx.MockTransport(handler))


def tavily_provider(settings, handler):
    return TavilySearchProvider(settings=settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_openai_request_and_response(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=CHAT_COMPLETION)

    provider = openai_provider(settings, handler)
    result = await provider.complete(
        model="gpt-4o-mini",
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.1,
        max_tokens=100,
        response_format="json_object",
    )
    await provider.close()

    (request,) = seen
    body = json.loads(request.content)
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-openai-key"
    assert body["response_format"] == {"type": "json_object"}
    assert body["max_tokens"] == 100
    assert result.structured == {"events": [{"name": "summit"}]}
    assert result.usage.total_tokens == 150


@pytest.mark.asyncio
async def test_openai_plain_text_has_no_structured_content(settings):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=CHAT_COMPLETION)

    provider = openai_provider(settings, handler)
    result = await provider.complete("gpt-4o-mini", [{"role": "user", "content": "hi"}], 0.1, 100)

    assert "response_format" not in seen[0]
    assert result.structured is None
    assert result.content.startswith('{"events"')


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, code, rate_limited",
    [
        (httpx.Response(429, json={"error": "slow down"}), "429", True),
        (httpx.Response(500, text="oops"), "500", False),
        (httpx.Response(200, json={"model": "gpt-4o", "choices": []}), "invalid_payload", False),
        (httpx.Response(200, text="not json"), "invalid_payload", False),
    ],
)
async def test_openai_errors(settings, response, code, rate_limited):
    provider = openai_provider(settings, lambda request: response)

    with pytest.raises(ProviderError) as exc_info:
        await provider.complete("gpt-4o", [{"role": "user", "content": "hi"}], 0.1, 100)

    assert exc_info.value.code == code
    assert exc_info.value.rate_limited is rate_limited


@pytest.mark.asyncio
async def test_openai_structured_output_must_be_json(settings):
    payload = {**CHAT_COMPLETION, "choices": [{"message": {"content": "sorry, no JSON"}}]}
    provider = openai_provider(settings, lambda request: httpx.Response(200, json=payload))

    with pytest.raises(ProviderError) as exc_info:
        await provider.complete("gpt-4o", [], 0.1, 100, response_format="json_object")

    assert exc_info.value.code == "invalid_payload"


@pytest.mark.asyncio
async def test_transport_failure(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = openai_provider(settings, handler)

    with pytest.raises(ProviderError) as exc_info:
        await provider.complete("gpt-4o", [], 0.1, 100)

    assert exc_info.value.code == "transport_error"


@pytest.mark.asyncio
async def test_tavily_search(settings):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "answer": None,
                "results": [
                    {"title": "Summit", "url": "https://example.com/1", "content": "text", "score": 0.8},
                    {"title": "No score", "url": "https://example.com/2", "score": None},
                    {"title": "No url", "content": "dropped"},
                ],
            },
        )

    provider = tavily_provider(settings, handler)
    result = await provider.search("summit", depth="basic", max_results=5, days=3)
    await provider.close()

    (body,) = seen
    assert body["api_key"] == "test-tavily-key"
    assert body["search_depth"] == "basic"
    assert body["days"] == 3
    assert [a.title for a in result.articles] == ["Summit", "No score"]
    assert result.articles[1].score == 0.5


@pytest.mark.asyncio
async def test_tavily_rate_limit(settings):
    provider = tavily_provider(settings, lambda request: httpx.Response(429))

    with pytest.raises(ProviderError) as exc_info:
        await provider.search("summit")

    assert exc_info.value.rate_limited is True


def test_parse_provider_config():
    completion = parse_provider_config({"kind": "completion", "model": "gpt-4o", "response_format": "json_object"})
    search = parse_provider_config({"kind": "search", "query_type": "live"})

    assert isinstance(completion, CompletionConfig)
    assert completion.to_entity().model == "gpt-4o"
    assert isinstance(search, SearchConfig)
    assert search.min_score == 0.5


@pytest.mark.parametrize(
    "raw",
    [
        {"kind": "scrape"},
        {"model": "gpt-4o"},
        {"kind": "completion", "temperature": 3.0},
        {"kind": "search", "query_type": "gossip"},
    ],
)
def test_parse_provider_config_rejects_invalid(raw):
    with pytest.raises(ValidationError):
        parse_provider_config(raw)
