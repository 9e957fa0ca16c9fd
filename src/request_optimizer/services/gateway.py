"""Request gateway.

Single entry point for metered provider calls. Every call flows through the
same pipeline:

    query pool -> read-through cache -> provider -> query pool -> telemetry

Provider failures are logged to telemetry and re-raised unchanged.
"""

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from request_optimizer.dto import CompletionConfig, SearchConfig, parse_provider_config
from request_optimizer.entities import ApiCallLogEntity, ApiConfig, CacheOptions, CacheResult
from request_optimizer.errors import OptimizerError, ProviderError
from request_optimizer.protocols import CompletionProvider, SearchProvider

from .cache_service import CacheService, Producer, generate_request_hash
from .query_pool import QueryDeduplicationPool, normalize_query, pool_key, ttl_for
from .telemetry import TelemetryAggregator

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "search"


class RequestGateway:
    """Routes provider calls through the pool, the cache and telemetry.

    Example:
        ```python
        gateway = build_layer().gateway
        result = await gateway.search("ceasefire talks", {"kind": "search", "query_type": "live"})
        articles = result.data["articles"]

        completion = await gateway.complete(
            "event_extraction",
            [{"role": "user", "content": text}],
            {"kind": "completion", "model": "gpt-4o", "response_format": "json_object"},
        )
        ```
    """

    def __init__(
        self,
        cache: CacheService,
        telemetry: TelemetryAggregator,
        pool: QueryDeduplicationPool,
        search_provider: SearchProvider | None = None,
        completion_provider: CompletionProvider | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the gateway.

        Args:
            cache: Read-through cache for provider results.
            telemetry: Call log every attempt is recorded in.
            pool: In-process query deduplication pool (searches only).
            search_provider: Provider behind ``search``.
            completion_provider: Provider behind ``complete``.
            clock: Returns the current Unix time.
        """
        self._cache = cache
        self._telemetry = telemetry
        self._pool = pool
        self._search_provider = search_provider
        self._completion_provider = completion_provider
        self._clock = clock

    async def fetch(
        self,
        options: CacheOptions,
        payload: Any,
        producer: Producer,
        *,
        feature_name: str | None = None,
        key: str | None = None,
    ) -> CacheResult:
        """Run one provider call through the full pipeline.

        Args:
            options: Cache options (provider and endpoint also label telemetry)
            payload: Request payload the cache key is derived from
            producer: Coroutine function returning ``(data, metadata)``
            feature_name: Feature or task type recorded in telemetry
            key: Query pool key; the pool is bypassed when None

        Returns:
            CacheResult; ``cached`` is True for pool and cache hits

        Raises:
            Whatever the producer raises, after it has been logged.
        """
        started_at = self._clock()
        request_hash = generate_request_hash(payload)

        if key is not None:
            pooled = self._pool.lookup(key)
            if pooled is not None:
                await self._log(options, feature_name, request_hash, key, started_at, cached=True)
                return CacheResult(cached=True, data=pooled.result, key=key)

        try:
            result = await self._cache.with_cache(options, payload, producer)
        except ProviderError as e:
            await self._log(
                options,
                feature_name,
                request_hash,
                key,
                started_at,
                error=e,
                error_code=e.code,
                rate_limited=e.rate_limited,
            )
            raise
        except Exception as e:
            await self._log(options, feature_name, request_hash, key, started_at, error=e, error_code=type(e).__name__)
            raise

        if key is not None:
            self._pool.insert(key, result.data)

        await self._log(
            options,
            feature_name,
            request_hash,
            key or result.key,
            started_at,
            cached=result.cached,
            usage=result.metadata,
        )
        return result

    async def search(self, query: str, config: SearchConfig | dict[str, Any] | None = None) -> CacheResult:
        """Search through the pipeline.

        Results are cached for the query type's TTL and filtered to articles
        scoring at least ``config.min_score``.

        Args:
            query: Free-text query
            config: SearchConfig or a raw mapping with ``kind="search"``

        Returns:
            CacheResult whose data is a ``SearchResult`` as a JSON dict
        """
        if self._search_provider is None:
            raise OptimizerError("No search provider configured")
        config = _search_config(config)
        provider = self._search_provider
        query_type = config.query_type
        normalized = normalize_query(query)

        async def call_provider() -> tuple[dict[str, Any], dict[str, Any]]:
            result = await provider.search(
                query,
                depth=config.depth,
                max_results=config.max_results,
                days=config.days,
                include_answer=config.include_answer,
            )
            articles = [article for article in result.articles if article.score >= config.min_score]
            data = result.model_copy(update={"articles": articles}).model_dump(mode="json")
            metadata = {
                "total_results": len(result.articles),
                "filtered_results": len(articles),
                "query_type": query_type,
            }
            return data, metadata

        options = CacheOptions(
            provider_type=provider.provider_type,
            endpoint=SEARCH_ENDPOINT,
            ttl_seconds=ttl_for(query_type),
        )
        payload = {
            "query": normalized,
            "query_type": query_type,
            "options": config.model_dump(exclude={"kind", "query_type"}),
        }
        return await self.fetch(
            options,
            payload,
            call_provider,
            feature_name=query_type,
            key=pool_key(query, query_type),
        )

    async def batch_search(
        self,
        requests: Sequence[tuple[str, SearchConfig | dict[str, Any] | None]],
    ) -> list[CacheResult]:
        """Run several searches concurrently, once per distinct pool key.

        Failed searches are logged and left out of the result.
        """
        unique: dict[str, tuple[str, SearchConfig]] = {}
        for query, config in requests:
            config = _search_config(config)
            unique.setdefault(pool_key(query, config.query_type), (query, config))

        outcomes = await asyncio.gather(
            *(self.search(query, config) for query, config in unique.values()),
            return_exceptions=True,
        )

        results = []
        for (query, _), outcome in zip(unique.values(), outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Search for %r failed: %s", query, outcome)
                continue
            results.append(outcome)
        return results

    async def complete(
        self,
        task_type: str,
        messages: list[dict[str, Any]],
        config: CompletionConfig | ApiConfig | dict[str, Any] | None = None,
    ) -> CacheResult:
        """Run a completion through the cache and telemetry.

        The model is used as the telemetry endpoint and the task type as the
        feature name, which is what per-task model recommendations read.

        Args:
            task_type: Task identifier
            messages: Chat messages
            config: ApiConfig, CompletionConfig or a raw mapping with ``kind="completion"``

        Returns:
            CacheResult whose data is a ``CompletionResult`` as a JSON dict
        """
        if self._completion_provider is None:
            raise OptimizerError("No completion provider configured")
        api_config = _api_config(config)
        provider = self._completion_provider

        async def call_provider() -> tuple[dict[str, Any], dict[str, Any]]:
            result = await provider.complete(
                model=api_config.model,
                messages=messages,
                temperature=api_config.temperature,
                max_tokens=api_config.max_tokens,
                response_format=api_config.response_format,
            )
            metadata = {
                "model": result.model or api_config.model,
                "input_tokens": result.usage.prompt_tokens,
                "output_tokens": result.usage.completion_tokens,
                "tokens_used": result.usage.total_tokens,
            }
            return result.model_dump(mode="json"), metadata

        options = CacheOptions(provider_type=provider.provider_type, endpoint=api_config.model)
        payload = {"task_type": task_type, "messages": messages, "config": dataclasses.asdict(api_config)}
        return await self.fetch(options, payload, call_provider, feature_name=task_type)

    async def _log(
        self,
        options: CacheOptions,
        feature_name: str | None,
        request_hash: str,
        cache_key: str | None,
        started_at: float,
        *,
        cached: bool = False,
        usage: dict[str, Any] | None = None,
        error: Exception | None = None,
        error_code: str | None = None,
        rate_limited: bool = False,
    ) -> None:
        completed_at = self._clock()
        usage = usage if not cached and isinstance(usage, dict) else {}
        entry = ApiCallLogEntity(
            provider_type=options.provider_type,
            endpoint=options.endpoint,
            feature_name=feature_name,
            request_hash=request_hash[:16],
            cache_key=cache_key,
            was_cached=cached,
            success=error is None,
            latency_ms=max(0.0, (completed_at - started_at) * 1000),
            error_message=str(error) if error is not None else None,
            error_code=error_code,
            # Cached calls cost nothing at the provider
            estimated_cost=0.0 if cached else None,
            tokens_used=_int_or_none(usage.get("tokens_used")),
            input_tokens=_int_or_none(usage.get("input_tokens")),
            output_tokens=_int_or_none(usage.get("output_tokens")),
            was_rate_limited=rate_limited,
            started_at=started_at,
            completed_at=completed_at,
        )
        await self._telemetry.log_call(entry)


def _search_config(config: SearchConfig | dict[str, Any] | None) -> SearchConfig:
    if config is None:
        return SearchConfig()
    if isinstance(config, dict):
        config = parse_provider_config({"kind": "search", **config})
    if not isinstance(config, SearchConfig):
        raise OptimizerError(f"Expected a search config, got {config.kind!r}")
    return config


def _api_config(config: CompletionConfig | ApiConfig | dict[str, Any] | None) -> ApiConfig:
    if config is None:
        return CompletionConfig().to_entity()
    if isinstance(config, ApiConfig):
        return config
    if isinstance(config, dict):
        config = parse_provider_config({"kind": "completion", **config})
    if not isinstance(config, CompletionConfig):
        raise OptimizerError(f"Expected a completion config, got {config.kind!r}")
    return config.to_entity()


def _int_or_none(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None
