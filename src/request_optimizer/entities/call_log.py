"""Call-log and aggregated metrics entities."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ApiCallLogEntity:
    """One provider call attempt. Append-only, never mutated after insertion.

    Attributes:
        provider_type: Provider that was called (openai, tavily, firecrawl, ...)
        endpoint: Endpoint called (for completions, the model identifier)
        feature_name: Application feature or task type that made the call
        request_hash: Fingerprint of the request payload
        cache_key: Cache key the call was served under
        was_cached: Whether the call was served without reaching the provider
        success: Whether the call succeeded
        latency_ms: Wall-clock latency in milliseconds
        error_message: Error message for failed calls
        error_code: Error code for failed calls
        estimated_cost: Estimated cost in USD (filled in on logging when None)
        tokens_used: Total tokens consumed
        input_tokens: Prompt tokens
        output_tokens: Completion tokens
        was_rate_limited: Whether the provider rate-limited the call
        retry_count: Number of retries performed by the caller
        started_at: Call start (Unix timestamp)
        completed_at: Call end (Unix timestamp)
        metadata: Free-form additional data
    """

    provider_type: str
    endpoint: str
    success: bool
    latency_ms: float
    feature_name: str | None = None
    request_hash: str | None = None
    cache_key: str | None = None
    was_cached: bool = False
    error_message: str | None = None
    error_code: str | None = None
    estimated_cost: float | None = None
    tokens_used: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    was_rate_limited: bool = False
    retry_count: int = 0
    started_at: float = 0.0
    completed_at: float = 0.0
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class ApiMetricsWindow:
    """Metrics for one (provider, endpoint, feature) group over a time window.

    Recomputed from the call log on every request; never stored.
    """

    provider_type: str
    endpoint: str
    feature_name: str | None
    window_start: datetime
    window_end: datetime
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    cached_calls: int = 0
    avg_latency_ms: float = 0.0
    min_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    cache_hit_rate: float = 0.0
    cache_miss_rate: float = 0.0
    estimated_cost: float = 0.0
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    rate_limit_hits: int = 0
    retry_count: int = 0
    error_rate: float = 0.0
    error_types: dict[str, int] = field(default_factory=dict)
    percentiles_exact: bool = True


@dataclass(frozen=True)
class ProviderSummary:
    """Per-provider totals inside a TelemetrySummary."""

    calls: int = 0
    cost: float = 0.0
    cache_hit_rate: float = 0.0
    avg_latency_ms: float = 0.0
    errors: int = 0


@dataclass(frozen=True)
class TelemetrySummary:
    """Totals across every metrics window of a period."""

    total_calls: int = 0
    total_cost: float = 0.0
    total_cache_hits: int = 0
    avg_cache_hit_rate: float = 0.0
    avg_latency_ms: float = 0.0
    total_errors: int = 0
    by_provider: dict[str, ProviderSummary] = field(default_factory=dict)
