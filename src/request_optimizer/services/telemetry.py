"""Provider call telemetry.

Records every provider call attempt in an append-only log and aggregates the
log into per (provider, endpoint, feature) metrics windows on demand.
"""

import dataclasses
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta, timezone

from request_optimizer.config import Settings, get_settings
from request_optimizer.entities import ApiCallLogEntity, ApiMetricsWindow, ProviderSummary, TelemetrySummary
from request_optimizer.errors import StorageError
from request_optimizer.protocols import CallLogStore
from request_optimizer.utils import percentile

logger = logging.getLogger(__name__)

# USD; per-token rates apply when token counts are known, otherwise per-call
COST_ESTIMATES: dict[str, dict[str, float]] = {
    "openai": {"per_input_token": 0.0000025, "per_output_token": 0.00001},
    "tavily": {"per_call": 0.001},
    "firecrawl": {"per_call": 0.002},
}

GroupKey = tuple[str, str, str | None]


def estimate_cost(entry: ApiCallLogEntity) -> float:
    """Estimate the cost of one call from the provider's cost table."""
    rates = COST_ESTIMATES.get(entry.provider_type, {})
    has_tokens = entry.tokens_used or entry.input_tokens or entry.output_tokens
    if "per_input_token" in rates and has_tokens:
        return (entry.input_tokens or 0) * rates["per_input_token"] + (entry.output_tokens or 0) * rates.get(
            "per_output_token", 0.0
        )
    return rates.get("per_call", 0.0)


class _Accumulator:
    """Running totals for one metrics group."""

    def __init__(self, keep_latencies: bool) -> None:
        self.total = 0
        self.successful = 0
        self.cached = 0
        self.latency_sum = 0.0
        self.latency_min: float | None = None
        self.latency_max = 0.0
        self.latencies: list[float] | None = [] if keep_latencies else None
        self.cost = 0.0
        self.tokens = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self.rate_limit_hits = 0
        self.retries = 0
        self.error_types: dict[str, int] = {}

    def add(self, entry: ApiCallLogEntity) -> None:
        self.total += 1
        if entry.success:
            self.successful += 1
        else:
            code = entry.error_code or "unknown"
            self.error_types[code] = self.error_types.get(code, 0) + 1
        if entry.was_cached:
            self.cached += 1

        latency = float(entry.latency_ms)
        self.latency_sum += latency
        self.latency_min = latency if self.latency_min is None else min(self.latency_min, latency)
        self.latency_max = max(self.latency_max, latency)
        if self.latencies is not None:
            self.latencies.append(latency)

        self.cost += entry.estimated_cost if entry.estimated_cost is not None else estimate_cost(entry)
        self.tokens += entry.tokens_used or 0
        self.input_tokens += entry.input_tokens or 0
        self.output_tokens += entry.output_tokens or 0
        if entry.was_rate_limited:
            self.rate_limit_hits += 1
        self.retries += entry.retry_count or 0


class TelemetryAggregator:
    """Call logging and metrics aggregation.

    Logging is fire-and-forget: a broken log store never fails the call that
    is being logged.

    Example:
        ```python
        telemetry = TelemetryAggregator(RedisCallLogRepository.create())
        await telemetry.log_call(ApiCallLogEntity("tavily", "search", success=True, latency_ms=420))
        windows = await telemetry.get_metrics(hours=24, provider_type="tavily")
        ```
    """

    def __init__(
        self,
        repository: CallLogStore,
        settings: Settings | None = None,
        exact_percentiles: bool | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the aggregator.

        Args:
            repository: Call log storage backend (required).
            settings: Application settings. Defaults to ``get_settings()``.
            exact_percentiles: Keep every latency to compute true percentiles.
                When False only running sums are kept and p50/p95/p99 are
                approximated as avg, avg x 1.5 and avg x 2. Defaults to settings.
            clock: Returns the current Unix time.
        """
        settings = settings or get_settings()
        self._repository = repository
        self._exact = settings.telemetry_exact_percentiles if exact_percentiles is None else exact_percentiles
        self._retention_days = settings.telemetry_retention_days
        self._clock = clock

    async def log_call(self, entry: ApiCallLogEntity) -> None:
        """Append one call to the log.

        Missing timestamps are stamped with the current time and a missing
        cost is estimated from the provider's cost table.
        """
        changes: dict[str, float] = {}
        if entry.estimated_cost is None:
            changes["estimated_cost"] = estimate_cost(entry)
        if not entry.started_at or not entry.completed_at:
            now = self._clock()
            started_at = entry.started_at or now
            changes["started_at"] = started_at
            changes["completed_at"] = entry.completed_at or max(started_at, now)
        if changes:
            entry = dataclasses.replace(entry, **changes)
        try:
            await self._repository.append(entry)
        except StorageError as e:
            logger.warning("Failed to log %s/%s call: %s", entry.provider_type, entry.endpoint, e)

    async def aggregate(
        self,
        start: datetime,
        end: datetime,
        provider_type: str | None = None,
        endpoint: str | None = None,
        feature_name: str | None = None,
    ) -> list[ApiMetricsWindow]:
        """Aggregate the calls started in ``[start, end]``.

        Args:
            start: Window start
            end: Window end
            provider_type: Only include this provider
            endpoint: Only include this endpoint
            feature_name: Only include this feature

        Returns:
            One ApiMetricsWindow per (provider, endpoint, feature) group, in
            order of each group's first call; empty when the log is unavailable
        """
        try:
            entries = await self._repository.fetch_window(start.timestamp(), end.timestamp())
        except StorageError as e:
            logger.warning("Call log unavailable, no metrics for window: %s", e)
            return []

        filtered = (
            entry
            for entry in entries
            if (provider_type is None or entry.provider_type == provider_type)
            and (endpoint is None or entry.endpoint == endpoint)
            and (feature_name is None or entry.feature_name == feature_name)
        )
        return self._windows(filtered, start, end)

    def _windows(self, entries: Iterable[ApiCallLogEntity], start: datetime, end: datetime) -> list[ApiMetricsWindow]:
        groups: dict[GroupKey, _Accumulator] = {}
        for entry in entries:
            key = (entry.provider_type, entry.endpoint, entry.feature_name)
            if key not in groups:
                groups[key] = _Accumulator(keep_latencies=self._exact)
            groups[key].add(entry)

        windows = []
        for (provider, endpoint, feature), acc in groups.items():
            avg = acc.latency_sum / acc.total
            if acc.latencies is not None:
                p50 = percentile(acc.latencies, 50)
                p95 = percentile(acc.latencies, 95)
                p99 = percentile(acc.latencies, 99)
            else:
                p50, p95, p99 = avg, avg * 1.5, avg * 2

            hit_rate = acc.cached / acc.total
            windows.append(
                ApiMetricsWindow(
                    provider_type=provider,
                    endpoint=endpoint,
                    feature_name=feature,
                    window_start=start,
                    window_end=end,
                    total_calls=acc.total,
                    successful_calls=acc.successful,
                    failed_calls=acc.total - acc.successful,
                    cached_calls=acc.cached,
                    avg_latency_ms=avg,
                    min_latency_ms=acc.latency_min or 0.0,
                    max_latency_ms=acc.latency_max,
                    p50_latency_ms=p50,
                    p95_latency_ms=p95,
                    p99_latency_ms=p99,
                    cache_hit_rate=hit_rate,
                    cache_miss_rate=1 - hit_rate,
                    estimated_cost=acc.cost,
                    total_tokens=acc.tokens,
                    input_tokens=acc.input_tokens,
                    output_tokens=acc.output_tokens,
                    rate_limit_hits=acc.rate_limit_hits,
                    retry_count=acc.retries,
                    error_rate=(acc.total - acc.successful) / acc.total,
                    error_types=acc.error_types,
                    percentiles_exact=acc.latencies is not None,
                )
            )
        return windows

    @staticmethod
    def percentile(values: Sequence[float], p: float) -> float:
        """Nearest-rank percentile; 0 for empty input."""
        return percentile(values, p)

    async def get_metrics(
        self,
        hours: float = 24,
        provider_type: str | None = None,
        endpoint: str | None = None,
        feature_name: str | None = None,
    ) -> list[ApiMetricsWindow]:
        """Aggregate the last ``hours`` hours of calls."""
        end = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        start = end - timedelta(hours=hours)
        return await self.aggregate(start, end, provider_type, endpoint, feature_name)

    async def summary(self, hours: float = 24) -> TelemetrySummary:
        """Totals for the last ``hours`` hours, overall and per provider.

        Returns:
            TelemetrySummary with call-weighted average latency
        """
        windows = await self.get_metrics(hours)

        totals: dict[str, dict[str, float]] = {}
        for window in windows:
            data = totals.setdefault(
                window.provider_type, {"calls": 0, "cost": 0.0, "cached": 0, "latency": 0.0, "errors": 0}
            )
            data["calls"] += window.total_calls
            data["cost"] += window.estimated_cost
            data["cached"] += window.cached_calls
            data["latency"] += window.avg_latency_ms * window.total_calls
            data["errors"] += window.failed_calls

        by_provider = {
            provider: ProviderSummary(
                calls=int(data["calls"]),
                cost=data["cost"],
                cache_hit_rate=data["cached"] / data["calls"] if data["calls"] else 0.0,
                avg_latency_ms=data["latency"] / data["calls"] if data["calls"] else 0.0,
                errors=int(data["errors"]),
            )
            for provider, data in totals.items()
        }

        total_calls = sum(int(data["calls"]) for data in totals.values())
        total_cached = sum(int(data["cached"]) for data in totals.values())
        total_latency = sum(data["latency"] for data in totals.values())
        return TelemetrySummary(
            total_calls=total_calls,
            total_cost=sum(data["cost"] for data in totals.values()),
            total_cache_hits=total_cached,
            avg_cache_hit_rate=total_cached / total_calls if total_calls else 0.0,
            avg_latency_ms=total_latency / total_calls if total_calls else 0.0,
            total_errors=sum(int(data["errors"]) for data in totals.values()),
            by_provider=by_provider,
        )

    async def cleanup(self, retention_days: int | None = None) -> int:
        """Delete log entries older than the retention horizon.

        Args:
            retention_days: Days to keep. Defaults to settings.telemetry_retention_days.

        Returns:
            Number of entries deleted
        """
        days = retention_days if retention_days is not None else self._retention_days
        cutoff = self._clock() - days * 86400
        try:
            count = await self._repository.delete_before(cutoff)
        except StorageError as e:
            logger.error("Call log cleanup failed: %s", e)
            return 0
        if count:
            logger.info("Removed %d call log entries older than %d days", count, days)
        return count
