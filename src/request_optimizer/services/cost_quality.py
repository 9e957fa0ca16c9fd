"""Cost and quality prediction for completion calls.

Predicts what a completion call would cost, how good its output would be and
how long it would take, before the call is made. Estimates come from static
per-model tables and are deterministic for a given input, so they are cached.
"""

import dataclasses
import logging
import math
from typing import TYPE_CHECKING, Any

from request_optimizer.config import Settings, get_settings
from request_optimizer.entities import ApiConfig, ConfigOptimization, CostQualityPrediction

from .cache_service import CacheService

if TYPE_CHECKING:
    from .telemetry import TelemetryAggregator

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_MODEL = "gpt-4o-mini"

# USD per 1K tokens
MODEL_COSTS: dict[str, dict[str, float]] = {
    "gpt-4o": {"input": 0.0025, "output": 0.01},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
}

MODEL_QUALITY: dict[str, float] = {
    "gpt-4o": 0.9,
    "gpt-4-turbo": 0.85,
    "gpt-3.5-turbo": 0.75,
    "gpt-4o-mini": 0.7,
}
DEFAULT_QUALITY = 0.7

DEFAULT_LATENCY_MS = 1000.0
# model -> (base ms, ms per output token)
MODEL_LATENCY: dict[str, tuple[float, float]] = {
    "gpt-4o": (2000.0, 10.0),
    "gpt-4o-mini": (500.0, 5.0),
}

AVOID_COST = 0.05
OPTIMIZE_COST = 0.01
OPTIMIZE_QUALITY = 0.7

# Static model choices per task: recommended models first, then the fallback
TASK_MODELS: dict[str, dict[str, Any]] = {
    "event_extraction": {"recommended": ["gpt-4o", "gpt-4o-mini"], "fallback": "gpt-4o-mini"},
    "causal_chain": {"recommended": ["gpt-4o", "gpt-4-turbo"], "fallback": "gpt-4o"},
    "scenario_prediction": {"recommended": ["gpt-4o"], "fallback": "gpt-4o"},
    "query_optimization": {"recommended": ["gpt-4o-mini"], "fallback": "gpt-4o-mini"},
    "data_extraction": {"recommended": ["gpt-4o-mini"], "fallback": "gpt-4o-mini"},
}

PREDICTION_PROVIDER = "openai"
PREDICTION_ENDPOINT = "cost_quality"


def is_structured_task(task_type: str) -> bool:
    """Extraction and structured-output tasks benefit from low temperature."""
    return "extraction" in task_type or "structured" in task_type


def estimate_tokens(input_size: int, max_tokens: int | None) -> tuple[int, float]:
    """Estimate (input tokens, output tokens) from a prompt size in characters."""
    input_tokens = math.ceil(max(input_size, 0) / CHARS_PER_TOKEN)
    output_tokens = max_tokens or min(1000, input_tokens * 0.5)
    return input_tokens, output_tokens


def model_from_endpoint(endpoint: str | None) -> str | None:
    """Find the known model an endpoint name refers to, longest name first."""
    if not endpoint:
        return None
    for model in sorted(MODEL_COSTS, key=len, reverse=True):
        if model in endpoint:
            return model
    return None


class CostQualityPredictor:
    """Predicts cost, quality and latency of completion configurations.

    Predictions are written through ``CacheService`` under
    ``openai:cost_quality:`` keys. Historical model performance comes from
    the telemetry aggregator when one is supplied.
    """

    def __init__(
        self,
        cache: CacheService,
        telemetry: "TelemetryAggregator | None" = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the predictor.

        Args:
            cache: Cache service used to memoize predictions.
            telemetry: Source of recent per-task metrics. Static tables only without it.
            settings: Application settings. Defaults to ``get_settings()``.
        """
        settings = settings or get_settings()
        self._cache = cache
        self._telemetry = telemetry
        self._cache_ttl = settings.prediction_cache_ttl
        self._cache_version = settings.cache_version

    async def predict(self, task_type: str, input_size: int, config: ApiConfig) -> CostQualityPrediction:
        """Predict cost, quality and latency of one configuration.

        Args:
            task_type: Task identifier (event_extraction, causal_chain, ...)
            input_size: Prompt size in characters
            config: Candidate configuration

        Returns:
            CostQualityPrediction (served from cache when available)
        """
        key = self._prediction_key(task_type, input_size, config)

        entry = await self._cache.get(key, self._cache_version)
        if entry is not None:
            cached = _prediction_from_dict(entry.response_data)
            if cached is not None:
                return cached
            logger.warning("Discarding malformed cached prediction %s", key)

        prediction = self.estimate(task_type, input_size, config)
        await self._cache.set(key, dataclasses.asdict(prediction), None, self._cache_ttl, self._cache_version)
        return prediction

    def estimate(self, task_type: str, input_size: int, config: ApiConfig) -> CostQualityPrediction:
        """Compute a prediction from the static tables, without caching."""
        input_tokens, output_tokens = estimate_tokens(input_size, config.max_tokens)

        rates = MODEL_COSTS.get(config.model, MODEL_COSTS[DEFAULT_MODEL])
        cost = input_tokens / 1000 * rates["input"] + output_tokens / 1000 * rates["output"]

        quality = MODEL_QUALITY.get(config.model, DEFAULT_QUALITY)
        if is_structured_task(task_type):
            if config.temperature <= 0.1:
                quality += 0.1
            elif config.temperature > 0.5:
                quality -= 0.1
        quality = max(0.0, min(1.0, quality))

        base_latency, per_token = MODEL_LATENCY.get(config.model, (DEFAULT_LATENCY_MS, 0.0))
        latency = base_latency + output_tokens * per_token

        if cost > AVOID_COST:
            recommendation = "avoid"
        elif cost > OPTIMIZE_COST and quality < OPTIMIZE_QUALITY:
            recommendation = "optimize"
        else:
            recommendation = "use"

        return CostQualityPrediction(
            estimated_cost=cost,
            estimated_quality=quality,
            estimated_latency=latency,
            confidence=0.8,
            recommendation=recommendation,
            reasoning=f"Model: {config.model}, Cost: ${cost:.4f}, Quality: {quality * 100:.0f}%",
        )

    async def recommended_model(self, task_type: str, hours: int = 24) -> str:
        """Pick a model for a task from recent telemetry.

        Among the task's metrics windows whose endpoint names a known model,
        the best base quality per millisecond of average latency wins. Falls
        back to the static task table when there is no usable telemetry.

        Args:
            task_type: Task identifier, matched against the windows' feature name
            hours: Size of the look-back window

        Returns:
            Model identifier
        """
        if self._telemetry is not None:
            windows = await self._telemetry.get_metrics(hours=hours, provider_type=PREDICTION_PROVIDER)
            best_model, best_score = None, -1.0
            for window in windows:
                model = model_from_endpoint(window.endpoint)
                if window.feature_name != task_type or model is None or window.avg_latency_ms <= 0:
                    continue
                score = MODEL_QUALITY.get(model, DEFAULT_QUALITY) / window.avg_latency_ms
                if score > best_score:
                    best_model, best_score = model, score
            if best_model is not None:
                return best_model

        task = TASK_MODELS.get(task_type)
        return task["recommended"][0] if task else DEFAULT_MODEL

    async def optimize_api_config(
        self,
        task_type: str,
        input_size: int,
        quality_requirement: float = 0.8,
        max_cost: float | None = None,
    ) -> ConfigOptimization:
        """Search cheaper variants of a task's default configuration.

        Candidates are the task's recommended model, its fallback model, and
        both again with a 1000 token output limit. The cheapest candidate that
        meets the constraints and stays within 0.1 quality of the current best
        replaces it.

        Args:
            task_type: Task identifier
            input_size: Prompt size in characters
            quality_requirement: Minimum acceptable quality (0-1)
            max_cost: Cost ceiling in USD per call

        Returns:
            ConfigOptimization with percentage impacts and an adopt/test/reject verdict
        """
        task = TASK_MODELS.get(task_type, TASK_MODELS["event_extraction"])
        original = ApiConfig(model=task["recommended"][0], temperature=0.1, max_tokens=2000)
        candidates = [
            original,
            dataclasses.replace(original, model=task["fallback"]),
            dataclasses.replace(original, max_tokens=1000),
            dataclasses.replace(original, model=task["fallback"], max_tokens=1000),
        ]
        evaluations = [(config, await self.predict(task_type, input_size, config)) for config in candidates]

        best_config, best = evaluations[0]
        for config, prediction in evaluations:
            if prediction.estimated_quality < quality_requirement:
                continue
            if max_cost and prediction.estimated_cost > max_cost:
                continue
            if (
                prediction.estimated_cost < best.estimated_cost
                and abs(prediction.estimated_quality - best.estimated_quality) < 0.1
            ):
                best_config, best = config, prediction

        baseline = evaluations[0][1]
        cost_savings = _percent_change(baseline.estimated_cost, best.estimated_cost, invert=True)
        quality_impact = _percent_change(baseline.estimated_quality, best.estimated_quality)
        latency_impact = _percent_change(baseline.estimated_latency, best.estimated_latency)

        if cost_savings > 20 and quality_impact > -5:
            verdict = "adopt"
        elif cost_savings < 5 or quality_impact < -10:
            verdict = "reject"
        else:
            verdict = "test"

        return ConfigOptimization(
            original_config=original,
            optimized_config=best_config,
            cost_savings=cost_savings,
            quality_impact=quality_impact,
            latency_impact=latency_impact,
            recommendation=verdict,
        )

    @staticmethod
    def _prediction_key(task_type: str, input_size: int, config: ApiConfig) -> str:
        return (
            f"{PREDICTION_PROVIDER}:{PREDICTION_ENDPOINT}:{task_type}:{config.model}:"
            f"{config.temperature}:{config.max_tokens}:{config.response_format or 'text'}:{input_size}"
        )


def _percent_change(before: float, after: float, invert: bool = False) -> float:
    if before == 0:
        return 0.0
    change = (after - before) / before * 100
    return -change if invert else change


def _prediction_from_dict(data: Any) -> CostQualityPrediction | None:
    if not isinstance(data, dict):
        return None
    try:
        return CostQualityPrediction(**data)
    except TypeError:
        return None
