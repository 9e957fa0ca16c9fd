"""Provider configuration, prediction and model selection entities."""

from dataclasses import dataclass
from typing import Literal

Recommendation = Literal["use", "optimize", "avoid"]


@dataclass(frozen=True)
class ApiConfig:
    """Completion provider configuration for one call."""

    model: str
    temperature: float = 0.1
    max_tokens: int = 2000
    response_format: Literal["text", "json_object"] | None = None


@dataclass(frozen=True)
class CostQualityPrediction:
    """Predicted cost/quality/latency of a hypothetical call.

    Attributes:
        estimated_cost: Cost in USD
        estimated_quality: Quality score (0-1)
        estimated_latency: Latency in milliseconds
        confidence: Confidence in the estimate (0-1)
        recommendation: use, optimize or avoid
        reasoning: One-line explanation
    """

    estimated_cost: float
    estimated_quality: float
    estimated_latency: float
    confidence: float
    recommendation: Recommendation
    reasoning: str = ""


@dataclass(frozen=True)
class ConfigOptimization:
    """Outcome of searching cheaper variants of a task's default config."""

    original_config: ApiConfig
    optimized_config: ApiConfig
    cost_savings: float
    quality_impact: float
    latency_impact: float
    recommendation: Literal["adopt", "test", "reject"]


@dataclass(frozen=True)
class TaskRequirements:
    """What a caller needs from a completion call.

    Attributes:
        task_type: Task identifier (event_extraction, causal_chain, ...)
        input_size: Prompt size in characters
        quality_requirement: Minimum acceptable quality (0-1)
        max_latency: Latency ceiling in milliseconds
        max_cost: Cost ceiling in USD per call
        expected_output_length: Expected output size in characters
        baseline: Explicit starting configuration (skips the telemetry lookup)
    """

    task_type: str
    input_size: int
    quality_requirement: float = 0.8
    max_latency: float | None = None
    max_cost: float | None = None
    expected_output_length: int = 1000
    baseline: ApiConfig | None = None


@dataclass(frozen=True)
class ModelSelection:
    """A selected configuration and why it was chosen."""

    config: ApiConfig
    reasoning: str
    confidence: float
