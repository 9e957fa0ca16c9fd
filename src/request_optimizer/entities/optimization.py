"""Multi-objective optimization entities."""

from dataclasses import dataclass, field

from .prediction import ApiConfig


@dataclass(frozen=True)
class Objective:
    """One optimization objective.

    Attributes:
        name: Objective name (cost, quality or latency)
        weight: Importance weight (0-1)
        minimize: True to minimize, False to maximize
        target_value: Optional value a solution should reach
    """

    name: str
    weight: float = 1.0
    minimize: bool = False
    target_value: float | None = None


@dataclass(frozen=True)
class Solution:
    """A candidate configuration evaluated against the objectives."""

    config: ApiConfig
    objectives: dict[str, float] = field(default_factory=dict)
    score: float = 0.0
    dominated: bool = False
    meets_targets: bool = True


@dataclass(frozen=True)
class TradeOffAnalysis:
    """Correlation between two objectives across all solutions."""

    objective_a: str
    objective_b: str
    correlation: float
    relationship: str
    description: str


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of one optimization run."""

    solutions: list[Solution]
    pareto_front: list[Solution]
    recommended: Solution | None
    trade_off_analysis: list[TradeOffAnalysis]
