"""Multi-objective optimization over completion configurations.

Scores candidate configurations by a weighted sum of normalized objectives
(cost, quality, latency), finds the Pareto front and reports how the
objectives trade off against each other.
"""

import logging
from collections.abc import Sequence

from request_optimizer.entities import ApiConfig, Objective, OptimizationResult, Solution, TradeOffAnalysis
from request_optimizer.utils import pearson_correlation

from .cost_quality import CostQualityPredictor

logger = logging.getLogger(__name__)

MAX_EXPECTED_COST = 0.1  # USD
MAX_EXPECTED_LATENCY = 5000.0  # ms
CORRELATION_THRESHOLD = 0.7

DEFAULT_CANDIDATES: tuple[ApiConfig, ...] = (
    ApiConfig(model="gpt-4o", temperature=0.1, max_tokens=2000),
    ApiConfig(model="gpt-4o-mini", temperature=0.1, max_tokens=2000),
    ApiConfig(model="gpt-4o-mini", temperature=0.1, max_tokens=1000),
    ApiConfig(model="gpt-4o", temperature=0.2, max_tokens=1500),
)


def normalize(name: str, value: float) -> float:
    """Map a raw objective value into [0, 1]."""
    if name == "cost":
        value = value / MAX_EXPECTED_COST
    elif name == "latency":
        value = value / MAX_EXPECTED_LATENCY
    return max(0.0, min(1.0, value))


def dominates(a: dict[str, float], b: dict[str, float], objectives: Sequence[Objective]) -> bool:
    """True if ``a`` is at least as good as ``b`` everywhere and strictly better somewhere."""
    strictly_better = False
    for objective in objectives:
        a_value = a.get(objective.name, 0.0)
        b_value = b.get(objective.name, 0.0)
        if objective.minimize:
            a_value, b_value = -a_value, -b_value
        if a_value < b_value:
            return False
        if a_value > b_value:
            strictly_better = True
    return strictly_better


class MultiObjectiveOptimizer:
    """Weighted-sum and Pareto optimizer for completion configurations.

    Example:
        ```python
        optimizer = MultiObjectiveOptimizer(predictor)
        result = await optimizer.optimize(
            [Objective("cost", weight=0.5, minimize=True), Objective("quality", weight=0.5)],
            task_type="event_extraction",
            input_size=4000,
        )
        print(result.recommended.config)
        ```
    """

    def __init__(self, predictor: CostQualityPredictor) -> None:
        self._predictor = predictor

    async def optimize(
        self,
        objectives: Sequence[Objective],
        task_type: str,
        input_size: int,
        candidates: Sequence[ApiConfig] | None = None,
    ) -> OptimizationResult:
        """Evaluate candidates with the cost/quality predictor and rank them.

        Args:
            objectives: Objectives to optimize
            task_type: Task identifier passed to the predictor
            input_size: Prompt size in characters
            candidates: Configurations to compare. Defaults to ``DEFAULT_CANDIDATES``.

        Returns:
            OptimizationResult
        """
        evaluated = []
        for config in candidates if candidates is not None else DEFAULT_CANDIDATES:
            prediction = await self._predictor.predict(task_type, input_size, config)
            evaluated.append(
                (
                    config,
                    {
                        "cost": prediction.estimated_cost,
                        "quality": prediction.estimated_quality,
                        "latency": prediction.estimated_latency,
                    },
                )
            )
        return self.rank(objectives, evaluated)

    def rank(
        self,
        objectives: Sequence[Objective],
        evaluated: Sequence[tuple[ApiConfig, dict[str, float]]],
    ) -> OptimizationResult:
        """Score, sort and Pareto-filter already evaluated configurations.

        Args:
            objectives: Objectives to optimize
            evaluated: (config, raw objective values) pairs

        Returns:
            OptimizationResult with solutions sorted by score, best first
        """
        objectives = [_clamped(objective) for objective in objectives]
        values = [dict(raw) for _, raw in evaluated]

        solutions = []
        for index, ((config, _), raw) in enumerate(zip(evaluated, values)):
            dominated = any(
                dominates(other, raw, objectives) for other_index, other in enumerate(values) if other_index != index
            )
            solutions.append(
                Solution(
                    config=config,
                    objectives=raw,
                    score=self._score(objectives, raw),
                    dominated=dominated,
                    meets_targets=_meets_targets(objectives, raw),
                )
            )

        solutions.sort(key=lambda solution: solution.score, reverse=True)
        pareto_front = [solution for solution in solutions if not solution.dominated]

        return OptimizationResult(
            solutions=solutions,
            pareto_front=pareto_front,
            recommended=solutions[0] if solutions else None,
            trade_off_analysis=self.analyze_trade_offs(solutions, objectives),
        )

    async def recommended_config(
        self,
        objectives: Sequence[Objective],
        task_type: str,
        input_size: int,
    ) -> ApiConfig | None:
        """Best default candidate for the given objectives, or None."""
        result = await self.optimize(objectives, task_type, input_size)
        return result.recommended.config if result.recommended else None

    @staticmethod
    def analyze_trade_offs(solutions: Sequence[Solution], objectives: Sequence[Objective]) -> list[TradeOffAnalysis]:
        """Correlate every pair of objectives across the solutions."""
        analysis = []
        for i, objective_a in enumerate(objectives):
            for objective_b in objectives[i + 1 :]:
                a, b = objective_a.name, objective_b.name
                correlation = pearson_correlation(
                    [solution.objectives.get(a, 0.0) for solution in solutions],
                    [solution.objectives.get(b, 0.0) for solution in solutions],
                )
                if correlation > CORRELATION_THRESHOLD:
                    relationship = "positively correlated"
                    description = f"{a} and {b} are positively correlated - improving one improves the other"
                elif correlation < -CORRELATION_THRESHOLD:
                    relationship = "negatively correlated"
                    description = f"{a} and {b} are negatively correlated - improving one degrades the other"
                else:
                    relationship = "weakly correlated"
                    description = f"{a} and {b} are weakly correlated - can be optimized independently"
                analysis.append(
                    TradeOffAnalysis(
                        objective_a=a,
                        objective_b=b,
                        correlation=correlation,
                        relationship=relationship,
                        description=description,
                    )
                )
        return analysis

    @staticmethod
    def _score(objectives: Sequence[Objective], values: dict[str, float]) -> float:
        score = 0.0
        for objective in objectives:
            value = normalize(objective.name, values.get(objective.name, 0.0))
            if objective.minimize:
                value = 1 - value
            score += value * objective.weight
        return score


def _clamped(objective: Objective) -> Objective:
    weight = max(0.0, min(1.0, objective.weight))
    if weight == objective.weight:
        return objective
    return Objective(objective.name, weight, objective.minimize, objective.target_value)


def _meets_targets(objectives: Sequence[Objective], values: dict[str, float]) -> bool:
    for objective in objectives:
        if objective.target_value is None:
            continue
        value = values.get(objective.name, 0.0)
        if objective.minimize and value > objective.target_value:
            return False
        if not objective.minimize and value < objective.target_value:
            return False
    return True
