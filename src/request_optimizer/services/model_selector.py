"""Model selection for completion tasks.

Starts from the model recent telemetry favours for a task and moves up to
the highest-quality model, or down to the cheapest one, when the baseline's
prediction misses the caller's requirements.
"""

import dataclasses
import logging
import math

from request_optimizer.entities import ApiConfig, ModelSelection, TaskRequirements

from .cost_quality import MODEL_COSTS, MODEL_QUALITY, CostQualityPredictor, is_structured_task

logger = logging.getLogger(__name__)

UPGRADE_MODEL = max(MODEL_QUALITY, key=MODEL_QUALITY.__getitem__)
DOWNGRADE_MODEL = min(MODEL_COSTS, key=lambda model: MODEL_COSTS[model]["input"] + MODEL_COSTS[model]["output"])

# A downgrade may give up this share of the quality requirement
DOWNGRADE_QUALITY_TOLERANCE = 0.9


class ModelSelector:
    """Selects a completion configuration that satisfies task requirements.

    Example:
        ```python
        selector = ModelSelector(predictor)
        selection = await selector.select_model(
            TaskRequirements(task_type="event_extraction", input_size=4000, max_latency=2000)
        )
        print(selection.config.model, selection.reasoning)
        ```
    """

    def __init__(self, predictor: CostQualityPredictor) -> None:
        self._predictor = predictor

    async def baseline_config(self, requirements: TaskRequirements) -> ApiConfig:
        """Build the starting configuration for a task.

        Uses ``requirements.baseline`` when given; otherwise the recommended
        model at temperature 0.1, with the output limit derived from the
        expected output length and JSON output for extraction tasks.
        """
        if requirements.baseline is not None:
            return requirements.baseline

        model = await self._predictor.recommended_model(requirements.task_type)
        return ApiConfig(
            model=model,
            temperature=0.1,
            max_tokens=max(1, math.ceil(requirements.expected_output_length / 4)),
            response_format="json_object" if is_structured_task(requirements.task_type) else None,
        )

    async def select_model(self, requirements: TaskRequirements) -> ModelSelection:
        """Select a configuration for a task.

        Business logic:
        1. Build the baseline configuration
        2. Predict its cost, quality and latency
        3. Quality below the requirement: try the highest-quality model
        4. Otherwise, a ceiling exceeded: try the cheapest model, accepted only
           if it meets every ceiling and 90% of the quality requirement
        5. Otherwise keep the baseline

        Args:
            requirements: Task type, input size, quality floor and ceilings

        Returns:
            ModelSelection; confidence 0.9 after an upgrade, 0.85 after a
            downgrade and 0.8 for the baseline
        """
        task_type = requirements.task_type
        input_size = requirements.input_size
        quality_floor = requirements.quality_requirement
        max_latency = requirements.max_latency
        max_cost = requirements.max_cost

        config = await self.baseline_config(requirements)
        prediction = await self._predictor.predict(task_type, input_size, config)

        attempt = None
        if quality_floor and prediction.estimated_quality < quality_floor:
            if config.model == UPGRADE_MODEL:
                attempt = (
                    f"already on highest-quality model {UPGRADE_MODEL}, predicted quality "
                    f"{prediction.estimated_quality * 100:.0f}% is below the {quality_floor * 100:.0f}% requirement"
                )
            else:
                upgraded = dataclasses.replace(config, model=UPGRADE_MODEL)
                upgraded_prediction = await self._predictor.predict(task_type, input_size, upgraded)
                if upgraded_prediction.estimated_quality >= quality_floor:
                    return ModelSelection(
                        config=upgraded,
                        reasoning=(
                            f"Upgraded to {UPGRADE_MODEL} to meet quality requirement "
                            f"({upgraded_prediction.estimated_quality * 100:.0f}%)"
                        ),
                        confidence=0.9,
                    )
                attempt = (
                    f"upgrade to {UPGRADE_MODEL} attempted, predicted quality "
                    f"{upgraded_prediction.estimated_quality * 100:.0f}% is below the "
                    f"{quality_floor * 100:.0f}% requirement"
                )
        elif _exceeds(prediction.estimated_latency, max_latency) or _exceeds(prediction.estimated_cost, max_cost):
            if config.model == DOWNGRADE_MODEL:
                attempt = f"already on cheapest model {DOWNGRADE_MODEL}, ceilings cannot be met"
            else:
                downgraded = dataclasses.replace(config, model=DOWNGRADE_MODEL)
                downgraded_prediction = await self._predictor.predict(task_type, input_size, downgraded)
                if (
                    not _exceeds(downgraded_prediction.estimated_latency, max_latency)
                    and not _exceeds(downgraded_prediction.estimated_cost, max_cost)
                    and (
                        not quality_floor
                        or downgraded_prediction.estimated_quality >= quality_floor * DOWNGRADE_QUALITY_TOLERANCE
                    )
                ):
                    return ModelSelection(
                        config=downgraded,
                        reasoning=(
                            f"Switched to {DOWNGRADE_MODEL} for better latency/cost "
                            f"({downgraded_prediction.estimated_latency:.0f}ms, "
                            f"${downgraded_prediction.estimated_cost:.4f})"
                        ),
                        confidence=0.85,
                    )
                attempt = f"downgrade to {DOWNGRADE_MODEL} attempted but it misses the ceilings or quality floor"

        reasoning = f"Selected {config.model} based on task requirements and historical performance"
        if attempt:
            logger.debug("Keeping baseline %s for %s: %s", config.model, task_type, attempt)
            reasoning = f"{reasoning}; {attempt}"
        elif quality_floor:
            reasoning = (
                f"{reasoning}; predicted quality {prediction.estimated_quality * 100:.0f}% meets the "
                f"{quality_floor * 100:.0f}% requirement"
            )
        return ModelSelection(config=config, reasoning=reasoning, confidence=0.8)

    async def select_for_batch(self, task_type: str, input_size: int) -> ModelSelection:
        """Cost-oriented selection for batch processing."""
        return await self.select_model(
            TaskRequirements(task_type=task_type, input_size=input_size, quality_requirement=0.75, max_cost=0.01)
        )

    async def select_for_realtime(self, task_type: str, input_size: int) -> ModelSelection:
        """Latency-oriented selection (2 second ceiling)."""
        return await self.select_model(
            TaskRequirements(task_type=task_type, input_size=input_size, quality_requirement=0.8, max_latency=2000)
        )

    async def select_for_high_quality(self, task_type: str, input_size: int) -> ModelSelection:
        return await self.select_model(
            TaskRequirements(task_type=task_type, input_size=input_size, quality_requirement=0.9)
        )


def _exceeds(value: float, ceiling: float | None) -> bool:
    return ceiling is not None and value > ceiling
