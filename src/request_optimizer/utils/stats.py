"""Numeric helpers shared by the telemetry and optimization services."""

import math
from collections.abc import Sequence

import numpy as np


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile.

    Sorts ascending and picks index ``ceil(p / 100 * n) - 1`` clamped to the
    valid range.

    Args:
        values: Observations
        p: Percentile in [0, 100]

    Returns:
        The percentile value, or 0.0 for empty input
    """
    if len(values) == 0:
        return 0.0

    ordered = np.sort(np.asarray(values, dtype=float))
    index = math.ceil(p / 100 * len(ordered)) - 1
    index = min(max(0, index), len(ordered) - 1)
    return float(ordered[index])


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation coefficient of two equally long series.

    Returns 0.0 for mismatched or empty input and whenever either series has
    zero variance.
    """
    if len(x) != len(y) or len(x) == 0:
        return 0.0

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    dx = xs - xs.mean()
    dy = ys - ys.mean()

    denominator = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denominator == 0:
        return 0.0
    return float(np.clip(np.sum(dx * dy) / denominator, -1.0, 1.0))
