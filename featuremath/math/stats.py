"""
Descriptive statistics for featuremath.

This module computes the per-column summary statistics that the
normalization pipeline and the expression evaluator are bound to.
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Sequence

import numpy as np

from featuremath.errors import InvalidInput
from featuremath.math.named_matrix import FeatureMatrix


@dataclass(frozen=True)
class ColumnStats:
    """
    Summary statistics of one raw column.

    ``std`` is the population standard deviation. The quartiles use linear
    interpolation between order statistics.
    """

    min: float
    max: float
    mean: float
    std: float
    q1: float = 0.0
    median: float = 0.0
    q3: float = 0.0
    count: int = 0

    @property
    def range(self) -> float:
        return self.max - self.min

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


EMPTY_STATS = ColumnStats(min=0.0, max=0.0, mean=0.0, std=0.0)


def quantile(sorted_values: np.ndarray, p: float) -> float:
    """
    Get a quantile from sorted values using linear interpolation.

    Args:
        sorted_values: Values sorted in ascending order
        p: Quantile in [0, 1]

    Returns:
        Interpolated quantile (0 for empty input)
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_values[0])

    index = p * (n - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    weight = index - lower

    if lower == upper:
        return float(sorted_values[lower])
    return float(sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight)


def compute_stats(values: Sequence[float]) -> ColumnStats:
    """
    Compute statistics for a single column.

    Args:
        values: Raw column values

    Returns:
        ColumnStats for the column; all zeros with count 0 for empty input

    Raises:
        InvalidInput: If any value is NaN or infinite
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n == 0:
        return EMPTY_STATS
    if not np.all(np.isfinite(values)):
        raise InvalidInput("Column values must be finite")

    sorted_values = np.sort(values)
    mean = float(np.mean(values))
    # Population variance
    std = float(np.sqrt(np.mean((values - mean) ** 2)))

    return ColumnStats(
        min=float(sorted_values[0]),
        max=float(sorted_values[-1]),
        mean=mean,
        std=std,
        q1=quantile(sorted_values, 0.25),
        median=quantile(sorted_values, 0.5),
        q3=quantile(sorted_values, 0.75),
        count=n,
    )


def calculate_stats(fmat: FeatureMatrix) -> Dict[Any, ColumnStats]:
    """
    Compute statistics for every column of a feature matrix.

    Args:
        fmat: FeatureMatrix of raw values

    Returns:
        Dictionary of feature name -> ColumnStats, in column order
    """
    return {name: compute_stats(values) for name, values in fmat.vectors()}
