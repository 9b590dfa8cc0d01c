"""
Distribution estimates for featuremath.

Histograms with equal-width bins and Gaussian kernel density estimates
for a single feature vector.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from featuremath.errors import InvalidInput

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_BINS = 20
DEFAULT_KDE_POINTS = 100

# Padding either side of the data range, as a fraction of the range
KDE_PADDING = 0.1

# Lower bound for the Silverman bandwidth (constant input has sigma = 0)
MIN_BANDWIDTH = 1e-10


@dataclass
class HistogramBin:
    """One bin of a histogram; covers [lower_bound, upper_bound)."""

    lower_bound: float
    upper_bound: float
    count: int
    frequency: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _as_finite_array(values: Sequence[float]) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    if values.ndim != 1:
        raise InvalidInput(f"Expected a 1-dimensional vector, got shape {values.shape}")
    if not np.all(np.isfinite(values)):
        raise InvalidInput('Values must be finite')
    return values


def histogram(values: Sequence[float],
              num_bins: int = DEFAULT_BINS,
              value_range: Optional[Tuple[float, float]] = None) -> List[HistogramBin]:
    """
    Bin values into equal-width bins.

    Bin ``i`` spans ``[min + i*width, min + (i+1)*width)``; a value equal to
    the upper end of the range goes into the last bin. With an explicit
    ``value_range`` (e.g. the full dataset's range when binning a
    selection), values outside it are not counted. Frequencies are
    relative to the total number of values.

    Args:
        values: Values to bin
        num_bins: Number of bins
        value_range: Optional (min, max) to bin against

    Returns:
        ``num_bins`` bins, or an empty list for empty input

    Raises:
        InvalidInput: If num_bins < 1, the range is inverted, or values aren't finite
    """
    if num_bins < 1:
        raise InvalidInput(f"num_bins must be at least 1, got {num_bins}")

    values = _as_finite_array(values)
    if len(values) == 0:
        return []

    if value_range is not None:
        lo, hi = float(value_range[0]), float(value_range[1])
        if hi < lo:
            raise InvalidInput(f"Invalid range: ({lo}, {hi})")
    else:
        lo, hi = float(np.min(values)), float(np.max(values))

    bin_width = (hi - lo) / num_bins
    in_range = (values >= lo) & (values <= hi)

    if bin_width > 0:
        indices = np.floor((values[in_range] - lo) / bin_width).astype(int)
        # Values at the upper end of the range land one past the last bin
        indices = np.minimum(indices, num_bins - 1)
    else:
        # Degenerate range: everything in range equals lo
        indices = np.zeros(int(np.sum(in_range)), dtype=int)

    counts = np.bincount(indices, minlength=num_bins)
    total = len(values)

    excluded = total - int(np.sum(in_range))
    if excluded:
        logger.debug(f"{excluded} of {total} values fall outside ({lo}, {hi})")

    return [
        HistogramBin(
            lower_bound=lo + i * bin_width,
            upper_bound=lo + (i + 1) * bin_width,
            count=int(counts[i]),
            frequency=float(counts[i]) / total,
        )
        for i in range(num_bins)
    ]


def silverman_bandwidth(values: Sequence[float]) -> float:
    """
    Silverman's rule of thumb, ``1.06 * sigma * n^(-1/5)``.

    Uses the population standard deviation and never returns less than
    MIN_BANDWIDTH.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n == 0:
        return MIN_BANDWIDTH
    std = float(np.sqrt(np.mean((values - np.mean(values)) ** 2)))
    return max(1.06 * std * n ** -0.2, MIN_BANDWIDTH)


def kernel_density_estimate(values: Sequence[float],
                            bandwidth: Optional[float] = None,
                            n_points: int = DEFAULT_KDE_POINTS) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gaussian kernel density estimate.

    The density is sampled at ``n_points`` evenly spaced points covering the
    data range padded by 10% on each side.

    Args:
        values: Sample values
        bandwidth: Kernel width (default: Silverman's rule)
        n_points: Number of evaluation points

    Returns:
        Tuple of (x, y) arrays; both empty for empty input

    Raises:
        InvalidInput: If bandwidth is not positive, n_points < 1, or values aren't finite
    """
    if n_points < 1:
        raise InvalidInput(f"n_points must be at least 1, got {n_points}")
    if bandwidth is not None and not bandwidth > 0:
        raise InvalidInput(f"Bandwidth must be positive, got {bandwidth}")

    values = _as_finite_array(values)
    n = len(values)
    if n == 0:
        return np.array([]), np.array([])

    lo = float(np.min(values))
    hi = float(np.max(values))
    padding = (hi - lo) * KDE_PADDING

    h = bandwidth if bandwidth is not None else silverman_bandwidth(values)

    x = np.linspace(lo - padding, hi + padding, n_points)
    u = (x[:, np.newaxis] - values[np.newaxis, :]) / h
    kernel = np.exp(-0.5 * u * u) / math.sqrt(2 * math.pi)
    y = kernel.sum(axis=1) / (n * h)

    return x, y
