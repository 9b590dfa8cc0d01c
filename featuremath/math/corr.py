"""
Correlation analysis for featuremath.

This module provides Pearson correlation between feature vectors, the
pairwise correlation matrix over any subset of features, and a
hierarchical ordering that places strongly correlated features next to
each other.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import scipy.cluster.hierarchy as hcluster
from scipy.spatial.distance import squareform

from featuremath.errors import InvalidInput
from featuremath.math.named_matrix import FeatureMatrix

# Set up logging
logger = logging.getLogger(__name__)


@dataclass
class CorrelationMatrix:
    """
    Square correlation matrix with its feature labels.

    ``matrix[i][j]`` is the correlation between ``labels[i]`` and ``labels[j]``.
    """

    matrix: np.ndarray
    labels: List[Any]

    def get(self, a: Any, b: Any) -> float:
        return float(self.matrix[self.labels.index(a), self.labels.index(b)])

    def reordered(self, order: Sequence[int]) -> 'CorrelationMatrix':
        """Return the matrix with rows and columns permuted by ``order``."""
        return CorrelationMatrix(
            matrix=blockify_correlation_matrix(self.matrix, order),
            labels=[self.labels[i] for i in order],
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix, index=self.labels, columns=self.labels)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'matrix': self.matrix.tolist(),
            'labels': list(self.labels),
        }


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Compute the Pearson correlation coefficient between two vectors.

    Sums are accumulated in vector order so the result is reproducible
    bit for bit.

    Args:
        x: First vector
        y: Second vector

    Returns:
        Correlation in [-1, 1]; 0 if either vector has zero variance

    Raises:
        InvalidInput: If the vectors are empty, differ in length, or hold
            non-finite values
    """
    if len(x) != len(y) or len(x) == 0:
        raise InvalidInput('Arrays must have the same non-zero length')

    xs = [float(v) for v in x]
    ys = [float(v) for v in y]
    if not all(math.isfinite(v) for v in xs + ys):
        raise InvalidInput('Correlation input must be finite')
    n = len(xs)

    mean_x = sum(xs) / n
    mean_y = sum(ys) / n

    sum_xy = 0.0
    sum_x2 = 0.0
    sum_y2 = 0.0
    for xi, yi in zip(xs, ys):
        dx = xi - mean_x
        dy = yi - mean_y
        sum_xy += dx * dy
        sum_x2 += dx * dx
        sum_y2 += dy * dy

    denominator = np.sqrt(sum_x2 * sum_y2)
    if denominator == 0:
        return 0.0

    # Rounding can push |r| a hair past 1
    return float(min(1.0, max(-1.0, sum_xy / denominator)))


def correlation_matrix(vectors: Sequence[Sequence[float]],
                       labels: Optional[Sequence[Any]] = None) -> CorrelationMatrix:
    """
    Compute the pairwise correlation matrix of feature vectors.

    Each unordered pair is computed once and mirrored; the diagonal is 1.

    Args:
        vectors: Feature vectors, all of the same non-zero length
        labels: Names for the vectors (defaults to their positions)

    Returns:
        CorrelationMatrix

    Raises:
        InvalidInput: If there are no vectors, lengths differ, labels don't match,
            or any value is non-finite
    """
    if len(vectors) == 0:
        raise InvalidInput('At least one vector is required')

    n_samples = len(vectors[0])
    if n_samples == 0 or any(len(v) != n_samples for v in vectors):
        raise InvalidInput('Vectors must have the same non-zero length')

    k = len(vectors)
    if labels is None:
        labels = list(range(k))
    elif len(labels) != k:
        raise InvalidInput(f"Got {len(labels)} labels for {k} vectors")

    if not all(np.all(np.isfinite(np.asarray(v, dtype=float))) for v in vectors):
        raise InvalidInput('Correlation input must be finite')

    matrix = np.zeros((k, k))
    for i in range(k):
        matrix[i, i] = 1.0
        for j in range(i + 1, k):
            corr = pearson(vectors[i], vectors[j])
            matrix[i, j] = corr
            matrix[j, i] = corr

    return CorrelationMatrix(matrix=matrix, labels=list(labels))


def compute_correlation(fmat: FeatureMatrix,
                        features: Optional[Sequence[Any]] = None) -> CorrelationMatrix:
    """
    Compute the correlation matrix for features of a FeatureMatrix.

    Args:
        fmat: FeatureMatrix holding the vectors
        features: Subset of feature names, in the desired order (default: all)

    Returns:
        CorrelationMatrix labelled with the feature names
    """
    if features is not None:
        fmat = fmat.colname_subset(features)
    names = fmat.colnames()
    logger.debug(f"Computing correlation over {len(names)} features, {fmat.n_samples} samples")
    return correlation_matrix([fmat.get_col_by_name(name) for name in names], labels=names)


def hierarchical_order(corr: CorrelationMatrix, method: str = 'average') -> List[int]:
    """
    Order features so that strongly correlated ones are adjacent.

    Uses hierarchical clustering on the distance ``1 - |r|``.

    Args:
        corr: Correlation matrix
        method: Linkage method ('single', 'complete', 'average', 'weighted')

    Returns:
        Permutation of feature positions
    """
    k = len(corr.labels)
    if k < 3:
        return list(range(k))

    distances = 1.0 - np.abs(corr.matrix)
    np.fill_diagonal(distances, 0.0)
    # Guard against tiny asymmetries and negative rounding
    distances = np.clip((distances + distances.T) / 2.0, 0.0, None)

    linkage = hcluster.linkage(squareform(distances, checks=False), method=method)
    return hcluster.leaves_list(linkage).tolist()


def blockify_correlation_matrix(corr_matrix: np.ndarray,
                                row_order: Sequence[int],
                                col_order: Optional[Sequence[int]] = None) -> np.ndarray:
    """
    Reorder a correlation matrix.

    Args:
        corr_matrix: Correlation matrix to reorder
        row_order: Row indices in desired order
        col_order: Column indices in desired order (defaults to row_order)

    Returns:
        Reordered correlation matrix
    """
    if col_order is None:
        col_order = row_order

    reordered = corr_matrix[list(row_order), :]
    return reordered[:, list(col_order)]
