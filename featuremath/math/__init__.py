"""
Core numerical algorithms for featuremath.

This module contains implementations of:
- Descriptive column statistics
- Pearson correlation matrices
- Histograms and kernel density estimates
- Feature normalization with custom expressions
- Principal Component Analysis (PCA) by power iteration
"""

from featuremath.math.named_matrix import FeatureMatrix
from featuremath.math.stats import ColumnStats, compute_stats, calculate_stats
from featuremath.math.corr import CorrelationMatrix, pearson, correlation_matrix, compute_correlation
from featuremath.math.distribution import HistogramBin, histogram, kernel_density_estimate
from featuremath.math.normalization import (
    TransformType, NormalizationSpec, GlobalNormalization, PerFeatureNormalization,
    NormalizationPipeline, normalize, denormalize
)
from featuremath.math.expression import evaluate_custom_transform, validate_custom_transform
from featuremath.math.pca import PCAModel, PCAResult, fit_pca, project, reconstruct

__all__ = [
    'FeatureMatrix',
    'ColumnStats',
    'compute_stats',
    'calculate_stats',
    'CorrelationMatrix',
    'pearson',
    'correlation_matrix',
    'compute_correlation',
    'HistogramBin',
    'histogram',
    'kernel_density_estimate',
    'TransformType',
    'NormalizationSpec',
    'GlobalNormalization',
    'PerFeatureNormalization',
    'NormalizationPipeline',
    'normalize',
    'denormalize',
    'evaluate_custom_transform',
    'validate_custom_transform',
    'PCAModel',
    'PCAResult',
    'fit_pca',
    'project',
    'reconstruct',
]
