"""
featuremath package for numerical feature analysis.

Dataset statistics, feature correlation, distribution estimates,
normalization with custom expressions, and PCA by power iteration.
"""

__version__ = '0.1.0'

from featuremath.errors import (
    FeatureMathError, InvalidInput, DimensionMismatch, ExpressionError, NotInvertibleError
)
from featuremath.components.config import Config, ConfigManager
