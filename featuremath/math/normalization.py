"""
Feature normalization for featuremath.

This module provides the value transforms applied to features before
analysis or model training (none, min-max, z-score and custom
expressions), their inverses, and a pipeline that applies either one
global spec or a spec per feature, plus a separate spec for the target.
"""

import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import numpy as np

from featuremath.errors import InvalidInput, NotInvertibleError
from featuremath.math.expression import evaluate_custom_transform, validate_custom_transform
from featuremath.math.named_matrix import FeatureMatrix
from featuremath.math.stats import ColumnStats, calculate_stats

# Set up logging
logger = logging.getLogger(__name__)


class TransformType(str, Enum):
    NONE = 'none'
    MINMAX = 'minmax'
    ZSCORE = 'zscore'
    CUSTOM = 'custom'


# Known expression -> inverse pairs, compared with whitespace removed
KNOWN_INVERSES: Dict[str, str] = {
    'log(x+1)': 'exp(x)-1',
    'log(x)': 'exp(x)',
    'log10(x+1)': 'pow(10,x)-1',
    'log10(x)': 'pow(10,x)',
    'sqrt(x)': 'pow(x,2)',
    'pow(x,2)': 'sqrt(x)',
    'pow(x,0.5)': 'pow(x,2)',
    '(x-min)/(max-min)': 'x*(max-min)+min',
    '(x-mean)/std': 'x*std+mean',
    'exp(x)': 'log(x)',
}


@dataclass(frozen=True)
class NormalizationSpec:
    """
    How to transform one feature.

    ``expression`` is required for custom specs. Custom transforms are not
    invertible unless ``inverse_expression`` is given.
    """

    type: TransformType = TransformType.NONE
    expression: Optional[str] = None
    inverse_expression: Optional[str] = None

    def __post_init__(self):
        # Accept plain strings for the type
        try:
            object.__setattr__(self, 'type', TransformType(self.type))
        except ValueError:
            raise InvalidInput(f"Unknown transform type: {self.type!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'NormalizationSpec':
        return cls(
            type=data.get('type', TransformType.NONE),
            expression=data.get('expression'),
            inverse_expression=data.get('inverse_expression'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'type': self.type.value}
        if self.expression is not None:
            result['expression'] = self.expression
        if self.inverse_expression is not None:
            result['inverse_expression'] = self.inverse_expression
        return result

    def validate(self) -> Optional[str]:
        """
        Check that a custom spec is usable.

        Returns:
            None if valid, otherwise a user-facing message
        """
        if self.type != TransformType.CUSTOM:
            return None
        error = validate_custom_transform(self.expression or '')
        if error:
            return error
        if self.inverse_expression is not None:
            inverse_error = validate_custom_transform(self.inverse_expression)
            if inverse_error:
                return f"Inverse: {inverse_error}"
        return None


SpecLike = Union[NormalizationSpec, TransformType, str]


def as_spec(spec: SpecLike) -> NormalizationSpec:
    if isinstance(spec, NormalizationSpec):
        return spec
    return NormalizationSpec(type=spec)


@functools.lru_cache(maxsize=256)
def _expression_is_valid(expression: str) -> bool:
    error = validate_custom_transform(expression)
    if error:
        logger.warning(f"Custom transform {expression!r} rejected ({error}); using identity")
        return False
    return True


def normalize(value: float, stats: ColumnStats, spec: SpecLike) -> float:
    """
    Transform a single value.

    Args:
        value: Raw value
        stats: Statistics of the value's column
        spec: NormalizationSpec or transform type

    Returns:
        Transformed value. Zero-range (min-max) and zero-std (z-score)
        columns map to 0. Invalid custom expressions leave the value
        unchanged.
    """
    spec = as_spec(spec)

    if spec.type == TransformType.NONE:
        return value

    if spec.type == TransformType.MINMAX:
        value_range = stats.max - stats.min
        return 0.0 if value_range == 0 else (value - stats.min) / value_range

    if spec.type == TransformType.ZSCORE:
        return 0.0 if stats.std == 0 else (value - stats.mean) / stats.std

    if not spec.expression or not _expression_is_valid(spec.expression):
        return value
    return evaluate_custom_transform(spec.expression, value, stats)


def denormalize(value: float, stats: ColumnStats, spec: SpecLike) -> float:
    """
    Recover a raw value from a transformed one.

    Args:
        value: Transformed value
        stats: Statistics of the raw column
        spec: NormalizationSpec or transform type

    Returns:
        Raw-scale value

    Raises:
        NotInvertibleError: For custom specs without a valid inverse expression
    """
    spec = as_spec(spec)

    if spec.type == TransformType.NONE:
        return value

    if spec.type == TransformType.MINMAX:
        return value * (stats.max - stats.min) + stats.min

    if spec.type == TransformType.ZSCORE:
        return value * stats.std + stats.mean

    if not spec.inverse_expression:
        raise NotInvertibleError(
            f"Custom transform {spec.expression!r} has no inverse expression")
    if not _expression_is_valid(spec.inverse_expression):
        raise NotInvertibleError(
            f"Inverse expression {spec.inverse_expression!r} is not valid")
    return evaluate_custom_transform(spec.inverse_expression, value, stats)


def transform_values(values: Sequence[float], stats: ColumnStats, spec: SpecLike) -> np.ndarray:
    """
    Apply a transform to an array of values.
    """
    spec = as_spec(spec)
    values = np.asarray(values, dtype=float)

    if spec.type == TransformType.NONE:
        return values.copy()

    if spec.type == TransformType.MINMAX:
        value_range = stats.max - stats.min
        if value_range == 0:
            return np.zeros_like(values)
        return (values - stats.min) / value_range

    if spec.type == TransformType.ZSCORE:
        if stats.std == 0:
            return np.zeros_like(values)
        return (values - stats.mean) / stats.std

    return np.array([normalize(v, stats, spec) for v in values], dtype=float)


def inverse_transform_values(values: Sequence[float], stats: ColumnStats, spec: SpecLike) -> np.ndarray:
    """
    Apply an inverse transform to an array of values.
    """
    spec = as_spec(spec)
    values = np.asarray(values, dtype=float)

    if spec.type == TransformType.MINMAX:
        return values * (stats.max - stats.min) + stats.min
    if spec.type == TransformType.ZSCORE:
        return values * stats.std + stats.mean
    return np.array([denormalize(v, stats, spec) for v in values], dtype=float)


def known_inverse(expression: str) -> Optional[str]:
    """
    Get the known inverse for an expression, or None if not known.
    """
    normalized = ''.join(expression.split())
    for expr, inverse in KNOWN_INVERSES.items():
        if normalized == expr:
            return inverse
    return None


def has_inverse(spec: SpecLike) -> bool:
    spec = as_spec(spec)
    if spec.type == TransformType.CUSTOM:
        return bool(spec.inverse_expression)
    return True


def transform_display_name(transform: Union[TransformType, str]) -> str:
    return {
        TransformType.NONE: 'None',
        TransformType.MINMAX: 'Min-Max',
        TransformType.ZSCORE: 'Z-Score',
        TransformType.CUSTOM: 'Custom',
    }[TransformType(transform)]


def transform_suffix(spec: SpecLike) -> str:
    """
    Get the suffix appended to a transformed feature's name.

    Long custom expressions are truncated to 12 characters plus '...'.
    """
    spec = as_spec(spec)
    if spec.type == TransformType.NONE:
        return ''
    if spec.type == TransformType.MINMAX:
        return ' (min-max)'
    if spec.type == TransformType.ZSCORE:
        return ' (z-score)'
    if spec.expression:
        expr = spec.expression
        display_expr = expr[:12] + '...' if len(expr) > 15 else expr
        return f" ({display_expr})"
    return ' (custom)'


@dataclass(frozen=True)
class GlobalNormalization:
    """One spec applied to every feature."""

    spec: NormalizationSpec = field(default_factory=lambda: NormalizationSpec(TransformType.MINMAX))


@dataclass(frozen=True)
class PerFeatureNormalization:
    """A spec per feature; features without an entry use ``default``."""

    specs: Mapping[Any, NormalizationSpec] = field(default_factory=dict)
    default: NormalizationSpec = field(default_factory=NormalizationSpec)


NormalizationConfig = Union[GlobalNormalization, PerFeatureNormalization]


class NormalizationPipeline:
    """
    Applies normalization to a feature matrix.

    The target feature, if named, is always transformed with
    ``target_spec`` regardless of the feature configuration.
    """

    def __init__(self,
                 config: Optional[NormalizationConfig] = None,
                 target_spec: Optional[SpecLike] = None,
                 target: Optional[Any] = None):
        """
        Initialize a pipeline.

        Args:
            config: GlobalNormalization or PerFeatureNormalization (default: global min-max)
            target_spec: Spec for the target feature (default: min-max)
            target: Name of the target feature, if the matrix contains it
        """
        self.config = config if config is not None else GlobalNormalization()
        self.target_spec = as_spec(target_spec if target_spec is not None else TransformType.MINMAX)
        self.target = target

        for spec in self._all_specs():
            error = spec.validate()
            if error:
                logger.warning(f"Normalization spec {spec.to_dict()} is invalid: {error}")

    def _all_specs(self):
        yield self.target_spec
        if isinstance(self.config, GlobalNormalization):
            yield as_spec(self.config.spec)
        else:
            yield as_spec(self.config.default)
            for spec in self.config.specs.values():
                yield as_spec(spec)

    def spec_for(self, feature: Any) -> NormalizationSpec:
        """
        Get the spec used for a feature.
        """
        if self.target is not None and feature == self.target:
            return self.target_spec
        if isinstance(self.config, GlobalNormalization):
            return self.config.spec
        return as_spec(self.config.specs.get(feature, self.config.default))

    def feature_name(self, feature: Any) -> str:
        """Display name of a feature after this pipeline, e.g. 'chord (min-max)'."""
        return f"{feature}{transform_suffix(self.spec_for(feature))}"

    def _column_stats(self, fmat: FeatureMatrix,
                      stats: Optional[Mapping[Any, ColumnStats]]) -> Mapping[Any, ColumnStats]:
        if stats is None:
            return calculate_stats(fmat)
        missing = [name for name in fmat.colnames() if name not in stats]
        if missing:
            raise InvalidInput(f"No statistics for features: {missing}")
        return stats

    def apply(self, fmat: FeatureMatrix,
              stats: Optional[Mapping[Any, ColumnStats]] = None) -> FeatureMatrix:
        """
        Normalize every feature of a matrix.

        Args:
            fmat: Raw feature matrix
            stats: Per-feature statistics of the raw data (computed from fmat if omitted)

        Returns:
            A new FeatureMatrix with the same names
        """
        stats = self._column_stats(fmat, stats)
        columns = [(name, transform_values(values, stats[name], self.spec_for(name)))
                   for name, values in fmat.vectors()]
        return FeatureMatrix.from_vectors(columns)

    def invert(self, fmat: FeatureMatrix,
               stats: Mapping[Any, ColumnStats]) -> FeatureMatrix:
        """
        Undo :meth:`apply` using the raw data statistics.

        Raises:
            NotInvertibleError: If any feature uses a custom spec without an inverse
        """
        stats = self._column_stats(fmat, stats)
        columns = [(name, inverse_transform_values(values, stats[name], self.spec_for(name)))
                   for name, values in fmat.vectors()]
        return FeatureMatrix.from_vectors(columns)

    def normalize_target(self, values: Sequence[float], stats: ColumnStats) -> np.ndarray:
        return transform_values(values, stats, self.target_spec)

    def denormalize_target(self, values: Sequence[float], stats: ColumnStats) -> np.ndarray:
        return inverse_transform_values(values, stats, self.target_spec)
