"""
Error types for featuremath.

Every failure raised by the math modules derives from FeatureMathError,
which is itself a ValueError so callers that only know about ValueError
keep working.

Zero-variance and zero-range columns are not errors: they resolve locally
to documented fallback values (0 for normalization and correlation, a
standard deviation of 1 inside PCA).
"""


class FeatureMathError(ValueError):
    """Base class for all featuremath failures."""


class InvalidInput(FeatureMathError):
    """Empty, malformed or length-mismatched input."""


class DimensionMismatch(FeatureMathError):
    """Requested dimensions do not fit the data (e.g. too many PCA components)."""


class ExpressionError(FeatureMathError):
    """A custom transform expression failed to parse, validate or evaluate."""


class NotInvertibleError(ExpressionError):
    """A custom transform was asked for an inverse it does not define."""
