"""
PCA (Principal Component Analysis) implementation for featuremath.

This module provides a from-scratch PCA: features are standardized to
zero mean and unit variance, the covariance matrix is built, and its top
eigenpairs are found by power iteration with deflation. Fitted models can
project new samples and reconstruct samples from their projections.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from featuremath.errors import DimensionMismatch, InvalidInput
from featuremath.math.named_matrix import FeatureMatrix

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERS = 1000
DEFAULT_TOLERANCE = 1e-10

# Product vectors shorter than this (relative to the matrix scale) mean the
# remaining matrix has no variance left in the search space
ZERO_NORM = 1e-12


def normalize_vector(v: np.ndarray) -> np.ndarray:
    """
    Normalize a vector to unit length.

    Args:
        v: Vector to normalize

    Returns:
        Normalized vector (the input unchanged if it is zero)
    """
    norm = np.linalg.norm(v)
    if norm == 0:
        return v
    return v / norm


def vector_length(v: np.ndarray) -> float:
    """
    Calculate the length (norm) of a vector.
    """
    return float(np.linalg.norm(v))


def proj_vec(u: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Project vector v onto vector u.

    Args:
        u: Vector to project onto
        v: Vector to project

    Returns:
        Projection of v onto u
    """
    if np.dot(u, u) == 0:
        return np.zeros_like(v)
    return np.dot(u, v) / np.dot(u, u) * u


def orthogonalize(v: np.ndarray, basis: Sequence[np.ndarray]) -> np.ndarray:
    """
    Remove the components of v along each vector of basis.
    """
    for u in basis:
        v = v - proj_vec(u, v)
    return v


def uniform_start_vector(n: int) -> np.ndarray:
    """Seed vector with every entry 1/sqrt(n)."""
    return np.full(n, 1.0 / np.sqrt(n))


def _perturbation(n: int) -> np.ndarray:
    # Fixed, non-symmetric direction used to leave a seed that is orthogonal
    # to the dominant eigenvector
    return normalize_vector(np.cos(np.arange(1, n + 1)))


def _seed(n: int, start_vector: Optional[np.ndarray],
          orthogonal_to: Sequence[np.ndarray]) -> np.ndarray:
    """
    First candidate seed with a usable component outside ``orthogonal_to``:
    the given start (or uniform) vector, the perturbation, then unit vectors.
    """
    first = uniform_start_vector(n) if start_vector is None else np.asarray(start_vector, dtype=float)
    candidates = [first, _perturbation(n)] + list(np.eye(n))
    for candidate in candidates:
        v = orthogonalize(candidate, orthogonal_to)
        if vector_length(v) > 1e-8 * max(1.0, vector_length(candidate)):
            return normalize_vector(v)
    raise DimensionMismatch(f"No direction left outside {len(orthogonal_to)} found eigenvectors")


def power_iteration(matrix: np.ndarray,
                    max_iters: int = DEFAULT_MAX_ITERS,
                    tolerance: float = DEFAULT_TOLERANCE,
                    start_vector: Optional[np.ndarray] = None,
                    orthogonal_to: Sequence[np.ndarray] = ()) -> Tuple[float, np.ndarray]:
    """
    Find the dominant eigenpair of a symmetric matrix by power iteration.

    Iterates ``w = A v; v = w / |w|`` until successive iterates differ by
    less than ``tolerance`` (L2) or ``max_iters`` is reached. Iterates are
    kept orthogonal to ``orthogonal_to`` (already found eigenvectors).

    Args:
        matrix: Symmetric positive semi-definite matrix A
        max_iters: Maximum number of iterations
        tolerance: Convergence threshold on the change of the iterate
        start_vector: Initial vector (defaults to uniform 1/sqrt(p))
        orthogonal_to: Unit vectors the result must be orthogonal to

    Returns:
        Tuple of (eigenvalue, unit eigenvector); eigenvalue is the Rayleigh
        quotient v^T A v
    """
    n = matrix.shape[0]
    scale = max(1.0, float(np.max(np.abs(matrix)))) if matrix.size else 1.0

    v = _seed(n, start_vector, orthogonal_to)

    converged = False
    iterations = 0
    for iterations in range(1, max_iters + 1):
        # Compute product vector
        w = orthogonalize(matrix @ v, orthogonal_to)
        norm = vector_length(w)

        # A annihilates v: nothing left to find along this direction
        if norm <= ZERO_NORM * scale:
            converged = True
            break

        normed = w / norm
        diff = vector_length(normed - v)
        v = normed

        if diff < tolerance:
            converged = True
            break

    if not converged:
        logger.warning(f"Power iteration did not converge in {max_iters} iterations")
    else:
        logger.debug(f"Power iteration converged after {iterations} iterations")

    eigenvalue = float(v @ matrix @ v)
    return eigenvalue, v


def deflate(matrix: np.ndarray, eigenvalue: float, eigenvector: np.ndarray) -> np.ndarray:
    """
    Remove an eigenpair's contribution: ``A - lambda v v^T``.
    """
    return matrix - eigenvalue * np.outer(eigenvector, eigenvector)


def orient(eigenvector: np.ndarray) -> np.ndarray:
    """
    Flip an eigenvector so its largest-magnitude loading is positive.
    """
    if eigenvector[np.argmax(np.abs(eigenvector))] < 0:
        return -eigenvector
    return eigenvector


def eigen_decomposition(matrix: np.ndarray,
                        n_comps: int,
                        max_iters: int = DEFAULT_MAX_ITERS,
                        tolerance: float = DEFAULT_TOLERANCE) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the top n_comps eigenpairs of a symmetric PSD matrix.

    Each pair is found by power iteration from the uniform seed on the
    deflated matrix. A second run from a perturbed seed guards against a
    seed that happens to be orthogonal to the dominant eigenvector.
    Convergence slows down when eigenvalues are nearly equal.

    Args:
        matrix: Symmetric positive semi-definite matrix
        n_comps: Number of eigenpairs
        max_iters: Maximum power iterations per eigenpair
        tolerance: Convergence threshold

    Returns:
        Tuple of (eigenvalues in descending order, eigenvectors as rows)
    """
    n = matrix.shape[0]
    eigenvalues: List[float] = []
    eigenvectors: List[np.ndarray] = []
    a = np.array(matrix, dtype=float)

    for _ in range(min(n_comps, n)):
        eigval, eigvec = power_iteration(a, max_iters, tolerance, orthogonal_to=eigenvectors)

        retry_start = eigvec + 0.5 * _perturbation(n)
        retry_val, retry_vec = power_iteration(a, max_iters, tolerance,
                                               start_vector=retry_start,
                                               orthogonal_to=eigenvectors)
        if retry_val > eigval + tolerance * max(1.0, abs(eigval)):
            logger.debug(f"Perturbed seed found a larger eigenvalue ({retry_val} > {eigval})")
            eigval, eigvec = retry_val, retry_vec

        # PSD: negative values are rounding noise
        eigval = max(eigval, 0.0)
        eigvec = orient(normalize_vector(eigvec))

        eigenvalues.append(eigval)
        eigenvectors.append(eigvec)

        # Deflate matrix
        a = deflate(a, eigval, eigvec)

    return np.array(eigenvalues), np.array(eigenvectors)


def standardize(data: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Center and scale each feature to zero mean and unit variance.

    Uses the population standard deviation; zero deviations are replaced
    by 1 so constant features become all zeros.

    Args:
        data: Matrix of shape (n_samples, n_features)

    Returns:
        Tuple of (standardized data, means, stds)
    """
    means = data.mean(axis=0)
    stds = data.std(axis=0)
    stds = np.where(stds == 0, 1.0, stds)
    return (data - means) / stds, means, stds


def covariance_matrix(standardized: np.ndarray) -> np.ndarray:
    """
    Sample covariance ``X^T X / (n - 1)`` of already-centered data.
    """
    n = standardized.shape[0]
    cov = standardized.T @ standardized / (n - 1)
    # Exact symmetry
    return (cov + cov.T) / 2.0


@dataclass(frozen=True, eq=False)
class PCAModel:
    """
    A fitted PCA model.

    Attributes:
        components: Unit eigenvectors as rows, shape (k, p)
        eigenvalues: Eigenvalues in descending order, shape (k,)
        feature_means: Mean of each source feature, shape (p,)
        feature_stds: Standard deviation of each source feature (0 replaced by 1)
        explained_variance_ratio: eigenvalue / total variance, shape (k,)
        total_variance: Trace of the covariance matrix
        feature_names: Names of the source features
    """

    components: np.ndarray
    eigenvalues: np.ndarray
    feature_means: np.ndarray
    feature_stds: np.ndarray
    explained_variance_ratio: np.ndarray
    total_variance: float
    feature_names: List[Any]

    @property
    def n_components(self) -> int:
        return self.components.shape[0]

    @property
    def n_features(self) -> int:
        return self.components.shape[1]

    @property
    def cumulative_variance_ratio(self) -> np.ndarray:
        return np.cumsum(self.explained_variance_ratio)

    def singular_values(self, n_samples: int) -> np.ndarray:
        """Singular values of the standardized data matrix."""
        return np.sqrt(np.maximum(self.eigenvalues, 0.0) * (n_samples - 1))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'components': self.components.tolist(),
            'eigenvalues': self.eigenvalues.tolist(),
            'feature_means': self.feature_means.tolist(),
            'feature_stds': self.feature_stds.tolist(),
            'explained_variance_ratio': self.explained_variance_ratio.tolist(),
            'cumulative_variance_ratio': self.cumulative_variance_ratio.tolist(),
            'total_variance': self.total_variance,
            'feature_names': list(self.feature_names),
        }


@dataclass(eq=False)
class PCAResult:
    """A fitted model together with the projections of its training data."""

    model: PCAModel
    projections: np.ndarray

    def to_dict(self) -> Dict[str, Any]:
        result = self.model.to_dict()
        result['projections'] = self.projections.tolist()
        return result


def _as_data_matrix(data: Union[np.ndarray, FeatureMatrix, Sequence[Sequence[float]]],
                    feature_names: Optional[Sequence[Any]]) -> Tuple[np.ndarray, List[Any]]:
    if isinstance(data, FeatureMatrix):
        names = list(feature_names) if feature_names is not None else data.colnames()
        values = data.values
    else:
        values = np.asarray(data, dtype=float)
        names = None if feature_names is None else list(feature_names)

    if values.ndim != 2:
        raise InvalidInput(f"PCA needs a 2-dimensional matrix, got shape {values.shape}")

    n_samples, n_features = values.shape
    if n_samples < 2:
        raise InvalidInput(f"PCA needs at least 2 samples, got {n_samples}")
    if n_features < 1:
        raise InvalidInput('PCA needs at least 1 feature')
    if not np.all(np.isfinite(values)):
        raise InvalidInput('PCA input must be finite')

    if names is None:
        names = [f"col_{j}" for j in range(n_features)]
    elif len(names) != n_features:
        raise InvalidInput(f"Feature count mismatch: data has {n_features} features "
                           f"but {len(names)} names provided")
    return values, names


def fit_pca(data: Union[np.ndarray, FeatureMatrix, Sequence[Sequence[float]]],
            n_components: Optional[int] = None,
            feature_names: Optional[Sequence[Any]] = None,
            max_iters: int = DEFAULT_MAX_ITERS,
            tolerance: float = DEFAULT_TOLERANCE) -> PCAResult:
    """
    Fit a PCA model and project the training data.

    Args:
        data: Matrix of shape (n_samples, n_features), or a FeatureMatrix
        n_components: Number of components (default: min(n_samples, n_features))
        feature_names: Names of the features (default: FeatureMatrix names or col_j)
        max_iters: Maximum power iterations per component
        tolerance: Power iteration convergence threshold

    Returns:
        PCAResult with the model and the (n_samples, k) projections

    Raises:
        InvalidInput: If there are fewer than 2 samples or no features
        DimensionMismatch: If n_components is not in [1, min(n_samples, n_features)]
    """
    values, names = _as_data_matrix(data, feature_names)
    n_samples, n_features = values.shape

    max_comps = min(n_samples, n_features)
    if n_components is None:
        n_components = max_comps
    if n_components < 1 or n_components > max_comps:
        raise DimensionMismatch(
            f"Requested {n_components} components, but at most {max_comps} are available")

    standardized, means, stds = standardize(values)
    cov = covariance_matrix(standardized)
    total_variance = float(np.trace(cov))

    eigenvalues, components = eigen_decomposition(cov, n_components, max_iters, tolerance)

    # Ratio over the total variance, so k < p sums to less than 1
    if total_variance > 0:
        ratios = eigenvalues / total_variance
    else:
        ratios = np.zeros_like(eigenvalues)

    model = PCAModel(
        components=components,
        eigenvalues=eigenvalues,
        feature_means=means,
        feature_stds=stds,
        explained_variance_ratio=ratios,
        total_variance=total_variance,
        feature_names=names,
    )
    logger.info(f"Fitted PCA with {n_components} of {n_features} components on "
                f"{n_samples} samples, explaining {float(np.sum(ratios)):.1%} of variance")

    return PCAResult(model=model, projections=project_standardized(standardized, components))


def project_standardized(standardized: np.ndarray, components: np.ndarray) -> np.ndarray:
    """
    Project standardized data onto components: ``X' V^T``.
    """
    return standardized @ components.T


def project(model: PCAModel, data: Union[np.ndarray, Sequence[Sequence[float]]]) -> np.ndarray:
    """
    Project raw samples into component space.

    Args:
        model: Fitted PCA model
        data: Samples of shape (m, p), or a single sample of shape (p,)

    Returns:
        Projections of shape (m, k), or (k,) for a single sample

    Raises:
        DimensionMismatch: If the samples don't have p features
    """
    values = np.asarray(data, dtype=float)
    single = values.ndim == 1
    values = np.atleast_2d(values)

    if values.shape[1] != model.n_features:
        raise DimensionMismatch(
            f"Expected {model.n_features} features, got {values.shape[1]}")

    standardized = (values - model.feature_means) / model.feature_stds
    projected = project_standardized(standardized, model.components)
    return projected[0] if single else projected


def reconstruct(model: PCAModel, projected: Union[np.ndarray, Sequence[Sequence[float]]]) -> np.ndarray:
    """
    Map projections back to the original feature space.

    Computes ``(projected V)_j * std_j + mean_j``.

    Args:
        model: Fitted PCA model
        projected: Projections of shape (m, k), or a single point of shape (k,)

    Returns:
        Reconstructed samples of shape (m, p), or (p,) for a single point

    Raises:
        DimensionMismatch: If the projections don't have k columns
    """
    values = np.asarray(projected, dtype=float)
    single = values.ndim == 1
    values = np.atleast_2d(values)

    if values.shape[1] != model.n_components:
        raise DimensionMismatch(
            f"Expected {model.n_components} component values, got {values.shape[1]}")

    reconstructed = (values @ model.components) * model.feature_stds + model.feature_means
    return reconstructed[0] if single else reconstructed


def reconstruction_error(model: PCAModel, data: Union[np.ndarray, Sequence[Sequence[float]]]) -> float:
    """
    Mean squared error of project -> reconstruct, measured on the
    standardized scale so every feature weighs the same.
    """
    values = np.atleast_2d(np.asarray(data, dtype=float))
    reconstructed = reconstruct(model, project(model, values))
    residual = (values - reconstructed) / model.feature_stds
    return float(np.mean(residual ** 2))


def component_loadings(model: PCAModel, index: int) -> List[Tuple[Any, float, float]]:
    """
    Get feature loadings for one component, largest magnitude first.

    Args:
        model: Fitted PCA model
        index: 0-based component index

    Returns:
        List of (feature, loading, abs_loading)

    Raises:
        DimensionMismatch: If the index is out of range
    """
    if index < 0 or index >= model.n_components:
        raise DimensionMismatch(f"Invalid component index: {index}")

    loadings = model.components[index]
    rows = [(name, float(loading), float(abs(loading)))
            for name, loading in zip(model.feature_names, loadings)]
    return sorted(rows, key=lambda row: row[2], reverse=True)


def optimal_components(cumulative_variance_ratio: Sequence[float], threshold: float = 0.95) -> int:
    """
    Smallest number of components whose cumulative ratio reaches threshold
    (all of them if none does).
    """
    for i, ratio in enumerate(cumulative_variance_ratio):
        if ratio >= threshold:
            return i + 1
    return len(cumulative_variance_ratio)


def _abbreviate(name: str) -> str:
    # First letter of each word, up to 3 characters
    cleaned = ''.join(c for c in str(name) if c.isalpha() or c.isspace())
    return ''.join(word[0].upper() for word in cleaned.split())[:3]


def pca_display_name(custom_name: Optional[str] = None,
                     feature_names: Optional[Sequence[Any]] = None) -> str:
    """
    Display name for a PCA run, e.g. ``PCA(F,AOA,CL)`` or ``PCA(F,AOA+3)``.
    """
    if custom_name:
        return custom_name
    if not feature_names:
        return 'PCA'

    abbreviations = [_abbreviate(name) for name in feature_names]
    if len(abbreviations) <= 3:
        return f"PCA({','.join(abbreviations)})"
    return f"PCA({','.join(abbreviations[:2])}+{len(feature_names) - 2})"


def pc_feature_name(pca_name: str, index: int, variance_ratio: Optional[float] = None) -> str:
    """
    Feature name for a saved component, e.g. ``PCA(F,AOA) PC1 (62.3%)``.
    """
    if variance_ratio is not None:
        return f"{pca_name} PC{index + 1} ({variance_ratio * 100:.1f}%)"
    return f"{pca_name} PC{index + 1}"
