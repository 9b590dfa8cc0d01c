"""
Tests for the PCA module.
"""

import pytest
import numpy as np
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from featuremath.errors import DimensionMismatch, InvalidInput
from featuremath.math.named_matrix import FeatureMatrix
from featuremath.math.pca import (
    normalize_vector, vector_length, proj_vec, orthogonalize, uniform_start_vector,
    power_iteration, deflate, orient, eigen_decomposition, standardize, covariance_matrix,
    fit_pca, project, reconstruct, reconstruction_error, component_loadings,
    optimal_components, pca_display_name, pc_feature_name
)


# Target correlation with well separated eigenvalues (about 2.0, 0.8, 0.2)
TARGET_CORR = np.array([
    [1.0, 0.8, 0.3],
    [0.8, 1.0, 0.4],
    [0.3, 0.4, 1.0],
])


def correlated_data(n_samples=2000, seed=0):
    rng = np.random.default_rng(seed)
    z = rng.normal(size=(n_samples, 3))
    data = z @ np.linalg.cholesky(TARGET_CORR).T
    # Different scales and offsets per feature
    return data * np.array([10.0, 0.5, 3.0]) + np.array([100.0, -2.0, 0.0])


def spectrum_matrix(eigenvalues, seed=0):
    """Symmetric matrix with the given eigenvalues and a random eigenbasis."""
    rng = np.random.default_rng(seed)
    q, _ = np.linalg.qr(rng.normal(size=(len(eigenvalues), len(eigenvalues))))
    return q @ np.diag(eigenvalues) @ q.T


class TestPCAUtils:
    """Tests for the PCA utility functions."""

    def test_normalize_vector(self):
        """Test normalizing a vector to unit length."""
        v = np.array([3.0, 4.0])
        normalized = normalize_vector(v)

        # Length should be 1
        assert np.isclose(np.linalg.norm(normalized), 1.0)

        # Direction should be preserved
        assert np.isclose(normalized[0] / normalized[1], v[0] / v[1])

        # Test with zero vector
        zero_vec = np.zeros(3)
        assert np.array_equal(normalize_vector(zero_vec), zero_vec)

    def test_vector_length(self):
        """Test calculating vector length."""
        assert np.isclose(vector_length(np.array([3.0, 4.0])), 5.0)

    def test_proj_vec(self):
        """Test projecting one vector onto another."""
        u = np.array([1.0, 0.0])
        v = np.array([3.0, 4.0])
        assert np.allclose(proj_vec(u, v), [3.0, 0.0])

        # Test with zero vector
        zero_vec = np.zeros(2)
        assert np.array_equal(proj_vec(zero_vec, v), zero_vec)

    def test_orthogonalize(self):
        """Removing basis components leaves an orthogonal vector."""
        basis = [np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0])]
        assert np.allclose(orthogonalize(np.array([2.0, 3.0, 4.0]), basis), [0.0, 0.0, 4.0])

    def test_uniform_start_vector(self):
        """The seed is the unit vector with equal entries."""
        v = uniform_start_vector(4)
        assert np.allclose(v, 0.5)

    def test_orient(self):
        """The largest-magnitude loading ends up positive."""
        assert np.allclose(orient(np.array([0.2, -0.9, 0.1])), [-0.2, 0.9, -0.1])
        assert np.allclose(orient(np.array([0.6, -0.3])), [0.6, -0.3])


class TestPowerIteration:
    """Tests for power iteration and deflation."""

    def test_diagonal(self):
        """The dominant eigenpair of a diagonal matrix."""
        value, vector = power_iteration(np.diag([3.0, 1.0]))
        assert np.isclose(value, 3.0)
        assert np.isclose(abs(vector[0]), 1.0)
        assert np.isclose(vector[1], 0.0, atol=1e-8)

    def test_zero_matrix(self):
        """A zero product vector stops with eigenvalue 0."""
        value, vector = power_iteration(np.zeros((3, 3)))
        assert value == 0.0
        assert np.isclose(vector_length(vector), 1.0)

    def test_seed_orthogonal_to_dominant(self):
        """A uniform seed orthogonal to the top eigenvector is still recovered from."""
        # Top eigenvector (1, -1)/sqrt(2) is orthogonal to the uniform seed
        matrix = np.array([[2.0, -1.0], [-1.0, 2.0]])
        values, vectors = eigen_decomposition(matrix, 2)
        assert np.allclose(values, [3.0, 1.0])
        assert np.isclose(abs(vectors[0] @ np.array([1.0, -1.0]) / np.sqrt(2)), 1.0)

    def test_deflate(self):
        """Deflation removes the eigenpair's contribution."""
        matrix = np.diag([3.0, 1.0])
        deflated = deflate(matrix, 3.0, np.array([1.0, 0.0]))
        assert np.allclose(deflated, np.diag([0.0, 1.0]))

    def test_matches_eigh(self):
        """Eigenpairs agree with numpy.linalg.eigh."""
        eigenvalues = [5.0, 3.0, 1.5, 0.5]
        matrix = spectrum_matrix(eigenvalues)
        values, vectors = eigen_decomposition(matrix, 4)

        ref_values, ref_vectors = np.linalg.eigh(matrix)
        order = np.argsort(ref_values)[::-1]

        assert np.allclose(values, ref_values[order], rtol=1e-6)
        for i, j in enumerate(order):
            assert np.isclose(abs(vectors[i] @ ref_vectors[:, j]), 1.0, atol=1e-6)

        # Unit-norm, mutually orthogonal rows
        assert np.allclose(vectors @ vectors.T, np.eye(4), atol=1e-8)

    def test_descending(self):
        """Eigenvalues come out in descending order."""
        values, _ = eigen_decomposition(spectrum_matrix([0.5, 4.0, 2.0], seed=3), 3)
        assert np.all(np.diff(values) <= 1e-9)


class TestStandardize:
    """Tests for standardization and covariance."""

    def test_standardize(self):
        """Columns get zero mean and unit population variance."""
        data = correlated_data(200)
        standardized, means, stds = standardize(data)

        assert np.allclose(standardized.mean(axis=0), 0.0)
        assert np.allclose(standardized.std(axis=0), 1.0)
        assert np.allclose(means, data.mean(axis=0))

    def test_constant_column(self):
        """Constant columns keep std 1 and standardize to zeros."""
        data = np.array([[1.0, 5.0], [2.0, 5.0], [3.0, 5.0]])
        standardized, _, stds = standardize(data)
        assert stds[1] == 1.0
        assert np.array_equal(standardized[:, 1], [0.0, 0.0, 0.0])

    def test_covariance(self):
        """Sample covariance matches numpy."""
        standardized, _, _ = standardize(correlated_data(100))
        cov = covariance_matrix(standardized)
        assert np.allclose(cov, np.cov(standardized, rowvar=False))
        assert np.array_equal(cov, cov.T)


class TestFitPCA:
    """Tests for fit_pca."""

    def test_scenario_linear(self):
        """Perfectly linear features: one component explains everything."""
        result = fit_pca(np.array([[1.0, 2.0], [2.0, 4.0], [3.0, 6.0]]), n_components=1)
        model = result.model

        assert np.isclose(model.explained_variance_ratio[0], 1.0)
        assert np.allclose(model.components[0], [1 / np.sqrt(2), 1 / np.sqrt(2)])
        assert result.projections.shape == (3, 1)

    def test_full_rank_ratios_sum_to_one(self):
        """With k = p the ratios sum to 1."""
        model = fit_pca(correlated_data()).model
        assert model.n_components == 3
        assert np.isclose(np.sum(model.explained_variance_ratio), 1.0, atol=1e-6)
        assert np.isclose(model.cumulative_variance_ratio[-1], 1.0, atol=1e-6)

    def test_partial_ratios_below_one(self):
        """With k < p the ratios are taken over the total variance."""
        model = fit_pca(correlated_data(), n_components=2).model
        assert np.sum(model.explained_variance_ratio) < 1.0
        # Sample covariance of population-standardized data: n / (n - 1) per feature
        assert np.isclose(model.total_variance, 3.0 * 2000 / 1999)

    def test_matches_eigh(self):
        """The fitted spectrum agrees with numpy.linalg.eigh on the same covariance."""
        data = correlated_data()
        model = fit_pca(data).model

        standardized, _, _ = standardize(data)
        ref_values, ref_vectors = np.linalg.eigh(covariance_matrix(standardized))
        order = np.argsort(ref_values)[::-1]

        assert np.allclose(model.eigenvalues, ref_values[order], rtol=1e-6)
        for i, j in enumerate(order):
            assert np.isclose(abs(model.components[i] @ ref_vectors[:, j]), 1.0, atol=1e-6)

    def test_deterministic(self):
        """Fitting twice gives identical output."""
        data = correlated_data(300)
        first = fit_pca(data)
        second = fit_pca(data)
        assert np.array_equal(first.model.components, second.model.components)
        assert np.array_equal(first.projections, second.projections)

    def test_sign_convention(self):
        """Each component's largest-magnitude loading is positive."""
        model = fit_pca(correlated_data()).model
        for row in model.components:
            assert row[np.argmax(np.abs(row))] > 0

    def test_feature_matrix_input(self):
        """FeatureMatrix input keeps its names."""
        data = correlated_data(100)
        fmat = FeatureMatrix(data, colnames=['a', 'b', 'c'])
        model = fit_pca(fmat, n_components=2).model
        assert model.feature_names == ['a', 'b', 'c']

        assert fit_pca(data).model.feature_names == ['col_0', 'col_1', 'col_2']

    def test_constant_feature(self):
        """A constant feature contributes no variance."""
        data = np.column_stack([correlated_data(100)[:, :2], np.full(100, 7.0)])
        model = fit_pca(data).model
        assert np.isclose(model.total_variance, 2.0 * 100 / 99)
        assert np.isclose(model.eigenvalues[-1], 0.0, atol=1e-8)

    def test_singular_values(self):
        """Singular values of the standardized data."""
        data = correlated_data(50)
        model = fit_pca(data).model
        standardized, _, _ = standardize(data)
        ref = np.linalg.svd(standardized, compute_uv=False)
        assert np.allclose(model.singular_values(50), ref, rtol=1e-6)

    def test_to_dict(self):
        """Results serialize to plain lists."""
        d = fit_pca(correlated_data(20), n_components=2).to_dict()
        assert len(d['components']) == 2
        assert len(d['projections']) == 20
        assert d['feature_names'] == ['col_0', 'col_1', 'col_2']

    def test_model_frozen(self):
        """A fitted model can't be modified."""
        model = fit_pca(correlated_data(50)).model
        with pytest.raises(Exception):
            model.total_variance = 0.0
        with pytest.raises(Exception):
            model.components = np.zeros((1, 3))

    def test_invalid_input(self):
        """Shape and value problems raise InvalidInput."""
        with pytest.raises(InvalidInput):
            fit_pca(np.array([[1.0, 2.0]]))
        with pytest.raises(InvalidInput):
            fit_pca(np.array([1.0, 2.0, 3.0]))
        with pytest.raises(InvalidInput):
            fit_pca(np.zeros((3, 0)))
        with pytest.raises(InvalidInput):
            fit_pca(np.array([[1.0, np.nan], [2.0, 3.0]]))
        with pytest.raises(InvalidInput):
            fit_pca(np.zeros((3, 2)), feature_names=['only_one'])

    def test_invalid_components(self):
        """Component counts outside [1, min(n, p)] raise DimensionMismatch."""
        data = correlated_data(10)
        with pytest.raises(DimensionMismatch):
            fit_pca(data, n_components=4)
        with pytest.raises(DimensionMismatch):
            fit_pca(data, n_components=0)
        with pytest.raises(DimensionMismatch):
            fit_pca(data[:2], n_components=3)


class TestProjection:
    """Tests for project, reconstruct and reconstruction_error."""

    def test_project_matches_fit(self):
        """Projecting the training data reproduces the fit projections."""
        data = correlated_data(100)
        result = fit_pca(data, n_components=2)
        assert np.allclose(project(result.model, data), result.projections)

    def test_project_single_sample(self):
        """A 1-D sample projects to a 1-D point."""
        data = correlated_data(100)
        model = fit_pca(data, n_components=2).model
        point = project(model, data[0])
        assert point.shape == (2,)

    def test_full_reconstruction(self):
        """With k = p, reconstruction recovers the data."""
        data = correlated_data(100)
        result = fit_pca(data)
        assert np.allclose(reconstruct(result.model, result.projections), data)
        assert reconstruction_error(result.model, data) < 1e-12

    def test_error_non_increasing(self):
        """More components never reconstruct worse."""
        data = correlated_data(200)
        errors = [reconstruction_error(fit_pca(data, n_components=k).model, data) for k in [1, 2, 3]]
        for before, after in zip(errors, errors[1:]):
            assert after <= before + 1e-12

    def test_dimension_mismatch(self):
        """Wrong column counts raise DimensionMismatch."""
        model = fit_pca(correlated_data(50), n_components=2).model
        with pytest.raises(DimensionMismatch):
            project(model, np.zeros((4, 2)))
        with pytest.raises(DimensionMismatch):
            reconstruct(model, np.zeros((4, 3)))


class TestLoadingsAndNames:
    """Tests for loadings, component selection and naming."""

    def test_component_loadings(self):
        """Loadings are sorted by magnitude."""
        fmat = FeatureMatrix(correlated_data(200), colnames=['a', 'b', 'c'])
        model = fit_pca(fmat).model
        loadings = component_loadings(model, 0)

        assert sorted(name for name, _, _ in loadings) == ['a', 'b', 'c']
        magnitudes = [m for _, _, m in loadings]
        assert magnitudes == sorted(magnitudes, reverse=True)

        with pytest.raises(DimensionMismatch):
            component_loadings(model, 3)

    def test_optimal_components(self):
        """Smallest k reaching the threshold."""
        assert optimal_components([0.5, 0.8, 0.96, 1.0]) == 3
        assert optimal_components([0.5, 0.8], threshold=0.8) == 2
        assert optimal_components([0.5, 0.7]) == 2

    def test_display_name(self):
        """Names are built from word initials."""
        assert pca_display_name('Mine', ['a']) == 'Mine'
        assert pca_display_name() == 'PCA'
        assert pca_display_name(feature_names=['Frequency', 'Angle of Attack', 'Chord Length']) == 'PCA(F,AOA,CL)'
        names = ['Frequency', 'Angle of Attack', 'Chord Length', 'Velocity', 'Thickness']
        assert pca_display_name(feature_names=names) == 'PCA(F,AOA+3)'

    def test_pc_feature_name(self):
        """Component names carry the explained variance."""
        assert pc_feature_name('PCA(F,AOA)', 0, 0.623) == 'PCA(F,AOA) PC1 (62.3%)'
        assert pc_feature_name('PCA', 1) == 'PCA PC2'
