"""
Tests for the named_matrix module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from featuremath.errors import InvalidInput
from featuremath.math.named_matrix import IndexHash, FeatureMatrix


class TestIndexHash:
    """Tests for the IndexHash class."""

    def test_init_empty(self):
        """Test creating an empty IndexHash."""
        idx = IndexHash()
        assert idx.get_names() == []
        assert len(idx) == 0

    def test_init_with_names(self):
        """Test creating an IndexHash with initial names."""
        idx = IndexHash(['a', 'b', 'c'])
        assert idx.get_names() == ['a', 'b', 'c']
        assert idx.index('a') == 0
        assert idx.index('c') == 2
        assert idx.index('d') is None
        assert 'b' in idx
        assert len(idx) == 3

    def test_duplicate_names(self):
        """Duplicate names are rejected."""
        with pytest.raises(InvalidInput):
            IndexHash(['a', 'a'])

    def test_append(self):
        """Test appending a name to an IndexHash."""
        idx = IndexHash(['a', 'b'])
        new_idx = idx.append('c')

        # Original should be unchanged
        assert idx.get_names() == ['a', 'b']
        assert new_idx.get_names() == ['a', 'b', 'c']

        # Appending an existing name is a no-op
        assert idx.append('a').get_names() == ['a', 'b']

    def test_subset(self):
        """Test creating a subset of an IndexHash."""
        idx = IndexHash(['a', 'b', 'c', 'd'])
        subset = idx.subset(['d', 'b', 'e'])
        assert subset.get_names() == ['d', 'b']


class TestFeatureMatrix:
    """Tests for the FeatureMatrix class."""

    def test_init_empty(self):
        """Test creating an empty FeatureMatrix."""
        fmat = FeatureMatrix()
        assert fmat.colnames() == []
        assert fmat.shape == (0, 0)

    def test_init_with_array(self):
        """Test creating a FeatureMatrix from an array."""
        data = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
        fmat = FeatureMatrix(data, colnames=['x', 'y'])

        assert fmat.colnames() == ['x', 'y']
        assert fmat.n_samples == 3
        assert fmat.n_features == 2
        assert np.array_equal(fmat.values, data)

    def test_default_names(self):
        """Columns default to col_0, col_1, ..."""
        fmat = FeatureMatrix([[1, 2, 3]])
        assert fmat.colnames() == ['col_0', 'col_1', 'col_2']

    def test_init_with_dataframe(self):
        """Test creating a FeatureMatrix from a DataFrame."""
        df = pd.DataFrame({'a': [1, 2], 'b': [3, 4]}, index=['r1', 'r2'])
        fmat = FeatureMatrix(df)

        assert fmat.colnames() == ['a', 'b']
        assert np.array_equal(fmat.get_col_by_name('b'), [3.0, 4.0])

    def test_name_count_mismatch(self):
        """Name count must match the column count."""
        with pytest.raises(InvalidInput):
            FeatureMatrix(np.zeros((2, 2)), colnames=['a'])

    def test_not_two_dimensional(self):
        """A flat vector is not a matrix."""
        with pytest.raises(InvalidInput):
            FeatureMatrix(np.array([1.0, 2.0]))

    def test_from_vectors(self):
        """Test building from named vectors."""
        fmat = FeatureMatrix.from_vectors({'x': [1, 2, 3], 'y': [4, 5, 6]})

        assert fmat.colnames() == ['x', 'y']
        assert fmat.shape == (3, 2)
        assert np.array_equal(fmat.get_col_by_name('y'), [4.0, 5.0, 6.0])

        pairs = FeatureMatrix.from_vectors([('b', [1.0]), ('a', [2.0])])
        assert pairs.colnames() == ['b', 'a']

    def test_from_vectors_unequal_length(self):
        """Vectors of different lengths cannot share a matrix."""
        with pytest.raises(InvalidInput):
            FeatureMatrix.from_vectors({'x': [1, 2, 3], 'y': [4, 5]})

    def test_from_vectors_empty(self):
        """Empty input and empty vectors are rejected."""
        with pytest.raises(InvalidInput):
            FeatureMatrix.from_vectors({})
        with pytest.raises(InvalidInput):
            FeatureMatrix.from_vectors({'x': []})

    def test_get_col_by_name_missing(self):
        """Unknown features raise KeyError."""
        fmat = FeatureMatrix.from_vectors({'x': [1, 2]})
        with pytest.raises(KeyError):
            fmat.get_col_by_name('nope')

    def test_colname_subset(self):
        """Test selecting features in a given order."""
        fmat = FeatureMatrix.from_vectors({'a': [1, 2], 'b': [3, 4], 'c': [5, 6]})
        subset = fmat.colname_subset(['c', 'a'])

        assert subset.colnames() == ['c', 'a']
        assert np.array_equal(subset.values, [[5.0, 1.0], [6.0, 2.0]])

        with pytest.raises(KeyError):
            fmat.colname_subset(['a', 'z'])

    def test_row_subset(self):
        """Test selecting samples by position."""
        fmat = FeatureMatrix.from_vectors({'a': [10, 20, 30], 'b': [1, 2, 3]})
        subset = fmat.row_subset([2, 0])

        assert subset.n_samples == 2
        assert np.array_equal(subset.get_col_by_name('a'), [30.0, 10.0])
        assert subset.colnames() == ['a', 'b']

    def test_with_column(self):
        """Test adding and replacing a feature."""
        fmat = FeatureMatrix.from_vectors({'a': [1, 2]})
        added = fmat.with_column('b', [3, 4])

        assert fmat.colnames() == ['a']
        assert added.colnames() == ['a', 'b']

        replaced = added.with_column('a', [0, 0])
        assert replaced.colnames() == ['a', 'b']
        assert np.array_equal(replaced.get_col_by_name('a'), [0.0, 0.0])

        with pytest.raises(InvalidInput):
            fmat.with_column('c', [1, 2, 3])

    def test_vectors_and_to_dict(self):
        """Iteration follows column order."""
        fmat = FeatureMatrix.from_vectors({'a': [1, 2], 'b': [3, 4]})

        names = [name for name, _ in fmat.vectors()]
        assert names == ['a', 'b']
        assert fmat.to_dict() == {'a': [1.0, 2.0], 'b': [3.0, 4.0]}
        assert 'a' in fmat
        assert len(fmat) == 2
