"""
Named feature matrix for featuremath.

This module provides a data structure holding sample-aligned feature vectors
under stable names. Rows are samples, columns are features, and every
column has the same length by construction.
"""

import numpy as np
import pandas as pd
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from featuremath.errors import InvalidInput


class IndexHash:
    """
    Maintains an ordered index of unique names with fast lookup.
    """

    def __init__(self, names: Optional[Sequence[Any]] = None):
        """
        Initialize an IndexHash with optional initial names.

        Args:
            names: Optional list of initial names

        Raises:
            InvalidInput: If a name appears more than once
        """
        self._names = [] if names is None else list(names)
        self._index_hash = {name: idx for idx, name in enumerate(self._names)}
        if len(self._index_hash) != len(self._names):
            raise InvalidInput(f"Duplicate feature names: {self._names}")

    def get_names(self) -> List[Any]:
        """Return the ordered list of names."""
        return self._names.copy()

    def index(self, name: Any) -> Optional[int]:
        """
        Get the index for a given name, or None if not found.

        Args:
            name: The name to look up

        Returns:
            The index if found, None otherwise
        """
        return self._index_hash.get(name)

    def append(self, name: Any) -> 'IndexHash':
        """
        Add a new name to the index.

        Args:
            name: The name to add

        Returns:
            A new IndexHash with the added name
        """
        if name in self._index_hash:
            return self
        return IndexHash(self._names + [name])

    def subset(self, names: Sequence[Any]) -> 'IndexHash':
        """
        Create a subset of the index with only the specified names, in the
        order given.
        """
        return IndexHash([name for name in names if name in self._index_hash])

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: Any) -> bool:
        return name in self._index_hash


class FeatureMatrix:
    """
    A samples x features matrix with named columns.

    Backed by a pandas DataFrame of floats. Instances are treated as
    immutable: every transforming method returns a new FeatureMatrix.
    """

    def __init__(self,
                 matrix: Optional[Union[np.ndarray, pd.DataFrame, Sequence[Sequence[float]]]] = None,
                 colnames: Optional[Sequence[Any]] = None):
        """
        Initialize a FeatureMatrix.

        Args:
            matrix: Data as an (n_samples, n_features) array, nested lists or DataFrame
            colnames: Feature names (defaults to the DataFrame columns or col_0..)

        Raises:
            InvalidInput: If the data is not two-dimensional or names don't match
        """
        if matrix is None:
            names = list(colnames) if colnames is not None else []
            self._col_index = IndexHash(names)
            self._matrix = pd.DataFrame(columns=names, dtype=float)
            return

        if isinstance(matrix, pd.DataFrame):
            frame = matrix.astype(float).reset_index(drop=True)
            if colnames is not None:
                if len(colnames) != frame.shape[1]:
                    raise InvalidInput(
                        f"Got {len(colnames)} names for {frame.shape[1]} columns")
                frame.columns = list(colnames)
        else:
            values = np.asarray(matrix, dtype=float)
            if values.ndim != 2:
                raise InvalidInput(f"Feature matrix must be 2-dimensional, got shape {values.shape}")
            if colnames is None:
                colnames = [f"col_{j}" for j in range(values.shape[1])]
            elif len(colnames) != values.shape[1]:
                raise InvalidInput(
                    f"Got {len(colnames)} names for {values.shape[1]} columns")
            frame = pd.DataFrame(values, columns=list(colnames))

        self._col_index = IndexHash(list(frame.columns))
        self._matrix = frame

    @classmethod
    def from_vectors(cls,
                     vectors: Union[Mapping[Any, Sequence[float]],
                                    Sequence[Tuple[Any, Sequence[float]]]]) -> 'FeatureMatrix':
        """
        Build a matrix from named feature vectors.

        Args:
            vectors: Mapping of name -> values, or a sequence of (name, values) pairs

        Returns:
            A new FeatureMatrix with one column per vector

        Raises:
            InvalidInput: If there are no vectors, a vector is empty, or lengths differ
        """
        items = list(vectors.items()) if isinstance(vectors, Mapping) else list(vectors)
        if not items:
            raise InvalidInput("At least one feature vector is required")

        lengths = {name: len(values) for name, values in items}
        n = len(items[0][1])
        if n == 0:
            raise InvalidInput(f"Feature vector '{items[0][0]}' is empty")
        if any(length != n for length in lengths.values()):
            raise InvalidInput(f"Feature vectors must have equal length, got {lengths}")

        names = [name for name, _ in items]
        columns = np.column_stack([np.asarray(values, dtype=float) for _, values in items])
        return cls(columns, colnames=names)

    @property
    def matrix(self) -> pd.DataFrame:
        """Get the underlying DataFrame."""
        return self._matrix

    @property
    def values(self) -> np.ndarray:
        """Get the matrix as a float numpy array."""
        return self._matrix.to_numpy(dtype=float)

    @property
    def shape(self) -> Tuple[int, int]:
        return self._matrix.shape

    @property
    def n_samples(self) -> int:
        return self._matrix.shape[0]

    @property
    def n_features(self) -> int:
        return self._matrix.shape[1]

    def colnames(self) -> List[Any]:
        """Get the list of feature names."""
        return self._col_index.get_names()

    def get_col_index(self) -> IndexHash:
        """Get the column index object."""
        return self._col_index

    def get_col_by_name(self, col_name: Any) -> np.ndarray:
        """
        Get a feature vector by name.

        Args:
            col_name: The name of the feature

        Returns:
            The column as a numpy array
        """
        if col_name not in self._col_index:
            raise KeyError(f"Feature '{col_name}' not found")
        return self._matrix[col_name].to_numpy(dtype=float)

    def colname_subset(self, colnames: Sequence[Any]) -> 'FeatureMatrix':
        """
        Create a matrix with only the specified features, in the given order.

        Args:
            colnames: Feature names to include

        Returns:
            A new FeatureMatrix

        Raises:
            KeyError: If a requested feature does not exist
        """
        missing = [col for col in colnames if col not in self._col_index]
        if missing:
            raise KeyError(f"Features not found: {missing}")
        return FeatureMatrix(self._matrix[list(colnames)], colnames=list(colnames))

    def row_subset(self, indices: Sequence[int]) -> 'FeatureMatrix':
        """
        Create a matrix with only the given sample positions, in the given order.
        """
        subset_df = self._matrix.iloc[list(indices)]
        return FeatureMatrix(subset_df, colnames=self.colnames())

    def with_column(self, name: Any, values: Sequence[float]) -> 'FeatureMatrix':
        """
        Return a new matrix with a feature added (or replaced).

        Raises:
            InvalidInput: If the vector length differs from the sample count
        """
        values = np.asarray(values, dtype=float)
        if self.n_features and len(values) != self.n_samples:
            raise InvalidInput(
                f"Feature '{name}' has {len(values)} values, expected {self.n_samples}")
        new_matrix = self._matrix.copy()
        new_matrix[name] = values
        return FeatureMatrix(new_matrix)

    def vectors(self) -> Iterator[Tuple[Any, np.ndarray]]:
        """Iterate over (name, values) pairs in column order."""
        for name in self.colnames():
            yield name, self.get_col_by_name(name)

    def to_dict(self) -> Dict[Any, List[float]]:
        """Convert to a plain name -> list of floats mapping."""
        return {name: values.tolist() for name, values in self.vectors()}

    def __contains__(self, name: Any) -> bool:
        return name in self._col_index

    def __len__(self) -> int:
        return self.n_samples

    def __repr__(self) -> str:
        return f"FeatureMatrix(samples={self.n_samples}, features={self.colnames()})"
