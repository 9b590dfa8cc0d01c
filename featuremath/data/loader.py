"""
Dataset loading for featuremath.

Reads whitespace-delimited numeric text (one sample per line) into a
FeatureMatrix, and splits samples into training and validation sets.
"""

import logging
import math
import os
from typing import List, Optional, Sequence, Tuple

import numpy as np

from featuremath.errors import InvalidInput
from featuremath.math.named_matrix import FeatureMatrix

# Set up logging
logger = logging.getLogger(__name__)

# Columns of the NASA airfoil self-noise dataset
AIRFOIL_COLUMNS = [
    'frequency',
    'angleOfAttack',
    'chordLength',
    'freeStreamVelocity',
    'suctionSideDisplacementThickness',
    'soundPressureLevel',
]

AIRFOIL_TARGET = 'soundPressureLevel'


def default_column_names(n_columns: int) -> List[str]:
    if n_columns == len(AIRFOIL_COLUMNS):
        return list(AIRFOIL_COLUMNS)
    return [f"col_{j}" for j in range(n_columns)]


def parse_dataset(text: str, column_names: Optional[Sequence[str]] = None) -> FeatureMatrix:
    """
    Parse whitespace-delimited rows into a FeatureMatrix.

    Blank lines are skipped. Every other line must hold the same number of
    numeric values.

    Args:
        text: Raw dataset text
        column_names: Feature names (default: airfoil names for six columns, else col_j)

    Returns:
        FeatureMatrix with one row per sample

    Raises:
        InvalidInput: If a row is malformed, or the text holds no rows
    """
    rows = []
    n_columns = len(column_names) if column_names is not None else None

    for line_number, line in enumerate(text.splitlines(), start=1):
        fields = line.split()
        if not fields:
            continue

        try:
            values = [float(field) for field in fields]
        except ValueError:
            raise InvalidInput(f"Invalid data at line {line_number}: {line}")

        if n_columns is None:
            n_columns = len(values)
        if len(values) != n_columns or not all(math.isfinite(v) for v in values):
            raise InvalidInput(f"Invalid data at line {line_number}: {line}")

        rows.append(values)

    if not rows:
        raise InvalidInput('Dataset is empty')

    names = list(column_names) if column_names is not None else default_column_names(n_columns)
    logger.info(f"Parsed {len(rows)} samples with {n_columns} columns")
    return FeatureMatrix(np.array(rows, dtype=float), colnames=names)


def load_dataset(filepath: str, column_names: Optional[Sequence[str]] = None) -> FeatureMatrix:
    """
    Load a whitespace-delimited dataset file.

    Args:
        filepath: Path to the data file
        column_names: Feature names (see parse_dataset)

    Returns:
        FeatureMatrix
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Dataset file not found: {filepath}")

    with open(filepath, 'r') as f:
        return parse_dataset(f.read(), column_names)


def train_validation_split(fmat: FeatureMatrix,
                           validation_ratio: float = 0.2,
                           seed: Optional[int] = None) -> Tuple[FeatureMatrix, FeatureMatrix]:
    """
    Shuffle samples and split them into training and validation sets.

    The first ``floor(n * (1 - validation_ratio))`` shuffled samples form
    the training set.

    Args:
        fmat: Samples to split
        validation_ratio: Fraction of samples held out, in [0, 1]
        seed: Seed for a reproducible shuffle

    Returns:
        Tuple of (train, validation)
    """
    if not 0.0 <= validation_ratio <= 1.0:
        raise InvalidInput(f"validation_ratio must be in [0, 1], got {validation_ratio}")

    rng = np.random.default_rng(seed)
    order = rng.permutation(fmat.n_samples)
    split_index = int(math.floor(fmat.n_samples * (1 - validation_ratio)))

    return fmat.row_subset(order[:split_index]), fmat.row_subset(order[split_index:])
