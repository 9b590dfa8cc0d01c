"""
Dataset input for featuremath.

This module provides functionality for reading whitespace-delimited
numeric datasets and splitting them into training and validation sets.
"""

from featuremath.data.loader import (
    AIRFOIL_COLUMNS, AIRFOIL_TARGET, parse_dataset, load_dataset, train_validation_split
)
