"""
Core infrastructure for PyCovMat.

This module provides shared abstractions and numeric infrastructure used
by the covariance engine.

Key components:
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Tolerances, random source, packed linear algebra kernels
"""

from pycovmat.core.exceptions import (
    PyCovMatError,
    ValidationError,
    DimensionError,
    NumericalError,
    NotPositiveDefiniteError,
    MatrixNotSetError,
)

__all__ = [
    "PyCovMatError",
    "ValidationError",
    "DimensionError",
    "NumericalError",
    "NotPositiveDefiniteError",
    "MatrixNotSetError",
]
