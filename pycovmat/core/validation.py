"""
Input validation utilities for PyCovMat.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numbers

import numpy as np
from numpy.typing import ArrayLike, NDArray
from typing import Any

from pycovmat.core.exceptions import ValidationError, DimensionError


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.float64]:
    """
    Validate and convert input to a float64 numpy array.

    Accepts any array-like and converts to numpy array. Rejects inputs
    that result in object dtype (indicating mixed types or non-numeric data).

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray with float64 dtype

    Raises:
        ValidationError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        raise ValidationError(
            f"{name}: converted to object dtype, indicating mixed types or non-numeric data"
        )

    if not np.issubdtype(result.dtype, np.number):
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    if result.dtype != np.float64:
        result = result.astype(np.float64)

    return result


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Args:
        array: Array to check
        name: Parameter name for error messages

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_ndim(array: NDArray[np.floating[Any]], ndim: int, name: str) -> None:
    """
    Verify array has exactly the specified number of dimensions.

    Raises:
        DimensionError: If array has wrong number of dimensions
    """
    if array.ndim != ndim:
        raise DimensionError(
            f"{name}: expected {ndim}D array, got {array.ndim}D with shape {array.shape}"
        )


def check_1d(array: NDArray[np.floating[Any]], name: str) -> None:
    """Verify array is 1-dimensional."""
    check_ndim(array, 1, name)


def check_2d(array: NDArray[np.floating[Any]], name: str) -> None:
    """Verify array is 2-dimensional."""
    check_ndim(array, 2, name)


def check_length(array: NDArray[np.floating[Any]], length: int, name: str) -> None:
    """
    Verify a 1D array has the expected number of elements.

    Args:
        array: Array to check
        length: Required length (typically the matrix size)
        name: Parameter name for error messages

    Raises:
        DimensionError: If array is not 1D or has the wrong length
    """
    check_1d(array, name)
    if array.shape[0] != length:
        raise DimensionError(
            f"{name}: expected length {length}, got {array.shape[0]}"
        )


def check_vector(vector: ArrayLike, length: int, name: str) -> NDArray[np.float64]:
    """Convert a vector argument and verify its length in one step."""
    result = check_array(vector, name)
    check_length(result, length, name)
    return result


def check_index(index: int, size: int, name: str) -> int:
    """
    Verify an integer index lies in [0, size).

    Returns:
        The index as a plain int

    Raises:
        DimensionError: If the index is not an integer or is out of range
    """
    if not isinstance(index, numbers.Integral) or isinstance(index, bool):
        raise DimensionError(f"{name}: expected an integer index, got {index!r}")
    if index < 0 or index >= size:
        raise DimensionError(
            f"{name}: index {index} out of range [0, {size})"
        )
    return int(index)


def check_positive(value: float, name: str) -> float:
    """
    Verify a scalar is finite and strictly positive.

    Raises:
        ValidationError: If value <= 0, NaN or infinite
    """
    value = float(value)
    if not np.isfinite(value) or value <= 0:
        raise ValidationError(f"{name}: must be positive, got {value}")
    return value
