"""
Packed symmetric matrix kernels.

An n x n symmetric matrix is stored as n(n+1)/2 float64 values in the BLAS
column-major packed format: element (row, col) with row <= col lives at

    row + col*(col+1)/2

so the packed vector reads { m00, m01, m11, m02, m12, m22, ... }. Column
``i`` of the upper triangle, which is also row ``i`` of a lower-triangular
matrix, is therefore the contiguous slice

    packed[i*(i+1)/2 : i*(i+1)/2 + i + 1]

Every kernel below works directly on that layout, row by row, so that no
dense n x n temporary is ever needed. Inner loops are vectorized with
numpy; the outer loops are O(n) or O(n^2) Python iterations.

Kernels:
    cholesky_decompose: in-place L with L.L' = A
    invert_cholesky: in-place A^-1 from the factor L
    symmetric_matrix_multiply: A.v
    cholesky_multiply / cholesky_multiply_batch: L.z for sampling
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray

from pycovmat.core.exceptions import (
    DimensionError,
    NotPositiveDefiniteError,
    ValidationError,
)


def packed_size(size: int) -> int:
    """Number of packed elements for a size x size symmetric matrix."""
    return (size * (size + 1)) // 2


def symmetric_matrix_index(row: int, col: int, size: int) -> int:
    """
    Return the packed offset of element (row, col).

    Either index order is accepted since the matrix is symmetric.

    Raises:
        DimensionError: If row or col is outside [0, size)
    """
    if row < 0 or row >= size or col < 0 or col >= size:
        raise DimensionError(
            f"index ({row},{col}) out of range for size {size}"
        )
    if row > col:
        row, col = col, row
    return row + (col * (col + 1)) // 2


def symmetric_matrix_size(nelem: int) -> int:
    """
    Return n such that n(n+1)/2 == nelem.

    Raises:
        ValidationError: If nelem is not a positive triangular number
    """
    if nelem <= 0:
        raise ValidationError(
            f"packed element count must be positive, got {nelem}"
        )
    size = (math.isqrt(8 * nelem + 1) - 1) // 2
    if packed_size(size) != nelem:
        raise ValidationError(
            f"packed element count {nelem} is not n(n+1)/2 for any integer n"
        )
    return size


def _row(packed: NDArray[np.float64], i: int) -> NDArray[np.float64]:
    """View of row i of a packed lower-triangular matrix (length i+1)."""
    start = (i * (i + 1)) // 2
    return packed[start:start + i + 1]


def _resolve_size(packed: NDArray[np.float64], size: int | None) -> int:
    if size is None or size <= 0:
        return symmetric_matrix_size(packed.shape[0])
    if packed.shape[0] != packed_size(size):
        raise DimensionError(
            f"packed array has {packed.shape[0]} elements, "
            f"expected {packed_size(size)} for size {size}"
        )
    return size


def cholesky_decompose(
    packed: NDArray[np.float64],
    size: int | None = None,
    matrix_name: str = 'matrix',
) -> None:
    """
    Cholesky-decompose a packed symmetric positive definite matrix in place.

    On return ``packed`` holds the lower-triangular factor L (row i of L at
    the slice of column i) such that L.L' equals the input.

    Args:
        packed: Packed symmetric matrix, overwritten with L
        size: Matrix size, inferred from the array length if not given
        matrix_name: Name used in error messages

    Raises:
        NotPositiveDefiniteError: At the first pivot <= 0. ``packed`` is
            partially overwritten in that case, so callers pass a copy.
    """
    size = _resolve_size(packed, size)
    for i in range(size):
        row_i = _row(packed, i)
        for j in range(i):
            row_j = _row(packed, j)
            row_i[j] = (row_i[j] - row_i[:j] @ row_j[:j]) / row_j[j]
        pivot = row_i[i] - row_i[:i] @ row_i[:i]
        if not pivot > 0:
            raise NotPositiveDefiniteError(
                f"{matrix_name} is not positive definite: "
                f"Cholesky pivot {i} is {pivot:.6g}",
                matrix_name=matrix_name,
                pivot_index=i,
                pivot_value=float(pivot),
            )
        row_i[i] = math.sqrt(pivot)


def invert_triangular(packed: NDArray[np.float64], size: int | None = None) -> None:
    """
    Invert a packed lower-triangular matrix in place.

    Row i of M = L^-1 only depends on row i of L and rows < i of M, so
    rows are replaced in ascending order.
    """
    size = _resolve_size(packed, size)
    for i in range(size):
        row_i = _row(packed, i)
        diag = row_i[i]
        acc = np.zeros(i + 1)
        for k in range(i):
            acc[:k + 1] += row_i[k] * _row(packed, k)
        row_i[:i] = -acc[:i] / diag
        row_i[i] = 1.0 / diag


def invert_cholesky(packed: NDArray[np.float64], size: int | None = None) -> None:
    """
    Invert a symmetric positive definite matrix given its Cholesky factor.

    ``packed`` must hold L as produced by cholesky_decompose. On return it
    holds A^-1 = L'^-1 . L^-1 in packed symmetric form.

    Element (i, j), j <= i, of the result is sum_{k >= i} M[k,i] M[k,j]
    with M = L^-1; it only reads rows >= i of M, so rows are overwritten
    in ascending order.
    """
    size = _resolve_size(packed, size)
    invert_triangular(packed, size)
    for i in range(size):
        acc = np.zeros(i + 1)
        for k in range(i, size):
            row_k = _row(packed, k)
            acc += row_k[i] * row_k[:i + 1]
        _row(packed, i)[:] = acc


def symmetric_matrix_multiply(
    packed: NDArray[np.float64],
    vector: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Multiply a packed symmetric matrix by a vector.

    Each off-diagonal element contributes to two output positions.

    Raises:
        DimensionError: If the vector length does not match the matrix size
    """
    size = symmetric_matrix_size(packed.shape[0])
    if vector.shape != (size,):
        raise DimensionError(
            f"vector has shape {vector.shape}, expected ({size},)"
        )
    result = np.zeros(size)
    for j in range(size):
        col = _row(packed, j)
        result[:j + 1] += col * vector[j]
        result[j] += col[:j] @ vector[:j]
    return result


def cholesky_multiply(
    packed_factor: NDArray[np.float64],
    vector: NDArray[np.float64],
    out: NDArray[np.float64] | None = None,
) -> NDArray[np.float64]:
    """Compute L.z for a packed lower-triangular L."""
    size = symmetric_matrix_size(packed_factor.shape[0])
    if out is None:
        out = np.empty(size)
    for i in range(size):
        out[i] = _row(packed_factor, i) @ vector[:i + 1]
    return out


def cholesky_multiply_batch(
    packed_factor: NDArray[np.float64],
    matrix: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Compute L.z for every row z of ``matrix`` (shape (nsample, size)).

    Returns a C-contiguous array of the same shape whose row n is L.z_n.
    """
    size = symmetric_matrix_size(packed_factor.shape[0])
    result = np.empty_like(matrix)
    for i in range(size):
        result[:, i] = matrix[:, :i + 1] @ _row(packed_factor, i)
    return result


def factor_diagonal(packed_factor: NDArray[np.float64]) -> NDArray[np.float64]:
    """Diagonal elements of a packed matrix."""
    size = symmetric_matrix_size(packed_factor.shape[0])
    index = np.arange(size)
    return packed_factor[(index * (index + 3)) // 2]


def pack_symmetric(dense: NDArray[np.float64]) -> NDArray[np.float64]:
    """Pack the upper triangle of a square matrix."""
    size = dense.shape[0]
    rows, cols = np.triu_indices(size)
    packed = np.empty(packed_size(size))
    packed[rows + (cols * (cols + 1)) // 2] = dense[rows, cols]
    return packed


def unpack_symmetric(packed: NDArray[np.float64]) -> NDArray[np.float64]:
    """Expand a packed symmetric matrix to a dense square array."""
    size = symmetric_matrix_size(packed.shape[0])
    rows, cols = np.triu_indices(size)
    dense = np.empty((size, size))
    values = packed[rows + (cols * (cols + 1)) // 2]
    dense[rows, cols] = values
    dense[cols, rows] = values
    return dense


def unpack_lower(packed_factor: NDArray[np.float64]) -> NDArray[np.float64]:
    """Expand a packed lower-triangular factor to a dense square array."""
    size = symmetric_matrix_size(packed_factor.shape[0])
    rows, cols = np.tril_indices(size)
    dense = np.zeros((size, size))
    dense[rows, cols] = packed_factor[cols + (rows * (rows + 1)) // 2]
    return dense
