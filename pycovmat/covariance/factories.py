"""
Convenience constructors for CovarianceMatrix.

    create_diagonal_covariance(3)             identity
    create_diagonal_covariance(3, 0.5)        0.5 * identity
    create_diagonal_covariance([1, 2, 4])     diag(1, 2, 4)
    generate_random_covariance(5, scale=2)    random SPD, det = 2**5
"""

from __future__ import annotations

import numbers

import numpy as np
from numpy.typing import ArrayLike

from pycovmat.core.compute.linalg.packed import pack_symmetric, packed_size
from pycovmat.core.compute.random import resolve_rng
from pycovmat.core.exceptions import ValidationError
from pycovmat.core.validation import check_array, check_1d, check_positive
from pycovmat.covariance.matrix import CovarianceMatrix


def create_diagonal_covariance(
    size_or_values: int | ArrayLike,
    value: float = 1.0,
) -> CovarianceMatrix:
    """
    Create a diagonal covariance matrix.

    Args:
        size_or_values: Either the matrix size, in which case every
            diagonal element is ``value``, or a sequence of positive
            diagonal values.
        value: Constant diagonal value used with an integer size.
    """
    if isinstance(size_or_values, numbers.Integral) and not isinstance(size_or_values, bool):
        size = int(size_or_values)
        if size <= 0:
            raise ValidationError(f"size: must be a positive integer, got {size}")
        diagonal = np.full(size, check_positive(value, 'value'))
    else:
        diagonal = check_array(size_or_values, 'values')
        check_1d(diagonal, 'values')
        if diagonal.shape[0] == 0:
            raise ValidationError("values: must contain at least one element")
        size = diagonal.shape[0]

    packed = np.zeros(packed_size(size))
    index = np.arange(size)
    packed[(index * (index + 3)) // 2] = diagonal
    return CovarianceMatrix.from_packed(packed)


def generate_random_covariance(
    size: int,
    scale: float = 1.0,
    rng: np.random.Generator | None = None,
) -> CovarianceMatrix:
    """
    Generate a random symmetric positive definite covariance matrix.

    The eigenvectors are a random rotation and the eigenvalues are
    log-normal with unit geometric mean, times ``scale``. The determinant
    is therefore scale**size, the determinant of scale*identity, and the
    generated covariances are directly proportional to scale.
    """
    if isinstance(size, bool) or not isinstance(size, numbers.Integral) or size <= 0:
        raise ValidationError(f"size: must be a positive integer, got {size!r}")
    scale = check_positive(scale, 'scale')
    rng = resolve_rng(rng)

    # Haar-distributed rotation from the QR decomposition of a Gaussian matrix
    q, r = np.linalg.qr(rng.standard_normal((size, size)))
    q = q * np.sign(np.diag(r))

    log_eigenvalues = rng.standard_normal(size)
    log_eigenvalues -= log_eigenvalues.mean()
    eigenvalues = scale * np.exp(log_eigenvalues)

    dense = (q * eigenvalues) @ q.T
    return CovarianceMatrix.from_packed(pack_symmetric(0.5 * (dense + dense.T)))
