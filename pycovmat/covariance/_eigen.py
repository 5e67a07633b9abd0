"""
Eigen-mode analysis of a covariance matrix.

Eigenmodes are independent directions of correlated uncertainty. They are
returned in ascending eigenvalue order, eigenvectors as rows, so mode k
of a size-n matrix occupies eigenvectors[k] (flat offset k*n + bin).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from pycovmat.core.compute.linalg.packed import unpack_symmetric, pack_symmetric
from pycovmat.core.exceptions import ValidationError


@dataclass(frozen=True)
class EigenModes:
    """
    Eigen-decomposition of a covariance matrix.

    Attributes:
        eigenvalues: shape (n,), ascending
        eigenvectors: shape (n, n), row k is the unit eigenvector of mode k
    """
    eigenvalues: NDArray[np.floating[Any]]
    eigenvectors: NDArray[np.floating[Any]]

    @property
    def size(self) -> int:
        return self.eigenvalues.shape[0]

    def mode_range(self, nkeep: int) -> tuple[int, int]:
        """
        Index range [start, stop) of the modes selected by nkeep.

        nkeep > 0 selects the first nkeep modes, nkeep < 0 the last |nkeep|.
        """
        if nkeep == 0 or nkeep >= self.size or nkeep <= -self.size:
            raise ValidationError(
                f"nkeep: must be nonzero with |nkeep| < {self.size}, got {nkeep}"
            )
        if nkeep > 0:
            return 0, nkeep
        return self.size + nkeep, self.size


def eigen_modes(packed_covariance: NDArray[np.float64]) -> EigenModes:
    """Solve the symmetric eigenproblem of a packed covariance."""
    eigenvalues, vectors = linalg.eigh(unpack_symmetric(packed_covariance))
    return EigenModes(
        eigenvalues=eigenvalues,
        eigenvectors=np.ascontiguousarray(vectors.T),
    )


def rescaled_covariance(
    modes: EigenModes,
    mode_scales: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Packed covariance V.diag(lambda*s).V' for per-mode scales s."""
    vectors = modes.eigenvectors
    scaled = modes.eigenvalues * mode_scales
    dense = (vectors.T * scaled) @ vectors
    return pack_symmetric(dense)


def project(
    modes: EigenModes,
    data: NDArray[np.float64],
    nkeep: int,
) -> tuple[NDArray[np.float64], int]:
    """
    Project a data vector onto the modes selected by nkeep.

    Returns:
        (projected, ndrop) where ndrop is the number of discarded modes
    """
    start, stop = modes.mode_range(nkeep)
    kept = modes.eigenvectors[start:stop]
    projected = (kept @ data) @ kept
    return projected, modes.size - (stop - start)
