"""
Gaussian sampling from a packed Cholesky factor.

A draw from N(0, C) is L.z with z ~ N(0, I) and C = L.L'. Both paths
return 0.5*z'z per draw, the negative log-likelihood of the standard
normal deviates (equal to 0.5*delta'.Cinv.delta of the transformed draw).

The batched path generates all deviates at once and applies L row by
row across every sample; it overtakes repeated single draws somewhere
around BATCH_SAMPLING_CROSSOVER samples, depending on size and hardware.
Both paths are statistically equivalent.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from pycovmat.core.compute.linalg.packed import (
    cholesky_multiply,
    cholesky_multiply_batch,
    symmetric_matrix_size,
)


BATCH_SAMPLING_CROSSOVER = 32


def sample_one(
    packed_factor: NDArray[np.float64],
    rng: np.random.Generator,
    out: NDArray[np.float64] | None = None,
) -> tuple[NDArray[np.float64], float]:
    """Single draw L.z; returns (delta, 0.5*z'z)."""
    size = symmetric_matrix_size(packed_factor.shape[0])
    z = rng.standard_normal(size)
    delta = cholesky_multiply(packed_factor, z, out=out)
    return delta, 0.5 * float(z @ z)


def sample_many(
    packed_factor: NDArray[np.float64],
    nsample: int,
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """nsample draws as a C-contiguous (nsample, size) array."""
    size = symmetric_matrix_size(packed_factor.shape[0])
    z = rng.standard_normal((nsample, size))
    return cholesky_multiply_batch(packed_factor, z)
