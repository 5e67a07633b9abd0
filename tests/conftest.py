"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np

from pycovmat.core.compute.linalg.packed import pack_symmetric


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def spd_dense(rng):
    """Well-conditioned 5x5 symmetric positive definite matrix."""
    a = rng.standard_normal((5, 5))
    dense = a @ a.T + 5.0 * np.eye(5)
    return 0.5 * (dense + dense.T)


@pytest.fixture
def spd_packed(spd_dense):
    """spd_dense in packed storage."""
    return pack_symmetric(spd_dense)


@pytest.fixture
def not_positive_definite_packed():
    """[[1, 2], [2, 1]]: determinant -3."""
    return np.array([1.0, 2.0, 1.0])


@pytest.fixture
def ill_conditioned_dense(rng):
    """6x6 SPD matrix with eigenvalues 1 ... 10**-4.5 (condition number ~3e4)."""
    q, r = np.linalg.qr(rng.standard_normal((6, 6)))
    q = q * np.sign(np.diag(r))
    eigenvalues = np.logspace(0.0, -4.5, 6)
    dense = (q * eigenvalues) @ q.T
    return 0.5 * (dense + dense.T)
