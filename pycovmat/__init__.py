"""
PyCovMat: packed symmetric covariance matrices for statistical fitting.

Provides a covariance matrix engine with lazy dual access as covariance
and inverse covariance, in-place packed linear algebra, lossless
compression of diagonal and sparse inverse covariances, and sampling
from the implied multivariate Gaussian.

Submodules:
    covariance: CovarianceMatrix and its constructors
    core: Exceptions, validation and packed linear algebra kernels
"""

__version__ = "0.1.0"

from pycovmat import covariance
from pycovmat.covariance import (
    CovarianceMatrix,
    CacheState,
    EigenModes,
    create_diagonal_covariance,
    generate_random_covariance,
)

__all__ = [
    "__version__",
    "covariance",
    "CovarianceMatrix",
    "CacheState",
    "EigenModes",
    "create_diagonal_covariance",
    "generate_random_covariance",
]
