"""
Covariance matrix engine.

Public API:
    CovarianceMatrix: packed SPD matrix with covariance / inverse access
    CacheState: which dense representations are current
    EigenModes: result of CovarianceMatrix.get_eigen_modes()
    create_diagonal_covariance, generate_random_covariance: constructors
"""

from pycovmat.covariance._eigen import EigenModes
from pycovmat.covariance._sampling import BATCH_SAMPLING_CROSSOVER
from pycovmat.covariance._storage import CacheState
from pycovmat.covariance.matrix import CovarianceMatrix
from pycovmat.covariance.factories import (
    create_diagonal_covariance,
    generate_random_covariance,
)

__all__ = [
    "CovarianceMatrix",
    "CacheState",
    "EigenModes",
    "BATCH_SAMPLING_CROSSOVER",
    "create_diagonal_covariance",
    "generate_random_covariance",
]
