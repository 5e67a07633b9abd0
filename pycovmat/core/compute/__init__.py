"""
Shared compute infrastructure for PyCovMat.

IMPORTANT: This is NOT where the covariance engine lives. That is in
pycovmat.covariance. This module contains shared NUMERIC infrastructure.

Submodules:
    tolerances: Tolerance tiers for numerical comparison
    random: Injectable / process-wide random number source
    linalg: Packed symmetric matrix kernels
"""

from pycovmat.core.compute.random import (
    get_default_rng,
    set_default_rng,
    resolve_rng,
)
from pycovmat.core.compute.tolerances import ToleranceTier, select_tolerance

__all__ = [
    # Random source
    "get_default_rng",
    "set_default_rng",
    "resolve_rng",
    # Tolerances
    "ToleranceTier",
    "select_tolerance",
]
