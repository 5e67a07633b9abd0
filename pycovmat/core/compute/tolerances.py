"""
Tolerance tiers for numerical validation.

Defines precision expectations for the packed kernels:
- CPU FP64 (reference): machine precision for well-conditioned matrices
- CPU FP64 ill-conditioned: relaxed for condition numbers above 1e4
- SYMMETRY: accepted asymmetry of dense inputs before they are packed

Used by the test suite and by the dense-input symmetry check.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


# Round trips through Cholesky + inversion on well-conditioned input
CPU_FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='cpu_fp64',
    description='CPU double precision, well-conditioned',
)

# Same, ill-conditioned problems (cond > 1e4)
CPU_FP64_ILL_CONDITIONED = ToleranceTier(
    rtol=1e-4,
    atol=1e-6,
    name='cpu_fp64_ill_conditioned',
    description='CPU double precision, ill-conditioned (cond > 1e4)',
)

# Dense inputs whose asymmetry is below this are symmetrized with a warning
SYMMETRY = ToleranceTier(
    rtol=1e-10,
    atol=1e-14,
    name='symmetry',
    description='Round-off asymmetry accepted for dense inputs',
)

# Condition number above which results are compared with the relaxed tier
ILL_CONDITIONED_THRESHOLD = 1e4


def select_tolerance(condition_number: float) -> ToleranceTier:
    """Select the comparison tier for a matrix of the given condition number."""
    if condition_number > ILL_CONDITIONED_THRESHOLD:
        return CPU_FP64_ILL_CONDITIONED
    return CPU_FP64
