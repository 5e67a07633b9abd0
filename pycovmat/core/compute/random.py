"""
Random number source for sampling.

Every sampling entry point accepts an optional numpy Generator. When none
is supplied, a process-wide default generator is used; it can be replaced
(e.g. reseeded for reproducibility) with set_default_rng().
"""

from __future__ import annotations

import numpy as np


_default_rng: np.random.Generator = np.random.default_rng()


def get_default_rng() -> np.random.Generator:
    """Return the process-wide default generator."""
    return _default_rng


def set_default_rng(
    seed_or_rng: int | np.random.Generator | None = None,
) -> np.random.Generator:
    """
    Replace the process-wide default generator.

    Args:
        seed_or_rng: A Generator to install as-is, or a seed (None for
            fresh OS entropy) passed to numpy.random.default_rng.

    Returns:
        The newly installed generator
    """
    global _default_rng
    if isinstance(seed_or_rng, np.random.Generator):
        _default_rng = seed_or_rng
    else:
        _default_rng = np.random.default_rng(seed_or_rng)
    return _default_rng


def resolve_rng(rng: np.random.Generator | None) -> np.random.Generator:
    """Return rng, or the default generator when rng is None."""
    if rng is None:
        return _default_rng
    if not isinstance(rng, np.random.Generator):
        raise TypeError(
            f"rng must be a numpy.random.Generator or None, got {type(rng).__name__}"
        )
    return rng
