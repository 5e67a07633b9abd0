"""Text dump of covariance matrix elements."""

from __future__ import annotations

from typing import Sequence, TextIO

import numpy as np
from numpy.typing import NDArray

from pycovmat.core.exceptions import DimensionError


def format_rows(
    dense: NDArray[np.float64],
    normalized: bool = False,
    fmt: str = "%+10.3g",
    labels: Sequence[str] | None = None,
) -> list[str]:
    """
    Format a dense covariance matrix, one string per row.

    With normalized=True the diagonal shows sqrt(cov(i,i)) and off-diagonal
    elements show rho(i,j) = cov(i,j)/sqrt(cov(i,i)*cov(j,j)).
    """
    size = dense.shape[0]
    if labels is not None:
        labels = [str(label) for label in labels]
        if len(labels) != size:
            raise DimensionError(
                f"labels: expected {size} labels, got {len(labels)}"
            )

    if normalized:
        sigma = np.sqrt(np.diag(dense))
        values = dense / np.outer(sigma, sigma)
        np.fill_diagonal(values, sigma)
    else:
        values = dense

    width = max(len(label) for label in labels) if labels is not None else 0
    lines = []
    for i in range(size):
        prefix = f"{labels[i]:<{width}} " if labels is not None else ""
        lines.append(prefix + " ".join(fmt % values[i, j] for j in range(size)))
    return lines


def write_rows(stream: TextIO, lines: list[str]) -> None:
    for line in lines:
        stream.write(line + "\n")
