"""
Storage variants for CovarianceMatrix.

A matrix is held either densely, as up to three packed arrays (covariance,
inverse covariance and the Cholesky factor of the covariance), or in a
compressed form that only encodes the inverse covariance: its diagonal
plus the packed indices and values of its nonzero off-diagonal elements.

compress_storage() and decompress_storage() convert between the two. The
inverse covariance survives a round trip bit for bit since values are
only copied, never recomputed.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pycovmat.core.compute.linalg.packed import packed_size


class CacheState(enum.Enum):
    """Which dense representations are currently valid."""
    UNSET = 'unset'
    COVARIANCE = 'covariance'
    INVERSE = 'inverse'
    BOTH = 'both'


@dataclass
class _DenseStorage:
    """
    Packed dense arrays. Any of them may be None; at least one of
    covariance / inverse is present once an element has been set, and
    cholesky is only ever present alongside covariance.
    """
    covariance: NDArray[np.float64] | None = None
    inverse: NDArray[np.float64] | None = None
    cholesky: NDArray[np.float64] | None = None

    @property
    def state(self) -> CacheState:
        if self.covariance is not None and self.inverse is not None:
            return CacheState.BOTH
        if self.covariance is not None:
            return CacheState.COVARIANCE
        if self.inverse is not None:
            return CacheState.INVERSE
        return CacheState.UNSET

    def buffers(self) -> tuple[Any, ...]:
        return (self.covariance, self.inverse, self.cholesky)


@dataclass(frozen=True)
class _CompressedStorage:
    """Inverse covariance as diagonal + sparse off-diagonal elements."""
    diagonal: NDArray[np.float64]
    offdiag_index: NDArray[np.int64]
    offdiag_value: NDArray[np.float64]

    @property
    def size(self) -> int:
        return self.diagonal.shape[0]

    def buffers(self) -> tuple[Any, ...]:
        # Empty off-diagonal arrays count as unallocated
        index = self.offdiag_index if self.offdiag_index.size else None
        value = self.offdiag_value if self.offdiag_value.size else None
        return (self.diagonal, index, value)


def _diagonal_offsets(size: int) -> NDArray[np.int64]:
    index = np.arange(size, dtype=np.int64)
    return (index * (index + 3)) // 2


def compress_storage(inverse: NDArray[np.float64], size: int) -> _CompressedStorage | None:
    """
    Encode a packed inverse covariance compactly.

    Returns None when the compact encoding (size diagonal values plus an
    index and a value per nonzero off-diagonal element) would not be
    smaller than one packed array.
    """
    diag_offsets = _diagonal_offsets(size)
    is_offdiag = np.ones(inverse.shape[0], dtype=bool)
    is_offdiag[diag_offsets] = False
    # Compare bit patterns so that a stored -0.0 is kept
    is_set = inverse.view(np.int64) != 0
    offdiag_index = np.flatnonzero(is_offdiag & is_set).astype(np.int64)

    if size + 2 * offdiag_index.shape[0] >= packed_size(size):
        return None

    return _CompressedStorage(
        diagonal=inverse[diag_offsets].copy(),
        offdiag_index=offdiag_index,
        offdiag_value=inverse[offdiag_index].copy(),
    )


def decompress_storage(compressed: _CompressedStorage) -> _DenseStorage:
    """Rebuild dense storage holding only the exact inverse covariance."""
    size = compressed.size
    inverse = np.zeros(packed_size(size))
    inverse[_diagonal_offsets(size)] = compressed.diagonal
    inverse[compressed.offdiag_index] = compressed.offdiag_value
    return _DenseStorage(inverse=inverse)


def accumulate_compressed(
    target: NDArray[np.float64],
    compressed: _CompressedStorage,
    weight: float,
) -> None:
    """Add weight times a compressed inverse covariance into a packed array."""
    target[_diagonal_offsets(compressed.size)] += weight * compressed.diagonal
    target[compressed.offdiag_index] += weight * compressed.offdiag_value


def buffer_bytes(buffers: tuple[Any, ...]) -> int:
    """Total bytes held by the allocated buffers."""
    return sum(b.nbytes for b in buffers if b is not None)
