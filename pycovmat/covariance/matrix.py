"""
CovarianceMatrix: a symmetric positive definite matrix with dual access.

Elements can be read and written either as covariance or as inverse
covariance. Writing one representation invalidates the other, which is
only recomputed (Cholesky decomposition + packed inversion) the next time
it is read. A matrix whose inverse covariance is diagonal or sparse can
be compressed; any later operation transparently decompresses it first.

All dense storage uses the packed symmetric layout of
pycovmat.core.compute.linalg.packed.

Instances are often shared by several owners. The engine never copies
implicitly: an owner that wants to mutate a shared matrix calls copy()
first. Not thread-safe, since reads may update cached state.
"""

from __future__ import annotations

import numbers
import sys
import warnings
from typing import Any, Iterable, Sequence, TextIO

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import linalg

from pycovmat.core.compute.linalg.packed import (
    cholesky_decompose,
    factor_diagonal,
    invert_cholesky,
    pack_symmetric,
    packed_size,
    symmetric_matrix_index,
    symmetric_matrix_multiply,
    symmetric_matrix_size,
    unpack_lower,
    unpack_symmetric,
)
from pycovmat.core.compute.random import resolve_rng
from pycovmat.core.compute.tolerances import SYMMETRY
from pycovmat.core.exceptions import (
    DimensionError,
    MatrixNotSetError,
    NotPositiveDefiniteError,
    ValidationError,
)
from pycovmat.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_finite,
    check_index,
    check_positive,
    check_vector,
)
from pycovmat.covariance._eigen import (
    EigenModes,
    eigen_modes,
    project,
    rescaled_covariance,
)
from pycovmat.covariance._printing import format_rows, write_rows
from pycovmat.covariance._sampling import sample_many, sample_one
from pycovmat.covariance._storage import (
    CacheState,
    _CompressedStorage,
    _DenseStorage,
    accumulate_compressed,
    buffer_bytes,
    compress_storage,
    decompress_storage,
)


class CovarianceMatrix:
    """
    Symmetric positive definite covariance matrix in packed storage.

    Construction:
        CovarianceMatrix(size)                  empty, set elements before use
        CovarianceMatrix.from_packed(elements)  column-wise packed upper triangle
        CovarianceMatrix.from_dense(matrix)     square symmetric array

    The packed element order is

        m00 m01 m02 ...
            m11 m12 ...  ==> [m00, m01, m11, m02, m12, m22, ...]
                m22 ...

    i.e. m(i,j) = elements[i + j*(j+1)/2] for i <= j.

    Examples:
        >>> C = CovarianceMatrix.from_packed([1.0, 0.0, 2.0])
        >>> C.get_inverse_covariance(1, 1)   # 1/2
        >>> C.chi_square([1.0, 2.0])         # 1 + 4/2
        >>> C.compress()                     # diagonal, so True
    """

    def __init__(self, size: int):
        if (isinstance(size, bool) or not isinstance(size, numbers.Integral)
                or size <= 0):
            raise ValidationError(f"size: must be a positive integer, got {size!r}")
        self._size = int(size)
        self._storage: _DenseStorage | _CompressedStorage = _DenseStorage()

    @classmethod
    def from_packed(cls, elements: ArrayLike) -> CovarianceMatrix:
        """
        Build a matrix from packed covariance elements.

        The size is inferred from the element count, which must be
        n(n+1)/2 for some integer n. Diagonal elements must be positive;
        full positive definiteness is only checked once a decomposition
        is needed.
        """
        packed = check_array(elements, 'elements')
        check_1d(packed, 'elements')
        check_finite(packed, 'elements')
        size = symmetric_matrix_size(packed.shape[0])

        index = np.arange(size)
        diagonal = packed[(index * (index + 3)) // 2]
        bad = np.flatnonzero(diagonal <= 0)
        if bad.size:
            i = int(bad[0])
            raise NotPositiveDefiniteError(
                f"elements: diagonal element {i} must be positive, got {diagonal[i]}",
                matrix_name='covariance',
                pivot_index=i,
                pivot_value=float(diagonal[i]),
            )

        matrix = cls(size)
        matrix._storage = _DenseStorage(covariance=packed.copy())
        return matrix

    @classmethod
    def from_dense(cls, matrix: ArrayLike) -> CovarianceMatrix:
        """
        Build a matrix from a dense square covariance array.

        An input that is asymmetric only at round-off level is symmetrized
        with a RuntimeWarning; larger asymmetry is rejected.
        """
        dense = check_array(matrix, 'matrix')
        check_2d(dense, 'matrix')
        check_finite(dense, 'matrix')
        if dense.shape[0] != dense.shape[1]:
            raise DimensionError(f"matrix: expected a square array, got shape {dense.shape}")

        if not np.array_equal(dense, dense.T):
            if not np.allclose(dense, dense.T, rtol=SYMMETRY.rtol, atol=SYMMETRY.atol):
                raise ValidationError(
                    f"matrix: not symmetric (max |A - A'| = {np.max(np.abs(dense - dense.T)):.3g})"
                )
            warnings.warn(
                "matrix: symmetrizing input with round-off level asymmetry",
                RuntimeWarning,
                stacklevel=2,
            )
            dense = 0.5 * (dense + dense.T)

        return cls.from_packed(pack_symmetric(dense))

    # ------------------------------------------------------------------
    # Inspection (never decompresses)

    @property
    def size(self) -> int:
        """Fixed dimension of this matrix."""
        return self._size

    @property
    def is_compressed(self) -> bool:
        """Whether the compact inverse-covariance encoding is active."""
        return isinstance(self._storage, _CompressedStorage)

    @property
    def state(self) -> CacheState:
        """
        Which dense representations are current.

        A compressed matrix reports INVERSE, the representation it encodes.
        """
        if isinstance(self._storage, _CompressedStorage):
            return CacheState.INVERSE
        return self._storage.state

    @property
    def n_elements(self) -> int:
        """Number of nonzero elements held by the stored representation."""
        storage = self._storage
        if isinstance(storage, _CompressedStorage):
            return storage.size + storage.offdiag_index.shape[0]
        stored = storage.covariance if storage.covariance is not None else storage.inverse
        if stored is None:
            return 0
        return int(np.count_nonzero(stored))

    def get_memory_usage(self) -> int:
        """Bytes held by the currently allocated internal buffers."""
        return buffer_bytes(self._storage.buffers())

    def get_memory_state(self) -> str:
        """
        Describe which internal buffers are allocated, as "[MICDZV] nbytes".

        Each letter is replaced by "-" when its buffer is absent:
        M covariance, I inverse covariance, C Cholesky factor,
        D compressed diagonal, Z off-diagonal indices, V off-diagonal values.

            [---...]  new object, no elements set
            [M--...]  most recent change was to the covariance
            [-I-...]  most recent change was to the inverse covariance
            [MI-...]  both representations in memory
            [M-C...]  covariance and its Cholesky factor
            [...D--]  diagonal and compressed
            [...DZV]  non-diagonal and compressed
        """
        storage = self._storage
        if isinstance(storage, _CompressedStorage):
            dense_buffers = (None, None, None)
            compressed_buffers = storage.buffers()
        else:
            dense_buffers = storage.buffers()
            compressed_buffers = (None, None, None)
        tags = "".join(
            "-" if buffer is None else symbol
            for symbol, buffer in zip("MICDZV", dense_buffers + compressed_buffers)
        )
        return f"[{tags}] {self.get_memory_usage()}"

    def __repr__(self) -> str:
        return (
            f"CovarianceMatrix(size={self._size}, state={self.state.value}, "
            f"compressed={self.is_compressed})"
        )

    # ------------------------------------------------------------------
    # Cache management

    def _dense(self) -> _DenseStorage:
        """Return dense storage, decompressing first if needed."""
        if isinstance(self._storage, _CompressedStorage):
            self._storage = decompress_storage(self._storage)
        return self._storage

    def _require_set(self, storage: _DenseStorage) -> None:
        if storage.state is CacheState.UNSET:
            raise MatrixNotSetError(
                f"CovarianceMatrix of size {self._size} has no elements set",
                size=self._size,
            )

    def _cholesky(self) -> NDArray[np.float64]:
        """Packed Cholesky factor of the covariance, computed on demand."""
        storage = self._dense()
        if storage.cholesky is None:
            work = self._covariance().copy()
            cholesky_decompose(work, self._size, matrix_name='covariance')
            storage.cholesky = work
        return storage.cholesky

    def _covariance(self) -> NDArray[np.float64]:
        """Packed covariance, derived from the inverse if stale."""
        storage = self._dense()
        if storage.covariance is None:
            self._require_set(storage)
            work = storage.inverse.copy()
            cholesky_decompose(work, self._size, matrix_name='inverse covariance')
            invert_cholesky(work, self._size)
            storage.covariance = work
        return storage.covariance

    def _inverse(self) -> NDArray[np.float64]:
        """Packed inverse covariance, derived from the covariance if stale."""
        storage = self._dense()
        if storage.inverse is None:
            self._require_set(storage)
            work = self._cholesky().copy()
            invert_cholesky(work, self._size)
            storage.inverse = work
        return storage.inverse

    def _changes_covariance(self) -> NDArray[np.float64]:
        """Prepare to modify covariance elements in place."""
        storage = self._dense()
        if storage.covariance is None:
            if storage.inverse is None:
                storage.covariance = np.zeros(packed_size(self._size))
            else:
                self._covariance()
        storage.inverse = None
        storage.cholesky = None
        return storage.covariance

    def _changes_inverse(self) -> NDArray[np.float64]:
        """Prepare to modify inverse covariance elements in place."""
        storage = self._dense()
        if storage.inverse is None:
            if storage.covariance is None:
                storage.inverse = np.zeros(packed_size(self._size))
            else:
                self._inverse()
        storage.covariance = None
        storage.cholesky = None
        return storage.inverse

    def _element_index(self, row: int, col: int) -> int:
        row = check_index(row, self._size, 'row')
        col = check_index(col, self._size, 'col')
        return symmetric_matrix_index(row, col, self._size)

    def _check_same_size(self, other: CovarianceMatrix, name: str) -> None:
        if not isinstance(other, CovarianceMatrix):
            raise TypeError(
                f"{name}: expected a CovarianceMatrix, got {type(other).__name__}"
            )
        if other.size != self._size:
            raise DimensionError(
                f"{name}: size {other.size} does not match size {self._size}"
            )

    # ------------------------------------------------------------------
    # Element access

    def get_covariance(self, row: int, col: int) -> float:
        """Covariance element (row, col); (col, row) is identical."""
        index = self._element_index(row, col)
        return float(self._covariance()[index])

    def get_inverse_covariance(self, row: int, col: int) -> float:
        """Inverse covariance element (row, col); (col, row) is identical."""
        index = self._element_index(row, col)
        return float(self._inverse()[index])

    def set_covariance(self, row: int, col: int, value: float) -> CovarianceMatrix:
        """
        Set covariance element (row, col) and its mirror (col, row).

        Diagonal elements must be positive. Invalidates the inverse
        covariance and Cholesky factor.

        Returns:
            self, so that calls can be chained
        """
        index = self._element_index(row, col)
        value = self._checked_value(row, col, value, 'covariance')
        self._changes_covariance()[index] = value
        return self

    def set_inverse_covariance(self, row: int, col: int, value: float) -> CovarianceMatrix:
        """
        Set inverse covariance element (row, col) and its mirror (col, row).

        Diagonal elements must be positive. Invalidates the covariance and
        Cholesky factor.

        Returns:
            self, so that calls can be chained
        """
        index = self._element_index(row, col)
        value = self._checked_value(row, col, value, 'inverse covariance')
        self._changes_inverse()[index] = value
        return self

    @staticmethod
    def _checked_value(row: int, col: int, value: float, name: str) -> float:
        value = float(value)
        if not np.isfinite(value):
            raise ValidationError(f"value: must be finite, got {value}")
        if row == col and value <= 0:
            raise NotPositiveDefiniteError(
                f"{name} diagonal element {row} must be positive, got {value}",
                matrix_name=name,
                pivot_index=int(row),
                pivot_value=value,
            )
        return value

    def get_covariance_matrix(self) -> NDArray[np.float64]:
        """Dense (size, size) copy of the covariance."""
        return unpack_symmetric(self._covariance())

    def get_inverse_covariance_matrix(self) -> NDArray[np.float64]:
        """Dense (size, size) copy of the inverse covariance."""
        return unpack_symmetric(self._inverse())

    # ------------------------------------------------------------------
    # Linear algebra

    def multiply_by_covariance(self, vector: ArrayLike) -> NDArray[np.float64]:
        """Return C.v for a vector of length size."""
        v = check_vector(vector, self._size, 'vector')
        return symmetric_matrix_multiply(self._covariance(), v)

    def multiply_by_inverse_covariance(self, vector: ArrayLike) -> NDArray[np.float64]:
        """Return Cinv.v for a vector of length size."""
        v = check_vector(vector, self._size, 'vector')
        return symmetric_matrix_multiply(self._inverse(), v)

    def chi_square(self, delta: ArrayLike) -> float:
        """Return delta'.Cinv.delta for a residuals vector delta."""
        d = check_vector(delta, self._size, 'delta')
        return float(d @ symmetric_matrix_multiply(self._inverse(), d))

    def get_log_determinant(self) -> float:
        """Natural log of the covariance determinant."""
        return 2.0 * float(np.sum(np.log(factor_diagonal(self._cholesky()))))

    # ------------------------------------------------------------------
    # Transforms

    def apply_scale_factor(self, scale_factor: float) -> None:
        """
        Multiply every covariance element by a positive scale factor.

        Cached representations are rescaled in place; no decomposition is
        needed.
        """
        scale_factor = check_positive(scale_factor, 'scale_factor')
        storage = self._dense()
        self._require_set(storage)
        if storage.covariance is not None:
            storage.covariance *= scale_factor
        if storage.inverse is not None:
            storage.inverse /= scale_factor
        if storage.cholesky is not None:
            storage.cholesky *= np.sqrt(scale_factor)

    def replace_with_triple_product(self, other: CovarianceMatrix) -> None:
        """
        Replace this covariance C with A.Cinv.A, where A is other's covariance.

        Evaluated as B'.B with B = L^-1.A and C = L.L', so the result is
        symmetric and positive definite when A and C are.
        """
        self._check_same_size(other, 'other')
        a_dense = unpack_symmetric(other._covariance())
        lower = unpack_lower(self._cholesky())
        b = linalg.solve_triangular(lower, a_dense, lower=True)
        self._storage = _DenseStorage(covariance=pack_symmetric(b.T @ b))

    def add_inverse(self, other: CovarianceMatrix, weight: float = 1.0) -> None:
        """
        Add weight times other's inverse covariance to ours.

        The weight must be positive to preserve positive definiteness.
        A compressed other is read without being decompressed; an empty
        self starts from a zero inverse covariance.
        """
        weight = check_positive(weight, 'weight')
        self._check_same_size(other, 'other')
        source = other._storage
        if isinstance(source, _CompressedStorage):
            target = self._changes_inverse()
            accumulate_compressed(target, source, weight)
        else:
            contribution = weight * other._inverse()
            target = self._changes_inverse()
            target += contribution

    def get_eigen_modes(self) -> EigenModes:
        """Eigenvalues (ascending) and eigenvectors (rows) of the covariance."""
        return eigen_modes(self._covariance())

    def rescale_eigenvalues(self, mode_scales: ArrayLike) -> None:
        """
        Multiply each covariance eigenvalue by a positive scale.

        Args:
            mode_scales: length-size array, ordered like get_eigen_modes()
        """
        scales = check_vector(mode_scales, self._size, 'mode_scales')
        if not np.all(scales > 0):
            raise ValidationError(
                f"mode_scales: all scales must be positive, got min {scales.min()}"
            )
        modes = self.get_eigen_modes()
        self._storage = _DenseStorage(covariance=rescaled_covariance(modes, scales))

    def project_onto_modes(
        self,
        data: ArrayLike,
        nkeep: int,
    ) -> tuple[NDArray[np.float64], int]:
        """
        Project a data vector onto a subset of covariance eigenmodes.

        Modes are taken in get_eigen_modes() order: nkeep > 0 keeps the
        first nkeep modes, nkeep < 0 keeps the last |nkeep| modes.

        Returns:
            (projected data, number of dropped modes)
        """
        d = check_vector(data, self._size, 'data')
        if isinstance(nkeep, bool) or not isinstance(nkeep, numbers.Integral):
            raise ValidationError(f"nkeep: expected an integer, got {nkeep!r}")
        return project(self.get_eigen_modes(), d, int(nkeep))

    def prune(self, keep: Iterable[int]) -> None:
        """
        Keep only the rows and columns listed in keep.

        The covariance is marginalized: kept pairwise covariances are
        unchanged. The result is dense and uncompressed, and only the
        reduced packed array is allocated.
        """
        kept = sorted({check_index(k, self._size, 'keep') for k in keep})
        if not kept:
            raise ValidationError("keep: must contain at least one index")
        covariance = self._covariance()

        index = np.asarray(kept, dtype=np.int64)
        # tril_indices enumerates (col, row) pairs, row <= col, in packed order
        cols, rows = np.tril_indices(len(kept))
        src_row, src_col = index[rows], index[cols]
        pruned = covariance[src_row + (src_col * (src_col + 1)) // 2]

        self._size = len(kept)
        self._storage = _DenseStorage(covariance=pruned)

    # ------------------------------------------------------------------
    # Compression

    def compress(self) -> bool:
        """
        Replace dense storage with a compact inverse-covariance encoding.

        Only happens when the encoding is smaller than a packed array,
        i.e. the inverse covariance is diagonal or sparse. Lossless; the
        next operation that needs dense storage undoes it.

        Returns:
            True if compression was performed
        """
        if isinstance(self._storage, _CompressedStorage):
            return False
        self._require_set(self._storage)
        compressed = compress_storage(self._inverse(), self._size)
        if compressed is None:
            return False
        self._storage = compressed
        return True

    # ------------------------------------------------------------------
    # Sampling

    def sample(
        self,
        rng: np.random.Generator | None = None,
        out: NDArray[np.float64] | None = None,
    ) -> tuple[NDArray[np.float64], float]:
        """
        Draw one residuals vector from N(0, C).

        Args:
            rng: Random generator; the process-wide default if None
            out: Optional float64 array of length size to fill

        Returns:
            (delta, nll) where nll = 0.5*z'z is the negative log-likelihood
            of the standard normal deviates z with delta = L.z
        """
        if out is not None:
            if not isinstance(out, np.ndarray) or out.dtype != np.float64:
                raise ValidationError("out: expected a float64 numpy array")
            if out.shape != (self._size,):
                raise DimensionError(
                    f"out: expected shape ({self._size},), got {out.shape}"
                )
        return sample_one(self._cholesky(), resolve_rng(rng), out=out)

    def sample_batch(
        self,
        nsample: int,
        rng: np.random.Generator | None = None,
    ) -> NDArray[np.float64]:
        """
        Draw nsample residuals vectors from N(0, C).

        Returns:
            C-contiguous array of shape (nsample, size); element k of draw
            n is at flat offset n*size + k
        """
        if (isinstance(nsample, bool) or not isinstance(nsample, numbers.Integral)
                or nsample < 1):
            raise ValidationError(f"nsample: must be a positive integer, got {nsample!r}")
        return sample_many(self._cholesky(), int(nsample), resolve_rng(rng))

    # ------------------------------------------------------------------
    # Copy and text output

    def copy(self) -> CovarianceMatrix:
        """Independent copy, preserving the storage variant and caches."""
        clone = CovarianceMatrix(self._size)
        storage = self._storage
        if isinstance(storage, _CompressedStorage):
            clone._storage = _CompressedStorage(
                diagonal=storage.diagonal.copy(),
                offdiag_index=storage.offdiag_index.copy(),
                offdiag_value=storage.offdiag_value.copy(),
            )
        else:
            clone._storage = _DenseStorage(
                *(None if b is None else b.copy() for b in storage.buffers())
            )
        return clone

    def __copy__(self) -> CovarianceMatrix:
        return self.copy()

    def __deepcopy__(self, memo: dict[int, Any]) -> CovarianceMatrix:
        return self.copy()

    def print_to_stream(
        self,
        stream: TextIO | None = None,
        normalized: bool = False,
        fmt: str = "%+10.3g",
        labels: Sequence[str] | None = None,
    ) -> None:
        """
        Print covariance elements, one row per line.

        Args:
            stream: Output stream, sys.stdout if None
            normalized: Print sqrt of diagonal elements and correlation
                coefficients rho(i,j) = cov(i,j)/sqrt(cov(i,i)*cov(j,j))
            fmt: printf-style format applied to each element
            labels: Optional per-row labels
        """
        lines = format_rows(
            self.get_covariance_matrix(),
            normalized=normalized,
            fmt=fmt,
            labels=labels,
        )
        write_rows(sys.stdout if stream is None else stream, lines)
