"""
Linear algebra kernels for PyCovMat.

All kernels operate on symmetric matrices in the BLAS column-major packed
format and modify their input in place where documented. Errors are raised
immediately with clear messages.

Submodules:
    packed: Cholesky, Cholesky inversion, matrix-vector products
"""

from pycovmat.core.compute.linalg.packed import (
    packed_size,
    symmetric_matrix_index,
    symmetric_matrix_size,
    cholesky_decompose,
    invert_triangular,
    invert_cholesky,
    symmetric_matrix_multiply,
    cholesky_multiply,
    cholesky_multiply_batch,
    pack_symmetric,
    unpack_symmetric,
    unpack_lower,
)

__all__ = [
    "packed_size",
    "symmetric_matrix_index",
    "symmetric_matrix_size",
    "cholesky_decompose",
    "invert_triangular",
    "invert_cholesky",
    "symmetric_matrix_multiply",
    "cholesky_multiply",
    "cholesky_multiply_batch",
    "pack_symmetric",
    "unpack_symmetric",
    "unpack_lower",
]
