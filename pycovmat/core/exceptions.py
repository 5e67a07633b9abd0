"""
Errors raised by the covariance engine.

    PyCovMatError
        ValidationError             bad argument value (size, scale, weight, nkeep, ...)
            DimensionError          vector length, matrix size or index mismatch
        NumericalError
            NotPositiveDefiniteError  non-positive diagonal or Cholesky pivot
        MatrixNotSetError           matrix created empty and never filled

An operation that raises leaves the matrix it was called on unchanged,
except that representations derived before the failure stay cached.
Diagnostic arguments are keyword-only and survive pickling.
"""


class PyCovMatError(Exception):
    """Root of every error raised by pycovmat."""


class ValidationError(PyCovMatError):
    """
    An argument has an unusable value.

    Messages start with the argument name, e.g. "weight: must be positive".
    """


class DimensionError(ValidationError):
    """
    Sizes or indices disagree.

    Covers vector lengths that differ from the matrix size, two matrices
    of different sizes combined in one operation, and row, column or keep
    indices outside [0, size).
    """


class NumericalError(PyCovMatError):
    """A decomposition or inversion could not be carried out."""


class NotPositiveDefiniteError(NumericalError):
    """
    Covariance or inverse covariance is not positive definite.

    Raised eagerly when a diagonal element <= 0 is written, and lazily
    when a Cholesky decomposition meets a pivot <= 0.

    Attributes:
        matrix_name: 'covariance' or 'inverse covariance' (or a kernel
            caller's own name)
        pivot_index: Row of the failing pivot or diagonal element
        pivot_value: The non-positive value found there
    """

    def __init__(
        self,
        message: str,
        *,
        matrix_name: str | None = None,
        pivot_index: int | None = None,
        pivot_value: float | None = None,
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.pivot_index = pivot_index
        self.pivot_value = pivot_value

    def __reduce__(self):
        return (
            _rebuild,
            (type(self), self.args, {
                'matrix_name': self.matrix_name,
                'pivot_index': self.pivot_index,
                'pivot_value': self.pivot_value,
            }),
        )


class MatrixNotSetError(PyCovMatError):
    """
    An empty matrix was asked for values.

    Attributes:
        size: Dimension of the empty matrix
    """

    def __init__(self, message: str, *, size: int | None = None):
        super().__init__(message)
        self.size = size

    def __reduce__(self):
        return (_rebuild, (type(self), self.args, {'size': self.size}))


def _rebuild(cls, args, diagnostics):
    return cls(*args, **diagnostics)
