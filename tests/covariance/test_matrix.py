"""
Tests for CovarianceMatrix construction, element access and the dual
covariance / inverse covariance cache.
"""

import copy

import numpy as np
import pytest

from pycovmat import CacheState, CovarianceMatrix
from pycovmat.core.compute.linalg.packed import pack_symmetric
from pycovmat.core.compute.tolerances import (
    CPU_FP64,
    CPU_FP64_ILL_CONDITIONED,
    select_tolerance,
)
from pycovmat.core.exceptions import (
    DimensionError,
    MatrixNotSetError,
    NotPositiveDefiniteError,
    ValidationError,
)


# ═══════════════════════════════════════════════════════════════════════
# Construction
# ═══════════════════════════════════════════════════════════════════════


class TestConstruction:

    def test_empty_matrix(self):
        C = CovarianceMatrix(3)
        assert C.size == 3
        assert C.state is CacheState.UNSET
        assert not C.is_compressed
        assert C.get_memory_state() == "[------] 0"

    @pytest.mark.parametrize("size", [0, -1, 2.5, True, "3"])
    def test_invalid_size(self, size):
        with pytest.raises(ValidationError):
            CovarianceMatrix(size)

    def test_from_packed_infers_size(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        assert C.size == 5
        assert C.state is CacheState.COVARIANCE

    def test_from_packed_copies_input(self):
        packed = np.array([1.0, 0.0, 2.0])
        C = CovarianceMatrix.from_packed(packed)
        packed[0] = 100.0
        assert C.get_covariance(0, 0) == 1.0

    @pytest.mark.parametrize("nelem", [2, 4, 5])
    def test_from_packed_bad_length(self, nelem):
        with pytest.raises(ValidationError, match="n\\(n\\+1\\)/2"):
            CovarianceMatrix.from_packed(np.ones(nelem))

    def test_from_packed_rejects_non_positive_diagonal(self):
        with pytest.raises(NotPositiveDefiniteError) as exc_info:
            CovarianceMatrix.from_packed([1.0, 0.0, -2.0])
        assert exc_info.value.pivot_index == 1

    def test_from_packed_rejects_nan(self):
        with pytest.raises(ValidationError, match="NaN"):
            CovarianceMatrix.from_packed([1.0, np.nan, 2.0])

    def test_from_dense(self, spd_dense):
        C = CovarianceMatrix.from_dense(spd_dense)
        np.testing.assert_array_equal(C.get_covariance_matrix(), spd_dense)

    def test_from_dense_symmetrizes_roundoff(self, spd_dense):
        noisy = spd_dense.copy()
        noisy[0, 1] *= 1.0 + 1e-13
        with pytest.warns(RuntimeWarning, match="symmetrizing"):
            C = CovarianceMatrix.from_dense(noisy)
        assert C.get_covariance(0, 1) == pytest.approx(spd_dense[0, 1])

    def test_from_dense_rejects_asymmetric(self, spd_dense):
        skewed = spd_dense.copy()
        skewed[0, 1] += 1.0
        with pytest.raises(ValidationError, match="not symmetric"):
            CovarianceMatrix.from_dense(skewed)

    def test_from_dense_rejects_non_square(self):
        with pytest.raises(DimensionError, match="square"):
            CovarianceMatrix.from_dense(np.ones((2, 3)))

    def test_repr(self):
        C = CovarianceMatrix.from_packed([1.0, 0.0, 2.0])
        assert repr(C) == "CovarianceMatrix(size=2, state=covariance, compressed=False)"


# ═══════════════════════════════════════════════════════════════════════
# Diagonal 2x2 scenario
# ═══════════════════════════════════════════════════════════════════════


class TestDiagonalScenario:
    """cov = diag(1, 2) built from the packed vector {1, 0, 2}."""

    @pytest.fixture
    def C(self):
        return CovarianceMatrix.from_packed([1.0, 0.0, 2.0])

    def test_covariance(self, C):
        assert C.get_covariance(0, 0) == 1.0
        assert C.get_covariance(1, 1) == 2.0
        assert C.get_covariance(0, 1) == 0.0

    def test_inverse_covariance(self, C):
        assert C.get_inverse_covariance(0, 0) == pytest.approx(1.0)
        assert C.get_inverse_covariance(1, 1) == pytest.approx(0.5)
        assert C.get_inverse_covariance(1, 0) == 0.0

    def test_chi_square(self, C):
        assert C.chi_square([1.0, 2.0]) == pytest.approx(3.0)

    def test_log_determinant(self, C):
        assert C.get_log_determinant() == pytest.approx(np.log(2.0))

    def test_n_elements(self, C):
        assert C.n_elements == 2


# ═══════════════════════════════════════════════════════════════════════
# Non positive definite input
# ═══════════════════════════════════════════════════════════════════════


class TestNotPositiveDefinite:
    """[[1, 2], [2, 1]] has determinant -3."""

    @pytest.fixture
    def C(self, not_positive_definite_packed):
        return CovarianceMatrix.from_packed(not_positive_definite_packed)

    def test_construction_is_deferred(self, C):
        assert C.get_covariance(0, 1) == 2.0

    @pytest.mark.parametrize("operation", [
        lambda C: C.get_inverse_covariance(0, 0),
        lambda C: C.chi_square([1.0, 1.0]),
        lambda C: C.multiply_by_inverse_covariance([1.0, 1.0]),
        lambda C: C.sample(),
        lambda C: C.sample_batch(10),
        lambda C: C.get_log_determinant(),
        lambda C: C.compress(),
    ])
    def test_decomposition_fails(self, C, operation):
        with pytest.raises(NotPositiveDefiniteError):
            operation(C)

    def test_failure_leaves_covariance_intact(self, C):
        with pytest.raises(NotPositiveDefiniteError):
            C.get_inverse_covariance(0, 0)
        assert C.get_memory_state() == "[M-----] 24"
        np.testing.assert_array_equal(C.get_covariance_matrix(), [[1.0, 2.0], [2.0, 1.0]])

    def test_inverse_not_positive_definite(self):
        C = CovarianceMatrix(2)
        C.set_inverse_covariance(0, 0, 1.0).set_inverse_covariance(1, 1, 1.0)
        C.set_inverse_covariance(0, 1, 2.0)
        with pytest.raises(NotPositiveDefiniteError) as exc_info:
            C.get_covariance(0, 0)
        assert exc_info.value.matrix_name == 'inverse covariance'
        # A failed derivation must not drop the inverse
        with pytest.raises(NotPositiveDefiniteError):
            C.set_covariance(0, 1, 0.0)
        assert C.state is CacheState.INVERSE
        assert C.get_inverse_covariance(0, 1) == 2.0


# ═══════════════════════════════════════════════════════════════════════
# Element setters
# ═══════════════════════════════════════════════════════════════════════


class TestSetters:

    def test_chained_covariance_setters(self):
        C = CovarianceMatrix(2)
        C.set_covariance(0, 0, 1.0).set_covariance(0, 1, -0.5).set_covariance(1, 1, 2.0)
        expected = np.array([[1.0, -0.5], [-0.5, 2.0]])
        np.testing.assert_array_equal(C.get_covariance_matrix(), expected)
        np.testing.assert_allclose(
            C.get_inverse_covariance_matrix(), np.linalg.inv(expected),
            rtol=CPU_FP64.rtol, atol=CPU_FP64.atol,
        )

    def test_mirror_element(self):
        C = CovarianceMatrix(3)
        C.set_covariance(2, 0, 0.25)
        assert C.get_covariance(0, 2) == 0.25

    @pytest.mark.parametrize("value", [0.0, -1.0])
    def test_non_positive_diagonal_rejected(self, value):
        C = CovarianceMatrix(2)
        with pytest.raises(NotPositiveDefiniteError):
            C.set_covariance(1, 1, value)
        with pytest.raises(NotPositiveDefiniteError):
            C.set_inverse_covariance(0, 0, value)
        assert C.state is CacheState.UNSET

    def test_rejected_write_leaves_state_unchanged(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        C.get_inverse_covariance(0, 0)
        before = C.get_memory_state()
        with pytest.raises(NotPositiveDefiniteError):
            C.set_covariance(2, 2, -1.0)
        assert C.get_memory_state() == before
        np.testing.assert_array_equal(C.get_covariance_matrix(), C.get_covariance_matrix().T)
        assert C.get_covariance(2, 2) == spd_packed[5]

    def test_non_finite_value_rejected(self):
        C = CovarianceMatrix(2)
        with pytest.raises(ValidationError, match="finite"):
            C.set_covariance(0, 1, np.inf)

    @pytest.mark.parametrize("row, col", [(-1, 0), (0, 2), (2, 2)])
    def test_index_out_of_range(self, row, col):
        C = CovarianceMatrix(2)
        with pytest.raises(DimensionError):
            C.set_covariance(row, col, 1.0)
        with pytest.raises(DimensionError):
            C.get_inverse_covariance(row, col)

    def test_write_invalidates_other_representation(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        C.get_inverse_covariance(0, 0)
        assert C.state is CacheState.BOTH
        C.set_covariance(0, 1, 0.5 * C.get_covariance(0, 1))
        assert C.state is CacheState.COVARIANCE
        assert C.get_memory_state().startswith("[M-----]")
        C.set_inverse_covariance(0, 1, 0.0)
        assert C.state is CacheState.INVERSE

    def test_set_inverse_then_covariance_preserves_other_elements(self, spd_dense, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        C.set_inverse_covariance(0, 0, C.get_inverse_covariance(0, 0))
        C.set_covariance(4, 4, spd_dense[4, 4])
        np.testing.assert_allclose(
            C.get_covariance_matrix(), spd_dense, rtol=CPU_FP64.rtol, atol=1e-10
        )


# ═══════════════════════════════════════════════════════════════════════
# Empty matrix
# ═══════════════════════════════════════════════════════════════════════


class TestEmptyMatrix:

    @pytest.mark.parametrize("operation", [
        lambda C: C.get_covariance(0, 0),
        lambda C: C.get_inverse_covariance(0, 0),
        lambda C: C.chi_square([1.0, 1.0]),
        lambda C: C.sample(),
        lambda C: C.compress(),
        lambda C: C.apply_scale_factor(2.0),
        lambda C: C.get_eigen_modes(),
    ])
    def test_operations_need_elements(self, operation):
        with pytest.raises(MatrixNotSetError) as exc_info:
            operation(CovarianceMatrix(2))
        assert exc_info.value.size == 2

    def test_n_elements_zero(self):
        assert CovarianceMatrix(4).n_elements == 0


# ═══════════════════════════════════════════════════════════════════════
# Round trips and products
# ═══════════════════════════════════════════════════════════════════════


class TestRoundTrip:

    def test_inverse_from_covariance(self, spd_dense, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        np.testing.assert_allclose(
            C.get_inverse_covariance_matrix(), np.linalg.inv(spd_dense),
            rtol=CPU_FP64.rtol, atol=CPU_FP64.atol,
        )

    def test_covariance_from_inverse_setters(self, spd_dense):
        inverse = np.linalg.inv(spd_dense)
        C = CovarianceMatrix(5)
        for i in range(5):
            for j in range(i, 5):
                C.set_inverse_covariance(i, j, inverse[i, j])
        np.testing.assert_allclose(
            C.get_covariance_matrix(), spd_dense, rtol=CPU_FP64.rtol, atol=1e-10
        )

    def test_back_and_forth(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        for _ in range(3):
            C.set_inverse_covariance(0, 0, C.get_inverse_covariance(0, 0))
            C.set_covariance(0, 0, C.get_covariance(0, 0))
        np.testing.assert_allclose(
            C.get_covariance_matrix(), CovarianceMatrix.from_packed(spd_packed).get_covariance_matrix(),
            rtol=CPU_FP64.rtol, atol=1e-10,
        )

    def test_chi_square_matches_dense(self, rng):
        for _ in range(3):
            a = rng.standard_normal((6, 6))
            dense = a @ a.T + np.eye(6)
            dense = 0.5 * (dense + dense.T)
            C = CovarianceMatrix.from_dense(dense)
            inverse = np.linalg.inv(dense)
            for _ in range(3):
                delta = rng.standard_normal(6)
                assert C.chi_square(delta) == pytest.approx(delta @ inverse @ delta, rel=1e-9)

    def test_multiply(self, rng, spd_dense, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        v = rng.standard_normal(5)
        np.testing.assert_allclose(
            C.multiply_by_covariance(v), spd_dense @ v, rtol=CPU_FP64.rtol, atol=CPU_FP64.atol
        )
        np.testing.assert_allclose(
            C.multiply_by_inverse_covariance(C.multiply_by_covariance(v)), v,
            rtol=1e-9, atol=1e-12,
        )

    @pytest.mark.parametrize("length", [4, 6])
    def test_size_mismatch(self, spd_packed, length):
        C = CovarianceMatrix.from_packed(spd_packed)
        with pytest.raises(DimensionError):
            C.chi_square(np.ones(length))
        with pytest.raises(DimensionError):
            C.multiply_by_covariance(np.ones(length))
        with pytest.raises(DimensionError):
            C.multiply_by_inverse_covariance(np.ones(length))

    def test_log_determinant(self, spd_dense, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        sign, logdet = np.linalg.slogdet(spd_dense)
        assert sign == 1.0
        assert C.get_log_determinant() == pytest.approx(logdet, rel=1e-12)


class TestIllConditioned:
    """Cholesky and inversion keep working, to a looser tier, at cond ~3e4."""

    @pytest.fixture
    def tol(self, ill_conditioned_dense):
        return select_tolerance(np.linalg.cond(ill_conditioned_dense))

    def test_selects_relaxed_tier(self, tol):
        assert tol is CPU_FP64_ILL_CONDITIONED

    def test_inverse(self, ill_conditioned_dense, tol):
        C = CovarianceMatrix.from_packed(pack_symmetric(ill_conditioned_dense))
        expected = np.linalg.inv(ill_conditioned_dense)
        scale = np.max(np.abs(expected))
        np.testing.assert_allclose(
            C.get_inverse_covariance_matrix() / scale, expected / scale,
            rtol=tol.rtol, atol=tol.atol,
        )

    def test_round_trip_through_inverse(self, ill_conditioned_dense, tol):
        inverse = CovarianceMatrix.from_packed(
            pack_symmetric(ill_conditioned_dense)
        ).get_inverse_covariance_matrix()
        C = CovarianceMatrix(6)
        for i in range(6):
            for j in range(i, 6):
                C.set_inverse_covariance(i, j, inverse[i, j])
        np.testing.assert_allclose(
            C.get_covariance_matrix(), ill_conditioned_dense, rtol=tol.rtol, atol=tol.atol
        )

    def test_chi_square_along_weakest_mode(self, ill_conditioned_dense, tol):
        C = CovarianceMatrix.from_packed(pack_symmetric(ill_conditioned_dense))
        eigenvalues, vectors = np.linalg.eigh(ill_conditioned_dense)
        delta = vectors[:, 0]
        assert C.chi_square(delta) == pytest.approx(1.0 / eigenvalues[0], rel=tol.rtol)

    def test_log_determinant(self, ill_conditioned_dense, tol):
        C = CovarianceMatrix.from_packed(pack_symmetric(ill_conditioned_dense))
        expected = np.log(10.0) * -np.sum(np.linspace(0.0, 4.5, 6))
        assert C.get_log_determinant() == pytest.approx(expected, rel=tol.rtol)


# ═══════════════════════════════════════════════════════════════════════
# Memory diagnostics
# ═══════════════════════════════════════════════════════════════════════


class TestMemoryState:

    def test_states_follow_cache(self):
        C = CovarianceMatrix.from_packed([1.0, 0.5, 2.0])
        assert C.get_memory_state() == "[M-----] 24"
        C.get_inverse_covariance(0, 0)
        assert C.get_memory_state() == "[MIC---] 72"
        assert C.get_memory_usage() == 72

    def test_inverse_only(self):
        C = CovarianceMatrix(2)
        C.set_inverse_covariance(0, 0, 1.0)
        assert C.get_memory_state() == "[-I----] 24"

    def test_reading_state_does_not_compute(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        C.get_memory_state()
        C.get_memory_usage()
        assert C.state is CacheState.COVARIANCE


# ═══════════════════════════════════════════════════════════════════════
# Copies
# ═══════════════════════════════════════════════════════════════════════


class TestCopy:

    def test_copy_is_independent(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        clone = C.copy()
        clone.set_covariance(0, 1, 0.0)
        assert C.get_covariance(0, 1) == spd_packed[1]
        assert clone.get_covariance(0, 1) == 0.0

    def test_copy_preserves_caches(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        C.get_inverse_covariance(0, 0)
        assert C.copy().get_memory_state() == C.get_memory_state()

    def test_copy_module_support(self, spd_packed):
        C = CovarianceMatrix.from_packed(spd_packed)
        for clone in (copy.copy(C), copy.deepcopy(C)):
            assert clone is not C
            np.testing.assert_array_equal(clone.get_covariance_matrix(), C.get_covariance_matrix())
