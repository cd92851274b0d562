# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import logging

import numpy as np
import pytest

from quantlinalg.elimination import LUWorkspace, invert, lu_decompose, lu_solve
from quantlinalg.errors import LinAlgError, SingularMatrixError
from quantlinalg.matrix_functions import permutation_sign
from quantlinalg.utils import EPS, random_nonsingular_upper, random_well_conditioned

TEST_ITERATIONS = 50
logger = logging.getLogger(__name__)


@pytest.mark.parametrize("n", [2, 3, 5, 10, 25, 50])
def test_invert_round_trip(n):
    for seed in range(5):
        A = random_well_conditioned(n, seed=seed)
        inv, d = invert(A)
        logger.debug(f"\nA:\n{A}\nInverse:\n{inv}\n")
        np.testing.assert_allclose(A @ inv, np.eye(n), rtol=1e-8, atol=1e-8)
        np.testing.assert_allclose(inv, np.linalg.inv(A), rtol=1e-8, atol=1e-10)
        assert np.isclose(d, np.linalg.det(A), rtol=1e-8)


def test_determinant_is_signed_product_of_pivots():
    rng = np.random.default_rng(7)
    for _ in range(TEST_ITERATIONS):
        n = int(rng.integers(2, 12))
        A = rng.standard_normal((n, n))
        decomp = lu_decompose(A)
        expected = permutation_sign(decomp.pivot) * np.prod(np.diagonal(decomp.lu))
        assert np.isclose(decomp.determinant, expected, rtol=1e-12)
        assert np.isclose(decomp.determinant, np.linalg.det(A), rtol=1e-8)


def test_lu_factors_reproduce_permuted_matrix():
    rng = np.random.default_rng(3)
    n = 8
    A = rng.standard_normal((n, n))
    decomp = lu_decompose(A)
    L = np.tril(decomp.lu, -1) + np.eye(n)
    U = np.triu(decomp.lu)

    # Apply the recorded row exchanges in order
    PA = A.copy()
    for col, row in enumerate(decomp.pivot):
        PA[[col, row]] = PA[[row, col]]
    np.testing.assert_allclose(L @ U, PA, rtol=1e-10, atol=1e-12)


def test_input_is_not_modified():
    A = random_well_conditioned(6, seed=1)
    A_copy = A.copy()
    invert(A)
    lu_decompose(A, digits=10)
    np.testing.assert_array_equal(A, A_copy)


@pytest.mark.parametrize(
    "A",
    [
        np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0], [1.0, 2.0, 3.0]]),
        np.array([[1.0, 2.0, 3.0], [0.0, 0.0, 0.0], [7.0, 8.0, 10.0]]),
        np.zeros((4, 4)),
    ],
    ids=["identical-rows", "zero-row", "zero-matrix"],
)
def test_singular_matrix_is_reported(A):
    out = np.full(A.shape, 123.0)
    with pytest.raises(SingularMatrixError) as excinfo:
        invert(A, out=out)
    assert excinfo.value.determinant == 0.0
    assert isinstance(excinfo.value, LinAlgError)
    # Nothing is written on failure
    assert np.all(out == 123.0)


def test_singular_error_is_a_value_error():
    with pytest.raises(ValueError):
        lu_decompose(np.zeros((2, 2)))


def test_lu_solve_matches_numpy():
    for i in range(TEST_ITERATIONS // 5):
        n = 20
        A = random_nonsingular_upper(n, seed=i) + np.tril(np.ones((n, n)), -1)
        x_true = np.random.default_rng(i).random(n)
        b = A @ x_true

        x = lu_solve(lu_decompose(A), b)
        x_np = np.linalg.solve(A, b)
        logger.debug(f"\n==== Results ====\nOurs:\n{x}\nNumpy:\n{x_np}")

        # Compare residuals rather than solutions, which is independent of
        # conditioning
        res_np = np.linalg.norm(A @ x_np - b, ord=np.inf)
        res_lu = np.linalg.norm(A @ x - b, ord=np.inf)
        assert res_lu <= 10.0 * res_np + 1e-9


def test_lu_solve_leading_zero_rhs():
    rng = np.random.default_rng(11)
    A = rng.standard_normal((6, 6)) + 6.0 * np.eye(6)
    decomp = lu_decompose(A)
    for k in range(6):
        b = np.zeros(6)
        b[k:] = rng.standard_normal(6 - k)
        x = lu_solve(decomp, b)
        np.testing.assert_allclose(A @ x, b, rtol=1e-10, atol=1e-12)


def test_lu_solve_does_not_touch_rhs():
    A = random_well_conditioned(5, seed=2)
    b = np.arange(5.0)
    b_copy = b.copy()
    lu_solve(lu_decompose(A), b)
    np.testing.assert_array_equal(b, b_copy)


def test_lu_solve_bad_shape_raises():
    decomp = lu_decompose(np.eye(3))
    with pytest.raises(ValueError):
        lu_solve(decomp, np.ones(4))


def test_workspace_reuse_and_out_buffer():
    n = 7
    work = LUWorkspace(n)
    out = np.empty((n, n))
    for seed in range(10):
        A = random_well_conditioned(n, seed=seed)
        result, d = invert(A, out=out, work=work)
        assert result is out
        np.testing.assert_allclose(A @ out, np.eye(n), atol=1e-9)


def test_workspace_size_mismatch_raises():
    with pytest.raises(ValueError):
        lu_decompose(np.eye(4), work=LUWorkspace(3))
    with pytest.raises(ValueError):
        invert(np.eye(3), out=np.empty((4, 4)))


def test_non_square_raises():
    with pytest.raises(ValueError):
        invert(np.ones((3, 4)))


def test_accuracy_flag():
    A = np.eye(3)
    assert not lu_decompose(A).accuracy_lost
    assert not lu_decompose(A, digits=6).accuracy_lost
    # (3n + 3) worst-case growth cannot keep 17 significant digits
    assert lu_decompose(A, digits=17).accuracy_lost


def test_one_by_one():
    inv, d = invert(np.array([[4.0]]))
    assert inv[0, 0] == pytest.approx(0.25, abs=EPS)
    assert d == pytest.approx(4.0)
