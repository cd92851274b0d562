# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import logging
import math

import numpy as np
import pytest

from quantlinalg.errors import SingularMatrixError
from quantlinalg.matrix_functions import det, least_squares_svd, permutation_sign, solve


def test_determinants():
    A = np.random.default_rng(0).standard_normal((100, 100))
    our_det = det(A)
    numpy_det = np.linalg.det(A)
    assert math.isclose(our_det, numpy_det, rel_tol=1e-8)


def test_determinant_of_singular_is_zero():
    assert det(np.array([[1.0, 2.0], [2.0, 4.0]])) == 0.0
    assert det(np.zeros((3, 3))) == 0.0


def test_solve():
    rng = np.random.default_rng(1)
    A = rng.standard_normal((30, 30)) + 5.0 * np.eye(30)
    x_true = rng.standard_normal(30)
    np.testing.assert_allclose(solve(A, A @ x_true), x_true, rtol=1e-9, atol=1e-12)


def test_solve_singular_raises():
    with pytest.raises(SingularMatrixError):
        solve(np.ones((3, 3)), np.ones(3))


@pytest.mark.parametrize(
    "pivot,sign",
    [
        ([0, 1, 2], 1.0),
        ([1, 1, 2], -1.0),
        ([2, 2, 2], 1.0),
        ([1, 2, 2], 1.0),
        ([3, 1, 2, 3], -1.0),
        ([3, 3, 2, 3], 1.0),
    ],
)
def test_permutation_sign(pivot, sign):
    assert permutation_sign(pivot) == sign


def test_least_squares_svd_matches_numpy():
    rng = np.random.default_rng(2)
    A = rng.standard_normal((40, 6))
    b = rng.standard_normal(40)
    x_ref, *_ = np.linalg.lstsq(A, b, rcond=None)
    np.testing.assert_allclose(least_squares_svd(A, b), x_ref, atol=1e-10)


def test_least_squares_svd_input_untouched():
    rng = np.random.default_rng(3)
    A = rng.standard_normal((10, 3))
    b = rng.standard_normal(10)
    A_copy, b_copy = A.copy(), b.copy()
    least_squares_svd(A, b)
    np.testing.assert_array_equal(A, A_copy)
    np.testing.assert_array_equal(b, b_copy)


def test_least_squares_svd_bad_rhs():
    with pytest.raises(ValueError):
        least_squares_svd(np.ones((4, 2)), np.ones(3))


def test_least_squares_svd_logs_nothing_when_converged(caplog):
    rng = np.random.default_rng(4)
    with caplog.at_level(logging.WARNING, logger="quantlinalg"):
        least_squares_svd(rng.standard_normal((8, 2)), rng.standard_normal(8))
    assert not caplog.records
