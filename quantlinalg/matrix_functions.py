# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import logging

import numpy as np

from .elimination import lu_decompose, lu_solve
from .errors import SingularMatrixError
from .svd import SingularValueDecomp
from .utils import SV_LIMIT, as_square

logger = logging.getLogger(__name__)


def permutation_sign(pivot) -> float:
    """
    Return +1 or -1 depending on the parity of an LU pivot record.

    pivot[col] names the row exchanged with row `col`, so every entry
    that differs from its own index is one transposition.
    """
    swaps = sum(1 for col, row in enumerate(pivot) if row != col)
    return -1.0 if swaps & 1 else 1.0


def det(A):
    """
    Determinant of n-by-n matrix A from its LU decomposition.
    A singular matrix has determinant 0.
    """
    try:
        return lu_decompose(A).determinant
    except SingularMatrixError as e:
        return e.determinant


def solve(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve the square system A x = b. Raises SingularMatrixError."""
    A = as_square(A)
    return lu_solve(lu_decompose(A), b)


def least_squares_svd(A: np.ndarray, b: np.ndarray, limit: float = SV_LIMIT) -> np.ndarray:
    """
    Solve min ||Ax - b||_2 for a tall or square A with a truncated SVD.

    Directions whose singular value is at or below `limit` times the
    largest are discarded, so rank-deficient A is handled without error.

    Returns:
    x : (n, ) ndarray
    """
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    m, n = A.shape
    if b.shape != (m,):
        raise ValueError(f"b must have shape ({m},), got {b.shape}")

    svd = SingularValueDecomp(m, n)
    svd.a[...] = A
    unconverged = svd.decompose()
    if unconverged:
        logger.warning(
            "least_squares_svd(): %d singular values did not converge", unconverged
        )
    svd.b[...] = b
    return svd.backsub(limit)
