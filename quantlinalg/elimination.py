# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
LU decomposition (Crout) with scaled partial pivoting, substitution
and matrix inversion.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import SingularMatrixError
from .utils import TINY, as_square, check_buffer


class LUWorkspace:
    """
    Scratch memory for one n-by-n decomposition: the combined LU factor,
    the equilibration vector, a solution vector and the pivot record
    (n*n + 2n floats and n ints). Reusing one workspace across calls
    keeps the decomposition allocation-free.
    """

    def __init__(self, n: int):
        if n < 1:
            raise ValueError("LUWorkspace needs n >= 1")
        self.n = n
        self.lu = np.empty((n, n))
        self.equil = np.empty(n)
        self.soln = np.empty(n)
        self.pivot = np.empty(n, dtype=np.intp)

    def check(self, n: int) -> None:
        if n != self.n:
            raise ValueError(f"workspace is sized for n={self.n}, got n={n}")


@dataclass(frozen=True)
class LUDecomposition:
    """
    Result of lu_decompose. `lu` holds U on and above the diagonal and L
    (unit diagonal implied) below it; `pivot[col]` is the row that was
    swapped into position `col`.
    """

    lu: np.ndarray
    pivot: np.ndarray
    determinant: float
    equilibration: np.ndarray
    accuracy_lost: bool = False

    @property
    def n(self) -> int:
        return self.lu.shape[0]


def lu_decompose(
    A: np.ndarray,
    digits: int = 0,
    work: Optional[LUWorkspace] = None,
) -> LUDecomposition:
    """
    Crout LU decomposition of a square matrix with scaled partial pivoting.

    Parameters
    ----------
    A : (n, n) array_like
        Input matrix. It is copied, never modified.
    digits : int
        Number of significant digits A is assumed accurate to. If > 0 a
        worst-case relative error estimate is accumulated and the result
        is flagged `accuracy_lost` when that many digits cannot be kept.
        0 disables the check.
    work : LUWorkspace | None
        Caller-owned scratch. The returned arrays are views into it.

    Returns
    -------
    LUDecomposition

    Raises
    ------
    SingularMatrixError
        If a row is entirely (numerically) zero or no usable pivot exists
        for some column. Its `determinant` attribute is 0.0.
    """
    A = as_square(A)
    n = A.shape[0]
    if work is None:
        work = LUWorkspace(n)
    work.check(n)
    lu, equil, pivot = work.lu, work.equil, work.pivot

    lu[...] = A
    big = np.abs(lu).max(axis=1)
    if np.any(big < TINY):
        raise SingularMatrixError("matrix has a zero row", determinant=0.0)
    biggest = float(big.max())
    equil[:] = 1.0 / big

    rn = float(n)
    wrel = 0.0
    det = 1.0

    for col in range(n):
        # U strictly above the diagonal. Each entry needs the ones above
        # it in this column, so this part runs row by row.
        for row in range(col):
            s = lu[row, col]
            terms = lu[row, :row] * lu[:row, col]
            new = s - terms.sum()
            lu[row, col] = new
            if digits:
                ai = abs(s)
                if ai < TINY:
                    ai = biggest
                test = (np.abs(terms).sum() + abs(new)) / ai
                if test > wrel:
                    wrel = test

        # Diagonal of U and L below it (before division by the pivot)
        s = lu[col:, col].copy()
        terms = lu[col:, :col] * lu[:col, col]
        new = s - terms.sum(axis=1)
        lu[col:, col] = new
        if digits:
            ai = np.abs(s)
            ai[ai < TINY] = biggest
            test = float(((np.abs(terms).sum(axis=1) + np.abs(new)) / ai).max())
            if test > wrel:
                wrel = test

        # Scaled partial pivoting: largest magnitude relative to its row
        q = equil[col:] * np.abs(new)
        rmax = col + int(q.argmax())
        p = float(q[rmax - col])
        if rn + p == rn:
            raise SingularMatrixError("no usable pivot", determinant=0.0)

        if rmax != col:
            det = -det
            lu[[col, rmax]] = lu[[rmax, col]]
            equil[rmax] = equil[col]

        pivot[col] = rmax
        d = lu[col, col]
        det *= d
        lu[col + 1 :, col] /= d

    accuracy_lost = False
    if digits:
        wa = (3 * n + 3) * wrel
        accuracy_lost = wa + 10.0 ** (-digits) == wa

    return LUDecomposition(
        lu=lu,
        pivot=pivot,
        determinant=float(det),
        equilibration=equil,
        accuracy_lost=accuracy_lost,
    )


def lu_solve(
    decomp: LUDecomposition,
    b: np.ndarray,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Solve A x = b given the LU decomposition of A.

    b is copied into the solution vector and permuted there; the caller's
    b is untouched. Leading zeros of the permuted right-hand side are
    skipped in the forward pass.
    """
    lu, pivot = decomp.lu, decomp.pivot
    n = decomp.n
    b = np.asarray(b, dtype=float)
    if b.shape != (n,):
        raise ValueError(f"b must have shape ({n},), got {b.shape}")
    if out is None:
        out = np.empty(n)
    else:
        check_buffer(out, (n,), "out")
    x = out
    x[:] = b

    # Solve L y = P b
    first = -1
    for row in range(n):
        ip = pivot[row]
        s = x[ip]
        x[ip] = x[row]
        if first >= 0:
            s -= lu[row, first:row] @ x[first:row]
        elif abs(s) > TINY:
            first = row
        x[row] = s

    # Solve U x = y
    for row in range(n - 1, -1, -1):
        s = x[row] - lu[row, row + 1 :] @ x[row + 1 :]
        x[row] = s / lu[row, row]

    return x


def invert(
    A: np.ndarray,
    out: Optional[np.ndarray] = None,
    work: Optional[LUWorkspace] = None,
) -> Tuple[np.ndarray, float]:
    """
    Invert a square nonsingular matrix via its LU decomposition.

    Returns
    -------
    inverse : (n, n) ndarray
        `out` if given, else a new array.
    determinant : float

    Raises
    ------
    SingularMatrixError
        `out` is left untouched in that case.
    """
    A = as_square(A)
    n = A.shape[0]
    if out is not None:
        check_buffer(out, (n, n), "out")
    if work is None:
        work = LUWorkspace(n)

    decomp = lu_decompose(A, work=work)
    if out is None:
        out = np.empty((n, n))

    # The equilibration factors are no longer needed; reuse them as the
    # unit right-hand side.
    unit = work.equil
    for i in range(n):
        unit[:] = 0.0
        unit[i] = 1.0
        lu_solve(decomp, unit, out=work.soln)
        out[:, i] = work.soln

    return out, decomp.determinant
