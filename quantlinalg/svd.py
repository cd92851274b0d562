# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import math
from typing import Optional

import numpy as np

from .errors import ConstructionError
from .utils import DIVISION_GUARD, MAX_QR_SWEEPS, SV_LIMIT, check_buffer


class SingularValueDecomp:
    """
    Singular value decomposition of an m-by-n matrix (m >= n) and
    truncated least-squares back-substitution.

    All memory is allocated once, here, so the same object can be reused
    for every window of a rolling regression:

        svd = SingularValueDecomp(m, n)
        svd.a[...] = design      # fill the design matrix
        svd.decompose()
        svd.b[...] = rhs         # fill the right-hand side
        x = svd.backsub(1e-7)

    After decompose(), A = U diag(w) V' where U is `left` (m-by-n),
    `w` holds the singular values and `v` is n-by-n. The singular values
    are non-negative but NOT sorted; w[k] pairs with column k of U and V.

    Parameters
    ----------
    rows, cols : int
        Shape of the design matrix, rows >= cols.
    preserve_input : bool
        If True, `a` is left intact and U is written to `u`. Otherwise
        U overwrites `a`.
    """

    def __init__(self, rows: int, cols: int, preserve_input: bool = False):
        if cols < 1 or rows < 1:
            raise ConstructionError(f"illegal shape {rows}x{cols}")
        if cols > rows:
            raise ConstructionError(
                f"SVD needs at least as many rows as columns, got {rows}x{cols}"
            )
        try:
            self.a = np.zeros((rows, cols))
            self.w = np.zeros(cols)
            self.v = np.zeros((cols, cols))
            self.b = np.zeros(rows)
            self._work = np.zeros(cols)
            self.u = np.zeros((rows, cols)) if preserve_input else None
        except MemoryError as e:
            raise ConstructionError(f"cannot allocate SVD for {rows}x{cols}") from e

        self.rows = rows
        self.cols = cols
        self._norm = 0.0

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.rows}, {self.cols}, "
            f"preserve_input={self.u is not None})"
        )

    @property
    def left(self) -> np.ndarray:
        """The left orthogonal factor U produced by decompose()."""
        return self.a if self.u is None else self.u

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------

    def decompose(self, max_sweeps: int = MAX_QR_SWEEPS) -> int:
        """
        Golub-Kahan-Reinsch SVD of `a`.

        Returns
        -------
        unconverged : int
            Number of singular values whose QR sweeps ran out before
            convergence. Virtually always 0.
        """
        if self.u is not None:
            self.u[...] = self.a
        matrix = self.left
        w, v, work = self.w, self.v, self._work

        self._bidiag(matrix)
        self._right(matrix)
        self._left(matrix)

        norm = self._norm
        unconverged = 0
        for sval in range(self.cols - 1, -1, -1):
            for _ in range(max_sweeps):
                # Look for a negligible super-diagonal (split) or a
                # negligible diagonal (cancel it, then split there)
                split = sval
                while split:
                    if norm + abs(work[split]) == norm:
                        break
                    if norm + abs(w[split - 1]) == norm:
                        self._cancel(split, sval, matrix)
                        break
                    split -= 1

                if split == sval:
                    if w[sval] < 0.0:
                        w[sval] = -w[sval]
                        v[:, sval] = -v[:, sval]
                    break

                self._qr(split, sval, matrix)
            else:
                unconverged += 1

        return unconverged

    def _bidiag(self, matrix: np.ndarray) -> None:
        """Householder reduction to upper bidiagonal form."""
        cols = self.cols
        w, work = self.w, self._work
        norm = temp = scale = 0.0

        for col in range(cols):
            work[col] = scale * temp

            scale = float(np.abs(matrix[col:, col]).sum())
            if scale > 0.0:
                w[col] = scale * self._bid1(col, matrix, scale)
            else:
                w[col] = 0.0

            scale = float(np.abs(matrix[col, col + 1 :]).sum())
            if scale > 0.0:
                temp = self._bid2(col, matrix, scale)
            else:
                temp = 0.0

            norm = max(norm, abs(w[col]) + abs(work[col]))

        # Scale of the problem; anything this small relative to it is zero
        self._norm = norm

    def _bid1(self, col: int, matrix: np.ndarray, scale: float) -> float:
        """Zero column `col` below the diagonal."""
        x = matrix[col:, col]
        x /= scale
        s = float(x @ x)
        rv = math.sqrt(s)
        diag = x[0]
        if diag > 0.0:
            rv = -rv
        fac = 1.0 / (diag * rv - s)
        x[0] = diag - rv

        if col + 1 < self.cols:
            sums = (x @ matrix[col:, col + 1 :]) * fac
            matrix[col:, col + 1 :] += np.outer(x, sums)

        x *= scale
        return rv

    def _bid2(self, col: int, matrix: np.ndarray, scale: float) -> float:
        """Zero row `col` to the right of the super-diagonal."""
        work = self._work
        x = matrix[col, col + 1 :]
        x /= scale
        s = float(x @ x)
        rv = math.sqrt(s)
        diag = x[0]
        if diag > 0.0:
            rv = -rv
        x[0] = diag - rv
        fac = 1.0 / (diag * rv - s)
        work[col + 1 :] = fac * x

        if col + 1 < self.rows:
            sums = matrix[col + 1 :, col + 1 :] @ x
            matrix[col + 1 :, col + 1 :] += np.outer(sums, work[col + 1 :])

        x *= scale
        return rv

    def _right(self, matrix: np.ndarray) -> None:
        """Accumulate the right-hand transforms into v."""
        v, work = self.v, self._work
        denom = 0.0
        for col in range(self.cols - 1, -1, -1):
            if denom != 0.0:
                temp = 1.0 / matrix[col, col + 1]
                # Double division avoids underflow
                v[col + 1 :, col] = temp * matrix[col, col + 1 :] / denom
                sums = matrix[col, col + 1 :] @ v[col + 1 :, col + 1 :]
                v[col + 1 :, col + 1 :] += np.outer(v[col + 1 :, col], sums)

            denom = work[col]
            v[col, col + 1 :] = 0.0
            v[col + 1 :, col] = 0.0
            v[col, col] = 1.0

    def _left(self, matrix: np.ndarray) -> None:
        """Accumulate the left-hand transforms in place; matrix becomes U."""
        w = self.w
        for col in range(self.cols - 1, -1, -1):
            matrix[col, col + 1 :] = 0.0

            if w[col] == 0.0:
                matrix[col:, col] = 0.0
            else:
                fac = 1.0 / w[col]
                temp = fac / matrix[col, col]
                sums = (matrix[col + 1 :, col] @ matrix[col + 1 :, col + 1 :]) * temp
                matrix[col:, col + 1 :] += np.outer(matrix[col:, col], sums)
                matrix[col:, col] *= fac

            matrix[col, col] += 1.0

    def _cancel(self, low: int, high: int, matrix: np.ndarray) -> None:
        """
        w[low-1] is negligible: chase the super-diagonal entry work[low]
        out of the block with Givens rotations against column low-1.
        """
        w, work, norm = self.w, self._work, self._norm
        lm1 = low - 1
        sine = 1.0
        cosine = 0.0
        for col in range(low, high + 1):
            leg1 = sine * work[col]
            work[col] = cosine * work[col]
            if abs(leg1) + norm == norm:
                break
            leg2 = w[col]
            hyp = math.hypot(leg1, leg2)
            w[col] = hyp
            sine = -leg1 / hyp
            cosine = leg2 / hyp
            x = matrix[:, col].copy()
            y = matrix[:, lm1].copy()
            matrix[:, col] = x * cosine - y * sine
            matrix[:, lm1] = x * sine + y * cosine

    def _qr(self, low: int, high: int, matrix: np.ndarray) -> None:
        """One implicit-shift QR sweep over the block low..high."""
        w, work = self.w, self._work

        wh = w[high]
        whm1 = w[high - 1]
        wkh = work[high]
        wkhm1 = work[high - 1]

        # Shift from the trailing 2x2 block
        temp = 2.0 * wkh * whm1
        if temp != 0.0:
            temp = ((whm1 + wh) * (whm1 - wh) + (wkhm1 + wkh) * (wkhm1 - wkh)) / temp
        else:
            temp = 0.0
        hyp = math.hypot(temp, 1.0)
        if temp < 0.0:
            hyp = -hyp

        ww = w[low]
        wk = wkh * (whm1 / (temp + hyp) - wkh) + (ww + wh) * (ww - wh)
        if ww != 0.0:
            wk /= ww
        else:
            wk = 0.0

        sine = cosine = 1.0
        for col in range(low, high):
            x = work[col + 1]
            ty = sine * x
            x *= cosine
            hyp = math.hypot(wk, ty)
            work[col] = hyp
            cosine = wk / hyp
            sine = ty / hyp
            tx = ww * cosine + x * sine
            x = x * cosine - ww * sine
            y = w[col + 1]
            ty = y * sine
            y *= cosine
            self._rotate(self.v, col, sine, cosine)
            hyp = math.hypot(tx, ty)
            w[col] = hyp
            if hyp != 0.0:
                cosine = tx / hyp
                sine = ty / hyp
            self._rotate(matrix, col, sine, cosine)
            wk = cosine * x + sine * y
            ww = cosine * y - sine * x

        work[low] = 0.0
        work[high] = wk
        w[high] = ww

    @staticmethod
    def _rotate(mat: np.ndarray, col: int, sine: float, cosine: float) -> None:
        x = mat[:, col].copy()
        y = mat[:, col + 1].copy()
        mat[:, col] = x * cosine + y * sine
        mat[:, col + 1] = y * cosine - x * sine

    # ------------------------------------------------------------------
    # Least squares
    # ------------------------------------------------------------------

    def backsub(self, limit: float = SV_LIMIT, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Solve A x = b in the least-squares sense from the last
        decompose(), using the right-hand side currently in `b`.

        Singular values at or below `limit` times the largest one are
        treated as zero and their directions dropped (truncated
        pseudo-inverse). Neither the decomposition nor `b` is changed,
        so this may be called repeatedly with different right-hand sides.
        """
        w, work = self.w, self._work
        if out is None:
            out = np.empty(self.cols)
        else:
            check_buffer(out, (self.cols,), "out")

        cutoff = limit * float(w.max()) + DIVISION_GUARD
        keep = w > cutoff

        work[:] = 0.0
        work[keep] = (self.b @ self.left[:, keep]) / w[keep]

        out[:] = self.v @ work
        return out
