# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Eigenvalues and eigenvectors of a real symmetric matrix.

Householder reduction to tridiagonal form followed by the implicit QL
method with shifts. Eigenvalues come back sorted in decreasing order and
each eigenvector column is signed so that most of its entries are
non-negative, which keeps results reproducible across runs.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .utils import (
    EIGEN_COMPZERO,
    EIGEN_SPLIT_EPS,
    MAX_QL_ITERATIONS,
    check_buffer,
)


class EigenWorkspace:
    """Output and scratch memory for an n-by-n symmetric eigenproblem."""

    def __init__(self, n: int):
        if n < 1:
            raise ValueError("EigenWorkspace needs n >= 1")
        self.n = n
        self.vectors = np.empty((n, n))
        self.values = np.empty(n)
        self.work = np.empty(n)

    def check(self, n: int) -> None:
        if n != self.n:
            raise ValueError(f"workspace is sized for n={self.n}, got n={n}")


@dataclass(frozen=True)
class EigenDecomposition:
    """
    values      : (n,) eigenvalues, non-increasing
    vectors     : (n, n) unit eigenvectors by column, or None if not requested
    unconverged : number of eigenvalues that hit the iteration limit.
                  When nonzero the whole result must be discarded.
    """

    values: np.ndarray
    vectors: Optional[np.ndarray]
    unconverged: int = 0

    @property
    def converged(self) -> bool:
        return self.unconverged == 0


def eigen_symmetric(
    A: np.ndarray,
    find_vectors: bool = True,
    *,
    overwrite_a: bool = False,
    work: Optional[EigenWorkspace] = None,
    max_iter: int = MAX_QL_ITERATIONS,
) -> EigenDecomposition:
    """
    Eigen-decomposition of a real symmetric matrix.

    Parameters
    ----------
    A : (n, n) ndarray
        Only the lower triangle, diagonal included, is read. The upper
        triangle may hold anything.
    find_vectors : bool
        Also compute eigenvectors. Skipping them saves the accumulation
        of the orthogonal transforms.
    overwrite_a : bool
        Work directly in A (which must be a writeable float64 ndarray) and
        return the eigenvectors there. Otherwise A is not modified.
    work : EigenWorkspace | None
        Caller-owned output/scratch memory.
    max_iter : int
        QL retries allowed per eigenvalue.

    Returns
    -------
    EigenDecomposition
    """
    if overwrite_a:
        if not isinstance(A, np.ndarray) or A.dtype != np.float64:
            raise TypeError("overwrite_a requires a float64 ndarray")
    else:
        A = np.asarray(A, dtype=float)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"A must be a square matrix, got shape {A.shape}")
    n = A.shape[0]
    if work is None:
        work = EigenWorkspace(n)
    work.check(n)

    evals, workv = work.values, work.work
    if overwrite_a:
        vect = check_buffer(A, (n, n), "A")
    else:
        vect = work.vectors
        lower = np.tril_indices(n)
        vect[lower] = A[lower]

    _tridiagonalize(vect, evals, workv, find_vectors)

    if n > 1:
        unconverged = _tridiagonal_ql(vect, evals, workv, find_vectors, max_iter)
        if unconverged:
            return EigenDecomposition(
                values=evals,
                vectors=vect if find_vectors else None,
                unconverged=unconverged,
            )
        _sort_descending(vect, evals, find_vectors)

    if find_vectors:
        negative = (vect < 0.0).sum(axis=0)
        vect[:, 2 * negative > n] *= -1.0

    return EigenDecomposition(values=evals, vectors=vect if find_vectors else None)


def _tridiagonalize(vect, evals, workv, find_vectors):
    """
    Householder reduction, last row first. On exit the diagonal is in
    evals, the sub-diagonal in workv[1:], and vect holds the orthogonal
    transform if it was requested.
    """
    n = vect.shape[0]

    for irow in range(n - 1, 0, -1):
        h = 0.0
        row = vect[irow, :irow]
        scale = float(np.abs(row).sum())
        if scale < EIGEN_COMPZERO or irow == 1:
            workv[irow] = vect[irow, irow - 1]
        else:
            row /= scale
            h = float(row @ row)
            # The reflector is the row with its last element moved away
            # from the diagonal by the row length.
            f = float(row[-1])
            g = -math.sqrt(h) if f > 0.0 else math.sqrt(h)
            workv[irow] = g * scale
            h -= f * g
            row[-1] = f - g
            u = row.copy()

            # Upper triangle stores u / h for the later accumulation
            if find_vectors:
                vect[:irow, irow] = u / h

            # p = A u / h using the lower triangle of the leading block
            block = np.tril(vect[:irow, :irow])
            p = (block @ u + block.T @ u - np.diagonal(block) * u) / h
            hh = float(p @ u) / (h + h)
            q = p - hh * u
            workv[:irow] = q

            # A <- A - u q' - q u'  (lower triangle only)
            update = np.outer(u, q) + np.outer(q, u)
            lower = np.tril_indices(irow)
            vect[:irow, :irow][lower] -= update[lower]

        evals[irow] = h

    workv[0] = 0.0
    if find_vectors:
        evals[0] = 0.0
        for irow in range(n):
            if abs(evals[irow]) > EIGEN_COMPZERO:
                u = vect[irow, :irow]
                g = u @ vect[:irow, :irow]
                vect[:irow, :irow] -= np.outer(vect[:irow, irow], g)
            evals[irow] = vect[irow, irow]
            vect[irow, irow] = 1.0
            vect[irow, :irow] = 0.0
            vect[:irow, irow] = 0.0
    else:
        evals[:] = np.diagonal(vect)


def _tridiagonal_ql(vect, evals, workv, find_vectors, max_iter) -> int:
    """
    Implicit QL iteration on the tridiagonal matrix (diagonal in evals,
    sub-diagonal in workv[1:]). Returns the number of eigenvalues left
    unresolved, 0 on success.
    """
    n = evals.shape[0]

    workv[:-1] = workv[1:]
    workv[-1] = 0.0

    shift = 0.0
    b = 0.0
    for ival in range(n):
        # b is the computational zero for sub-diagonal entries; it only grows
        h = EIGEN_SPLIT_EPS * (abs(evals[ival]) + abs(workv[ival]))
        b = max(b, h, EIGEN_COMPZERO)

        # workv[n-1] is zero, so a split point always exists
        msplit = ival
        while abs(workv[msplit]) > b:
            msplit += 1

        if msplit > ival:
            iters = 0
            while True:
                if iters > max_iter:
                    return n - ival
                iters += 1

                g = evals[ival]
                p = (evals[ival + 1] - g) / (2.0 * workv[ival])
                r = math.sqrt(p * p + 1.0)
                evals[ival] = workv[ival] / (p + (r if p > 0 else -r))
                h = g - evals[ival]
                evals[ival + 1 :] -= h
                shift += h

                p = evals[msplit]
                cosine = 1.0
                sine = 0.0
                for i in range(msplit - 1, ival - 1, -1):
                    e = workv[i]
                    g = cosine * e
                    h = cosine * p
                    if abs(p) >= abs(e):
                        cosine = e / p
                        r = math.sqrt(cosine * cosine + 1.0)
                        workv[i + 1] = sine * p * r
                        sine = cosine / r
                        cosine = 1.0 / r
                    else:
                        cosine = p / e
                        r = math.sqrt(cosine * cosine + 1.0)
                        workv[i + 1] = sine * e * r
                        sine = 1.0 / r
                        cosine = cosine * sine
                    p = cosine * evals[i] - sine * g
                    evals[i + 1] = h + sine * (cosine * g + sine * evals[i])
                    if find_vectors:
                        left = vect[:, i].copy()
                        right = vect[:, i + 1].copy()
                        vect[:, i + 1] = sine * left + cosine * right
                        vect[:, i] = cosine * left - sine * right

                evals[ival] = cosine * p
                workv[ival] = sine * p
                if abs(workv[ival]) <= b:
                    break

        evals[ival] += shift

    return 0


def _sort_descending(vect, evals, find_vectors):
    """Selection sort of the eigenvalues, carrying the vectors along."""
    n = evals.shape[0]
    for i in range(n - 1):
        ibig = i + int(np.argmax(evals[i:]))
        # argmax returns the first maximum, so ties never swap
        if ibig != i:
            evals[i], evals[ibig] = evals[ibig], evals[i]
            if find_vectors:
                vect[:, [i, ibig]] = vect[:, [ibig, i]]
