# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import numpy as np

EPS: float = 1e-12

# Row maxima (LU) and partial sums (substitution) below this are zero.
TINY: float = 1e-90

# Householder rows whose scale falls below this are already tridiagonal.
EIGEN_COMPZERO: float = 1e-16

# Relative size of a sub-diagonal entry that splits the QL problem.
EIGEN_SPLIT_EPS: float = EPS

MAX_QL_ITERATIONS: int = 100
MAX_QR_SWEEPS: int = 50

# Relative singular-value cutoff for backsub, roughly sqrt(machine eps).
SV_LIMIT: float = 1e-7

# Added to denominators that may legitimately be zero.
DIVISION_GUARD: float = 1e-60


def as_square(A, name: str = "A") -> np.ndarray:
    """Return A as a float64 ndarray, raising ValueError unless it is n-by-n."""
    A = np.asarray(A, dtype=float)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"{name} must be a square matrix, got shape {A.shape}")
    return A


def check_buffer(buf: np.ndarray, shape, name: str) -> np.ndarray:
    """Validate a caller-supplied output buffer."""
    if not isinstance(buf, np.ndarray):
        raise TypeError(f"{name} must be a NumPy ndarray")
    if buf.shape != tuple(shape):
        raise ValueError(f"{name} must have shape {tuple(shape)}, got {buf.shape}")
    if not buf.flags.writeable:
        raise ValueError(f"{name} must be writeable")
    return buf


def scale_tol(A: np.ndarray) -> float:
    """Return an absolute tolerance scaled to the matrix magnitude."""
    return EPS * max(1.0, np.linalg.norm(A, ord=np.inf))


def random_nonsingular_upper(n, low=-100, high=100, seed=None) -> np.ndarray:
    """
    Build a matrix U that is upper-triangular with random entries
    everywhere and put only non-zero values on its diagonal

    Returns
    -------
    Matrix with float64 dtype
    """
    rng = np.random.default_rng(seed)
    U = rng.uniform(low, high, size=(n, n))
    U = np.triu(U)
    # replace any accidental zeros on the diagonal
    diag = rng.uniform(low if low != 0 else 1, high, size=n)
    U[np.diag_indices(n)] = diag
    return np.asarray(U)


def random_symmetric(n, seed=None) -> np.ndarray:
    """Random symmetric n-by-n matrix with standard normal entries."""
    rng = np.random.default_rng(seed)
    M = rng.standard_normal((n, n))
    return (M + M.T) / 2.0


def random_well_conditioned(n, seed=None) -> np.ndarray:
    """
    Random orthogonal matrix with its columns scaled into [0.5, 10],
    so the condition number never exceeds 20.
    """
    rng = np.random.default_rng(seed)
    Q, _R = np.linalg.qr(rng.standard_normal((n, n)))
    scales = rng.uniform(0.5, 10.0, size=n)
    return np.asarray(Q * scales)
