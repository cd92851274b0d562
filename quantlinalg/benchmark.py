#!/usr/bin/python3
# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Time the LU inverter, the symmetric eigen-solver and the SVD
least-squares solver against NumPy and print a markdown table.

    python -m quantlinalg.benchmark
"""

import time

import numpy as np
import pandas as pd

from .eigen import EigenWorkspace, eigen_symmetric
from .elimination import LUWorkspace, invert
from .svd import SingularValueDecomp
from .utils import random_symmetric, random_well_conditioned

REPEATS = 5  # best of 5 runs leads to stable numbers
SQUARE_SIZES = [10, 50, 200]
TALL_SIZES = [(100, 4), (500, 10), (2000, 20)]

COLUMNS = ["kernel", "size", "sec", "sec/NumPy", "error"]


def wall(f, *args, **kwargs):
    t0 = time.perf_counter()
    f(*args, **kwargs)
    return time.perf_counter() - t0


def bench_invert(n, seed=0):
    A = random_well_conditioned(n, seed=seed)
    out = np.empty((n, n))
    work = LUWorkspace(n)

    t_np = min(wall(np.linalg.inv, A) for _ in range(REPEATS))
    t_lu = min(wall(invert, A, out=out, work=work) for _ in range(REPEATS))
    err = np.linalg.norm(A @ out - np.eye(n), np.inf)
    return ("LU-inv", f"{n}x{n}", t_lu, t_lu / t_np, err)


def bench_eigen(n, seed=0):
    A = random_symmetric(n, seed=seed)
    work = EigenWorkspace(n)

    t_np = min(wall(np.linalg.eigh, A) for _ in range(REPEATS))
    t_ql = min(wall(eigen_symmetric, A, work=work) for _ in range(REPEATS))
    result = eigen_symmetric(A, work=work)
    ref = np.linalg.eigvalsh(A)[::-1]
    err = np.abs(result.values - ref).max()
    return ("HH-QL", f"{n}x{n}", t_ql, t_ql / t_np, err)


def bench_svd(m, n, seed=0):
    rng = np.random.default_rng(seed)
    A = rng.standard_normal((m, n))
    b = rng.standard_normal(m)
    svd = SingularValueDecomp(m, n, preserve_input=True)
    svd.a[...] = A
    svd.b[...] = b

    def run():
        svd.decompose()
        return svd.backsub()

    t_np = min(wall(np.linalg.lstsq, A, b, rcond=None) for _ in range(REPEATS))
    t_svd = min(wall(run) for _ in range(REPEATS))
    x_ref, *_ = np.linalg.lstsq(A, b, rcond=None)
    err = np.linalg.norm(run() - x_ref, np.inf)
    return ("GKR-SVD", f"{m}x{n}", t_svd, t_svd / t_np, err)


def run_benchmarks() -> pd.DataFrame:
    records = []
    for n in SQUARE_SIZES:
        records.append(bench_invert(n))
        records.append(bench_eigen(n))
    for m, n in TALL_SIZES:
        records.append(bench_svd(m, n))
    return pd.DataFrame(records, columns=COLUMNS)


def main():
    df = run_benchmarks()
    print(df.to_markdown(index=False))
    df.to_csv("bench_results.csv", index=False)


if __name__ == "__main__":
    main()
