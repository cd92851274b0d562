# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Cross-market summaries of a single bar, basic indicator statistics and
tie-aware equal-count binning.
Inputs are 1-D array-likes; none are modified.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .utils import DIVISION_GUARD


@dataclass(frozen=True)
class BasicStats:
    mean: float
    minimum: float
    maximum: float
    iqr: float


def _vector(x) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    if x.ndim != 1 or x.size == 0:
        raise ValueError("x must be a non-empty 1-D array")
    return x


def first_pctile(x) -> float:
    """
    Percentile of x[0] among all of x, scaled so that the smallest
    returns 0 and the largest 100.
    """
    x = _vector(x)
    n = x.size
    if n < 2:
        raise ValueError("first_pctile needs at least two values")
    count = int((x[1:] <= x[0]).sum())
    return 100.0 * count / (n - 1.0)


def median(x) -> float:
    return float(np.median(_vector(x)))


def value_range(x) -> float:
    x = _vector(x)
    return float(x.max() - x.min())


def iqr(x) -> float:
    x = np.sort(_vector(x))
    n = x.size
    return float(x[3 * n // 4] - x[n // 4])


def clump(x) -> float:
    """
    "Clumped 60": the 0.4 fractile if it is positive, the 0.6 fractile if
    that is negative, otherwise 0. Nonzero only when at least 60 percent
    of the values agree in sign.
    """
    x = np.sort(_vector(x))
    n = x.size
    k = max(int(0.4 * (n + 1)) - 1, 0)
    m = n - k - 1
    if x[k] > 0.0:
        return float(x[k])
    if x[m] < 0.0:
        return float(x[m])
    return 0.0


def basic_stats(x) -> BasicStats:
    """Mean, extremes and a crudely unbiased interquartile range."""
    x = _vector(x)
    work = np.sort(x)
    n = work.size
    k25 = int(0.25 * (n + 1))
    k75 = n - 1 - k25
    return BasicStats(
        mean=float(x.mean()),
        minimum=float(work[0]),
        maximum=float(work[-1]),
        iqr=float(work[k75] - work[k25]),
    )


def relative_entropy(x) -> float:
    """
    Entropy of the histogram of x divided by its maximum possible value,
    so the result lies in [0, 1]. The bin count grows with the sample size.
    """
    x = _vector(x)
    n = x.size
    if n >= 10000:
        nbins = 20
    elif n >= 1000:
        nbins = 10
    elif n >= 100:
        nbins = 5
    else:
        nbins = 3

    xmin = x.min()
    factor = (nbins - 1e-11) / (x.max() - xmin + DIVISION_GUARD)
    bins = (factor * (x - xmin)).astype(np.intp)
    counts = np.bincount(bins, minlength=nbins)

    p = counts[counts > 0] / n
    return float(-(p * np.log(p)).sum()) / math.log(nbins)


def _best_split(ix: np.ndarray, bin_end: List[int]) -> Optional[Tuple[int, int]]:
    """
    The split of an existing bin that maximizes the smaller of the two
    halves without separating a tie, as (bin, last index of left half).
    """
    best, nbest = None, -1
    istart = 0
    for ibound, istop in enumerate(bin_end):
        cand = np.arange(istart, istop)
        cand = cand[ix[cand] != ix[cand + 1]]
        if cand.size:
            smaller = np.minimum(cand - istart + 1, istop - cand)
            j = int(np.argmax(smaller))
            if smaller[j] > nbest:
                best, nbest = (ibound, int(cand[j])), int(smaller[j])
        istart = istop + 1
    return best


def partition(data, npart: int) -> Tuple[int, np.ndarray, np.ndarray]:
    """
    Split data into roughly equal-count bins without splitting ties.

    If npart is at least the number of distinct values, every distinct
    value gets its own bin. With few ties and npart much less than n the
    bins have equal or nearly equal size. Heavy ties can leave fewer
    bins than requested.

    Parameters
    ----------
    data : 1-D array-like
    npart : int
        Requested number of bins, at least 1. Values above len(data) are
        reduced to len(data).

    Returns
    -------
    npart : int
        Number of bins actually made.
    bounds : (npart,) ndarray
        Inclusive upper bound of each bin, increasing.
    bins : (len(data),) ndarray of int
        Bin id, 0 through npart - 1, of each case.
    """
    x = _vector(data)
    n = x.size
    if npart < 1:
        raise ValueError(f"npart must be at least 1, got {npart}")
    npart = min(npart, n)

    order = np.argsort(x, kind="mergesort")
    xs = x[order]
    # Integer tie ids: equal ids mark values that count as the same
    distinct = np.diff(xs) >= 1e-12 * (1.0 + np.abs(xs[1:]) + np.abs(xs[:-1]))
    ix = np.concatenate([[0], np.cumsum(distinct)])

    bin_end = []
    k = 0
    for i in range(npart):
        k += (n - k) // (npart - i)
        bin_end.append(k - 1)

    # The last bound is always n - 1, so only internal bounds can split a tie
    while True:
        split = next(
            (b for b in range(len(bin_end) - 1) if ix[bin_end[b]] == ix[bin_end[b] + 1]),
            None,
        )
        if split is None:
            break
        del bin_end[split]
        best = _best_split(ix, bin_end)
        if best is not None:
            ibound, isplit = best
            bin_end.insert(ibound, isplit)

    sizes = np.diff(np.concatenate([[-1], bin_end]))
    bins = np.empty(n, dtype=np.intp)
    bins[order] = np.repeat(np.arange(len(bin_end)), sizes)
    return len(bin_end), xs[bin_end], bins
