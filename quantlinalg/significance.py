# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Significance tests and association measures for candidate predictors.

Inputs are array-likes and are never modified; anything that needs
sorting works on a copy.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .distributions import anderson_darling_cdf, f_cdf, ibeta, igamma
from .utils import DIVISION_GUARD


@dataclass(frozen=True)
class AnovaResult:
    f: float
    account: float  # between / (between + within)
    pval: float


@dataclass(frozen=True)
class ChiSquareResult:
    chi_square: float
    contingency: float
    cramer_v: float
    pval: float


def _as_vector(x, name: str = "x") -> np.ndarray:
    x = np.asarray(x, dtype=float)
    if x.ndim != 1 or x.size == 0:
        raise ValueError(f"{name} must be a non-empty 1-D array")
    return x


def _as_table(table) -> np.ndarray:
    table = np.asarray(table)
    if table.ndim != 2:
        raise ValueError("table must be a 2-D array of counts")
    return table.astype(np.int64)


def _check_groups(ids, n: int, k: int) -> np.ndarray:
    ids = np.asarray(ids)
    if ids.shape != (n,):
        raise ValueError(f"ids must have shape ({n},), got {ids.shape}")
    if np.any(ids < 0) or np.any(ids >= k):
        raise ValueError(f"group ids must lie in 0..{k - 1}")
    return ids.astype(np.intp)


def tied_ranks(sorted_x: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Ranks (1-based, ties share their average rank) of an ascending array
    and the tie correction sum(t**3 - t) over tie groups.
    """
    n = sorted_x.shape[0]
    ranks = np.empty(n)
    tie_correc = 0.0
    j = 0
    while j < n:
        k = j + 1
        while k < n and sorted_x[k] <= sorted_x[j]:
            k += 1
        ntied = k - j
        tie_correc += float(ntied) ** 3 - ntied
        ranks[j:k] = 0.5 * (j + k + 1.0)
        j = k
    return ranks, tie_correc


def t_test(x) -> float:
    """One-sample Student's t statistic for a zero mean."""
    x = _as_vector(x)
    n = x.size
    if n < 2:
        raise ValueError("t_test needs at least two cases")
    mean = x.mean()
    ss = float(((x - mean) ** 2).sum())
    std = math.sqrt(ss / (n * (n - 1)))
    return float(mean / (std + DIVISION_GUARD))


def t_test_two(x1, x2) -> float:
    """Two-sample t statistic (pooled variance) for mean(x1) - mean(x2)."""
    x1 = _as_vector(x1, "x1")
    x2 = _as_vector(x2, "x2")
    n1, n2 = x1.size, x2.size
    if n1 + n2 < 3:
        raise ValueError("t_test_two needs at least three cases in total")
    mean1, mean2 = x1.mean(), x2.mean()
    ss = float(((x1 - mean1) ** 2).sum() + ((x2 - mean2) ** 2).sum())
    std = math.sqrt(ss / (n1 + n2 - 2) * (1.0 / n1 + 1.0 / n2))
    return float((mean1 - mean2) / (std + DIVISION_GUARD))


def u_test(x1, x2) -> Tuple[float, float]:
    """
    Mann-Whitney U test of set 1 against set 2.

    U is small when set 1 tends to exceed set 2 (U' = n1 * n2 - U).
    z is the tie-corrected normal approximation for a one-tailed test,
    signed so that z > 0 when set 1 is larger; it is good for n1 + n2 > 20.

    Returns
    -------
    (U, z)
    """
    x1 = _as_vector(x1, "x1")
    x2 = _as_vector(x2, "x2")
    n1, n2 = x1.size, x2.size
    values = np.concatenate([x1, x2])
    member = np.concatenate([np.zeros(n1, dtype=bool), np.ones(n2, dtype=bool)])
    order = np.argsort(values, kind="mergesort")
    ranks, tie_correc = tied_ranks(values[order])

    rank_sum1 = float(ranks[~member[order]].sum())
    U = n1 * n2 + 0.5 * (n1 * (n1 + 1.0)) - rank_sum1

    dn = float(n1 + n2)
    term2 = (dn * dn * dn - dn - tie_correc) / 12.0
    if term2 <= 0.0:
        # Every value tied: no evidence either way
        return U, 0.0
    term1 = n1 * n2 / (dn * (dn - 1.0))
    z = (0.5 * n1 * n2 - U) / math.sqrt(term1 * term2)
    return U, z


def ks_test(x) -> Tuple[float, float, float]:
    """
    Kolmogorov-Smirnov test of x against the uniform distribution on [0, 1].

    Returns
    -------
    (D, D_plus, D_minus) where D = max(D_plus, D_minus)
    """
    x = np.sort(_as_vector(x))
    n = x.size
    fn = np.arange(1, n + 1) / n
    old_fn = np.concatenate([[0.0], fn[:-1]])
    d_plus = max(0.0, float((fn - x).max()))
    d_minus = max(0.0, float((x - old_fn).max()))
    return max(d_plus, d_minus), d_plus, d_minus


def anderson_darling_test(x) -> float:
    """
    Anderson-Darling test of x against the uniform distribution on [0, 1].
    Returns the right-tail p-value.
    """
    x = np.sort(_as_vector(x))
    n = x.size
    # Values at exactly 0 or 1 would send the log to -inf
    term = np.maximum(x * (1.0 - x[::-1]), 1e-30)
    z = -float(n) * n - float(((2.0 * np.arange(n) + 1.0) * np.log(term)).sum())
    return 1.0 - anderson_darling_cdf(z / n)


def anova_1(x, ids, k: int) -> AnovaResult:
    """
    One-way ANOVA of x across k groups, ids[i] in 0..k-1.
    """
    x = _as_vector(x)
    n = x.size
    ids = _check_groups(ids, n, k)
    if k < 2 or n <= k:
        raise ValueError("anova_1 needs at least two groups and more cases than groups")

    counts = np.bincount(ids, minlength=k)
    means = np.bincount(ids, weights=x, minlength=k) / (counts + DIVISION_GUARD)
    grand_mean = x.mean()

    between = float((counts * (means - grand_mean) ** 2).sum()) / (k - 1)
    within = float(((x - means[ids]) ** 2).sum()) / (n - k)

    f = between / (within + DIVISION_GUARD)
    return AnovaResult(
        f=f,
        account=between / (between + within + DIVISION_GUARD),
        pval=1.0 - f_cdf(k - 1, n - k, f),
    )


def kruskal_wallis(x, ids, k: int) -> float:
    """Kruskal-Wallis H statistic (rank-based one-way ANOVA), tie corrected."""
    x = _as_vector(x)
    n = x.size
    ids = _check_groups(ids, n, k)

    order = np.argsort(x, kind="mergesort")
    ranks, tie_correc = tied_ranks(x[order])
    sorted_ids = ids[order]

    counts = np.bincount(sorted_ids, minlength=k)
    rank_sums = np.bincount(sorted_ids, weights=ranks, minlength=k)
    kw = float((rank_sums**2 / (counts + DIVISION_GUARD)).sum())
    kw = 12.0 / (n * (n + 1)) * kw - 3.0 * (n + 1)
    denom = 1.0 - tie_correc / (float(n) ** 3 - n) if n > 1 else 0.0
    if denom <= 0.0:
        # One case, or every value tied
        return 0.0
    return kw / denom


def chisq(table) -> ChiSquareResult:
    """Chi-square test of independence for a contingency table of counts."""
    data = _as_table(table)
    nrows, ncols = data.shape
    ndf = (nrows - 1) * (ncols - 1)
    if ndf == 0:
        return ChiSquareResult(chi_square=0.0, contingency=0.0, cramer_v=0.0, pval=1.0)

    rmarg = data.sum(axis=1)
    cmarg = data.sum(axis=0)
    total = int(rmarg.sum())
    if total == 0:
        return ChiSquareResult(chi_square=0.0, contingency=0.0, cramer_v=0.0, pval=1.0)

    expected = np.outer(rmarg, cmarg).astype(float) / (total + 1e-20)
    chi_square = float(((data - expected) ** 2 / (expected + 1e-20)).sum())

    cramer_v = chi_square / total / (min(nrows, ncols) - 1)
    return ChiSquareResult(
        chi_square=chi_square,
        contingency=math.sqrt(chi_square / (total + chi_square)),
        cramer_v=math.sqrt(cramer_v),
        pval=1.0 - igamma(0.5 * ndf, 0.5 * chi_square),
    )


def nominal_lambda(table) -> Tuple[float, float, float]:
    """
    Goodman-Kruskal lambda for two nominal variables.

    Returns
    -------
    (row_dep, col_dep, sym) : asymmetric lambda with the row variable
    dependent, with the column variable dependent, and symmetric lambda.
    """
    data = _as_table(table)
    nrows, ncols = data.shape
    if nrows < 2 or ncols < 2:
        return 0.0, 0.0, 0.0

    total = int(data.sum())
    sum_row_cell_max = int(data.max(axis=1).sum())
    sum_col_cell_max = int(data.max(axis=0).sum())
    max_row_total = int(data.sum(axis=1).max())
    max_col_total = int(data.sum(axis=0).max())

    if total > max_row_total:
        row_dep = (sum_col_cell_max - max_row_total) / (total - max_row_total)
    else:
        row_dep = 1.0
    if total > max_col_total:
        col_dep = (sum_row_cell_max - max_col_total) / (total - max_col_total)
    else:
        col_dep = 1.0

    numer = sum_col_cell_max - max_row_total + sum_row_cell_max - max_col_total
    denom = 2 * total - max_row_total - max_col_total
    sym = numer / denom if denom > 0 else 1.0
    return row_dep, col_dep, sym


def _entropy(counts: np.ndarray, total: int) -> float:
    p = counts[counts > 0] / total
    return float(-(p * np.log(p)).sum())


def uncertainty_reduction(table) -> Tuple[float, float, float]:
    """
    Uncertainty reduction (Theil's U) for two nominal variables.

    Returns
    -------
    (row_dep, col_dep, sym)
    """
    data = _as_table(table)
    nrows, ncols = data.shape
    if nrows < 2 or ncols < 2:
        return 0.0, 0.0, 0.0

    total = int(data.sum())
    u_row = _entropy(data.sum(axis=1), total)
    u_col = _entropy(data.sum(axis=0), total)
    u_joint = _entropy(data.ravel(), total)

    numer = u_row + u_col - u_joint
    row_dep = numer / u_row if u_row > 0 else 0.0
    col_dep = numer / u_col if u_col > 0 else 0.0
    sym = 2.0 * numer / (u_row + u_col) if u_row + u_col > 0 else 0.0
    return row_dep, col_dep, sym


def left_binomial(n: int, p: float, m: int) -> float:
    """Probability that a binomial (n, p) variable is at most m."""
    if m >= n:
        return 1.0
    if m < 0:
        return 0.0
    return 1.0 - ibeta(m + 1, n - m, p)


def combinations(n: int, m: int) -> float:
    """n choose m as a float. Exact, but only for fairly small n."""
    j = min(m, n - m)
    product = 1.0
    while j > 0:
        product *= n / j
        n -= 1
        j -= 1
    return product


def orderstat_tail(n: int, q: float, m: int) -> float:
    """Probability that the m'th order statistic of n exceeds the q fractile."""
    if m > n:
        return 1.0
    if m <= 0:
        return 0.0
    return 1.0 - ibeta(m, n - m + 1, q)


def quantile_conf(n: int, m: int, conf: float = 0.05, tol: float = 1e-10) -> float:
    """
    Pessimistic quantile: the p for which the probability that the m'th
    order statistic of n cases exceeds the p'th quantile equals conf.

    The root of conf - orderstat_tail is bracketed by a coarse scan and
    then refined with Ridder's method.
    """

    def f(p):
        return conf - orderstat_tail(n, p, m)

    x1, y1 = 0.0, conf - 1.0
    x3, y3 = 0.1, 0.0
    while x3 <= 1.0:
        y3 = f(x3)
        if abs(y3) < tol:
            return x3
        if y3 > 0.0:
            break
        x1, y1 = x3, y3
        x3 += 0.0999999999

    x2 = 0.5 * (x1 + x3)
    for _ in range(200):
        x2 = 0.5 * (x1 + x3)
        if x3 - x1 < tol:
            return x2

        y2 = f(x2)
        if abs(y2) < tol:
            return x2

        x = x2 + (x1 - x2) * y2 / math.sqrt(y2 * y2 - y1 * y3)
        y = f(x)
        if abs(y) < tol:
            return x

        if y2 < 0.0 < y:
            x1, y1, x3, y3 = x2, y2, x, y
        elif y < 0.0 < y2:
            x1, y1, x3, y3 = x, y, x2, y2
        elif y < 0.0:
            x1, y1 = x, y
        else:
            x3, y3 = x, y

    return x2


def roc_area(pred, target, center: bool = False) -> float:
    """
    Area under the ROC curve of `pred` as a predictor of `target`, with
    each case weighted by the magnitude of its target. If `center`, the
    target is first centered on its mean. Returns 0.5 when the target
    has no wins or no losses.
    """
    pred = _as_vector(pred, "pred")
    target = np.array(target, dtype=float)
    if target.shape != pred.shape:
        raise ValueError("pred and target must have the same shape")
    if center:
        target -= target.mean()

    order = np.argsort(pred, kind="mergesort")
    t = target[order][::-1]  # largest prediction first

    win_sum = float(t[t > 0.0].sum())
    lose_sum = -float(t[t <= 0.0].sum())
    if win_sum == 0.0 or lose_sum == 0.0:
        return 0.5

    win = np.cumsum(np.where(t > 0.0, t / win_sum, 0.0))
    losing = t < 0.0
    return float(-(win[losing] * t[losing]).sum() / lose_sum)
