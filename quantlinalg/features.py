# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Multi-market indicators built on the covariance of log price changes.

Every function takes `close`, an (n_markets, n_bars) array of positive
prices, and returns an (n_bars,) array. Leading bars that cannot be
computed are set to 0.

- `mahalanobis`      : unusualness of the current bar's changes
- `absorption_ratio` : share of variance in the dominant eigenvalues
- `absorption_shift` : short-versus-long standardized shift of the ratio
- `coherence`        : concentration of the correlation spectrum
- `delta_coherence`  : change in coherence over `delta` bars
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from .distributions import f_cdf
from .eigen import EigenWorkspace, eigen_symmetric
from .elimination import LUWorkspace, invert
from .errors import SingularMatrixError
from .utils import DIVISION_GUARD

logger = logging.getLogger(__name__)


def _log_changes(close) -> Tuple[np.ndarray, np.ndarray]:
    close = np.asarray(close, dtype=float)
    if close.ndim != 2 or close.shape[0] < 1:
        raise ValueError(f"close must be a (n_markets, n_bars) array, got shape {close.shape}")
    if np.any(close <= 0.0):
        raise ValueError("close prices must be positive")
    # changes[:, j] is the change ending at bar j + 1
    return close, np.log(close[:, 1:] / close[:, :-1])


def _covariance(window: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Mean and covariance (divisor = number of changes) of a window of changes."""
    mean = window.mean(axis=1)
    dev = window - mean[:, None]
    return mean, dev @ dev.T / window.shape[1]


def _smooth(output: np.ndarray, start: int, n_to_smooth: int) -> None:
    alpha = 2.0 / (n_to_smooth + 1.0)
    for icase in range(start, output.shape[0]):
        output[icase] = alpha * output[icase] + (1.0 - alpha) * output[icase - 1]


def mahalanobis(close, lookback: int, n_to_smooth: int = 0) -> np.ndarray:
    """
    Mahalanobis distance of the current bar's log changes from the
    distribution of the `lookback - 1` changes before it.

    The distance is converted to an F probability, clipped to
    [0.5, 0.99999] and logit transformed, so quiet bars read 0 and
    unusual ones approach 11.5.

    Parameters
    ----------
    close : (n_markets, n_bars) array of positive prices
    lookback : int
        Bars in the reference window, at least n_markets + 2.
    n_to_smooth : int
        Exponential smoothing span, used when greater than 1.
    """
    close, changes = _log_changes(close)
    n_markets, n = close.shape
    if lookback < n_markets + 2:
        raise ValueError(
            f"mahalanobis needs lookback >= n_markets + 2 = {n_markets + 2}, got {lookback}"
        )

    front_bad = min(lookback, n)
    output = np.zeros(n)
    work = LUWorkspace(n_markets)
    inverse = np.empty((n_markets, n_markets))

    k = lookback - 1 - n_markets
    scale = (lookback - 1.0) * k / (n_markets * (lookback - 2.0) * lookback)

    for icase in range(front_bad, n):
        # Reference changes end at bar icase - 1; the current bar is excluded
        mean, cov = _covariance(changes[:, icase - lookback : icase - 1])
        try:
            invert(cov, out=inverse, work=work)
        except SingularMatrixError:
            logger.debug("mahalanobis(): singular covariance at bar %d", icase)
            continue

        diff = changes[:, icase - 1] - mean
        dist = float(diff @ inverse @ diff) * scale
        prob = min(max(f_cdf(n_markets, k, dist), 0.5), 0.99999)
        output[icase] = math.log(prob / (1.0 - prob))

    if n_to_smooth > 1:
        _smooth(output, front_bad + 1, n_to_smooth)
    return output


def _spectrum(
    changes: np.ndarray,
    icase: int,
    lookback: int,
    work: EigenWorkspace,
    correlation: bool,
) -> Optional[np.ndarray]:
    """
    Descending eigenvalues of the covariance (or correlation) of the
    `lookback - 1` changes ending at bar icase, or None when the
    eigen-solver did not converge.
    """
    _mean, cov = _covariance(changes[:, icase - lookback + 1 : icase])
    cov[np.diag_indices_from(cov)] += DIVISION_GUARD

    if correlation:
        sd = np.sqrt(np.diagonal(cov))
        cov /= np.outer(sd, sd)
        cov[np.diag_indices_from(cov)] = 1.0

    result = eigen_symmetric(cov, find_vectors=False, overwrite_a=True, work=work)
    if not result.converged:
        logger.debug("eigen_symmetric() did not converge at bar %d", icase)
        return None
    return result.values


def absorption_ratio(close, lookback: int, fraction: float) -> np.ndarray:
    """
    Percent of total variance absorbed by the largest `fraction` of the
    covariance eigenvalues. Numerator and denominator are smoothed
    separately with span lookback / 2.

    Parameters
    ----------
    close : (n_markets, n_bars) array of positive prices
    lookback : int
        Bars in each window, current bar included, at least 2.
    fraction : float
        Share of eigenvalues counted as dominant, in (0, 1]; at least one
        eigenvalue is always used.
    """
    close, changes = _log_changes(close)
    n_markets, n = close.shape
    if lookback < 2:
        raise ValueError(f"absorption_ratio needs lookback >= 2, got {lookback}")
    if not 0.0 < fraction <= 1.0:
        raise ValueError(f"fraction must be in (0, 1], got {fraction}")

    front_bad = min(lookback - 1, n)
    output = np.zeros(n)
    work = EigenWorkspace(n_markets)

    k = max(1, int(fraction * n_markets + 0.5))
    alpha = 2.0 / (lookback / 2.0 + 1.0)
    smoothed_numer = smoothed_denom = None

    for icase in range(front_bad, n):
        evals = _spectrum(changes, icase, lookback, work, correlation=False)
        if evals is None:
            output[icase] = output[icase - 1]
            continue

        value = float(evals[:k].sum())
        total = float(evals.sum())
        if smoothed_numer is None:
            smoothed_numer, smoothed_denom = value, total
        else:
            smoothed_numer = alpha * value + (1.0 - alpha) * smoothed_numer
            smoothed_denom = alpha * total + (1.0 - alpha) * smoothed_denom
        output[icase] = 100.0 * smoothed_numer / (smoothed_denom + 1e-30)

    return output


def absorption_shift(
    close,
    lookback: int,
    fraction: float,
    long_lookback: int,
    short_lookback: int,
) -> np.ndarray:
    """
    Mean absorption ratio over the last `short_lookback` bars minus its
    mean over `long_lookback` bars, in units of the long-window standard
    deviation.
    """
    if short_lookback < 1:
        raise ValueError(f"short_lookback must be at least 1, got {short_lookback}")
    if long_lookback < short_lookback + 1:
        logger.warning(
            "absorption_shift(): long_lookback %d raised to %d",
            long_lookback,
            short_lookback + 1,
        )
        long_lookback = short_lookback + 1

    ratio = absorption_ratio(close, lookback, fraction)
    n = ratio.shape[0]
    front_bad = min(lookback - 1 + long_lookback - 1, n)
    output = np.zeros(n)

    for icase in range(front_bad, n):
        window = ratio[icase - long_lookback + 1 : icase + 1]
        long_mean = window.mean()
        short_mean = window[-short_lookback:].mean()
        variance = float((window * window).mean()) - long_mean * long_mean
        if variance > 0.0:
            output[icase] = (short_mean - long_mean) / math.sqrt(variance)

    return output


def coherence(close, lookback: int) -> np.ndarray:
    """
    Coherence of the markets: eigenvalues of the correlation matrix
    weighted linearly from +1 (largest) to -1 (smallest), as a
    percentage in [-100, 100]. 100 means one factor drives everything.

    Parameters
    ----------
    close : (n_markets, n_bars) array of positive prices, n_markets >= 2
    lookback : int
        Bars in each window, current bar included, at least 2.
    """
    close, changes = _log_changes(close)
    n_markets, n = close.shape
    if n_markets < 2:
        raise ValueError("coherence needs at least two markets")
    if lookback < 2:
        raise ValueError(f"coherence needs lookback >= 2, got {lookback}")

    front_bad = min(lookback - 1, n)
    output = np.zeros(n)
    work = EigenWorkspace(n_markets)

    factor = 0.5 * (n_markets - 1)
    weights = (factor - np.arange(n_markets)) / factor

    for icase in range(front_bad, n):
        evals = _spectrum(changes, icase, lookback, work, correlation=True)
        if evals is None:
            continue
        output[icase] = 200.0 * (float(weights @ evals) / float(evals.sum()) - 0.5)

    return output


def delta_coherence(close, lookback: int, delta: int) -> np.ndarray:
    """Coherence minus its value `delta` bars earlier."""
    if delta < 1:
        raise ValueError(f"delta must be at least 1, got {delta}")
    coh = coherence(close, lookback)
    n = coh.shape[0]
    front_bad = min(lookback - 1 + delta, n)

    output = np.zeros(n)
    if front_bad < n:
        output[front_bad:] = coh[front_bad:] - coh[front_bad - delta : n - delta]
    return output
