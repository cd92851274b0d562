# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Purify: remove from one series the part explained by the trend,
acceleration and volatility of another.

Over a rolling window the predicted series is regressed on three
features of the log predictor (first and second order Legendre fits and
mean absolute log change) plus a constant. The output is the current
residual in units of the window's RMS error.
"""

import logging
import math
from typing import Tuple

import numpy as np

from .distributions import normal_cdf
from .svd import SingularValueDecomp

logger = logging.getLogger(__name__)

PURIFY_SV_LIMIT = 1e-7


def _legendre_1(n: int) -> np.ndarray:
    c1 = 2.0 * np.arange(n) / (n - 1.0) - 1.0
    return c1 / np.linalg.norm(c1)


def legendre_2(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    First and second order discrete Legendre polynomials on n points.

    Both are normalized to unit length and c2 is centered, so the two are
    orthogonal to each other and to a constant.

    Returns
    -------
    c1, c2 : (n,) ndarrays
    """
    if n < 3:
        raise ValueError(f"legendre_2 needs at least 3 points, got {n}")
    c1 = _legendre_1(n)

    c2 = c1 * c1
    c2 -= c2.mean()
    c2 /= np.linalg.norm(c2)
    return c1, c2


class Purify:
    """
    Rolling Purify regression.

    Parameters
    ----------
    lookback : int
        Number of bars in each regression.
    trend_length, accel_length, vol_length : int
        Inner window of each predictor, 0 to leave it out. At least one
        must be nonzero.
    """

    def __init__(self, lookback: int, trend_length: int, accel_length: int, vol_length: int):
        if trend_length == 0 and accel_length == 0 and vol_length == 0:
            raise ValueError("at least one of trend, accel and vol lengths must be nonzero")
        if trend_length and trend_length < 2:
            raise ValueError("trend_length must be 0 or at least 2")
        if accel_length and accel_length < 3:
            raise ValueError("accel_length must be 0 or at least 3")
        if vol_length and vol_length < 2:
            raise ValueError("vol_length must be 0 or at least 2")

        self.lookback = lookback
        self.trend_length = trend_length
        self.accel_length = accel_length
        self.vol_length = vol_length
        self.npred = sum(1 for k in (trend_length, accel_length, vol_length) if k)
        self.max_length = max(trend_length, accel_length, vol_length)

        # Raises ConstructionError when lookback < npred + 1
        self.svd = SingularValueDecomp(lookback, self.npred + 1, preserve_input=True)

        self._trend_coefs = _legendre_1(trend_length) if trend_length else None
        self._accel_coefs = legendre_2(accel_length)[1] if accel_length else None

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.lookback}, {self.trend_length}, "
            f"{self.accel_length}, {self.vol_length})"
        )

    @property
    def history(self) -> int:
        """Bars of history (current bar included) that compute() needs."""
        return self.lookback + self.max_length - 1

    def _fill(self, predicted: np.ndarray, predictor: np.ndarray, use_log: bool) -> None:
        a, b = self.svd.a, self.svd.b
        log_pred = np.log(predictor)
        cur = predictor.shape[0] - 1

        # Row 0 is the current bar; later rows step back in time
        for row in range(self.lookback):
            end = cur - row + 1
            col = 0
            if self.trend_length:
                a[row, col] = self._trend_coefs @ log_pred[end - self.trend_length : end]
                col += 1
            if self.accel_length:
                a[row, col] = self._accel_coefs @ log_pred[end - self.accel_length : end]
                col += 1
            if self.vol_length:
                window = log_pred[end - self.vol_length : end]
                a[row, col] = np.abs(np.diff(window)).sum() / (self.vol_length - 1)
                col += 1
            a[row, col] = 1.0

        b[:] = predicted[cur - self.lookback + 1 : cur + 1][::-1]
        if use_log:
            b[:] = np.log(b)

    def compute(self, predicted, predictor, use_log: bool = False) -> float:
        """
        Purified value of the last bar.

        Parameters
        ----------
        predicted : array-like
            Series to purify, in chronological order, ending at the current bar.
        predictor : array-like of positive values
            Same bars as `predicted`; its logs are always used.
        use_log : bool
            Regress the log of `predicted` instead of its raw values.

        Returns
        -------
        float : current residual divided by the RMS residual
        """
        predicted = np.asarray(predicted, dtype=float)
        predictor = np.asarray(predictor, dtype=float)
        if predicted.shape != predictor.shape or predicted.ndim != 1:
            raise ValueError("predicted and predictor must be 1-D arrays of the same length")
        if predictor.shape[0] < self.history:
            raise ValueError(
                f"need at least {self.history} bars of history, got {predictor.shape[0]}"
            )

        self._fill(predicted, predictor, use_log)
        svd = self.svd
        unconverged = svd.decompose()
        if unconverged:
            logger.warning("Purify: %d singular values did not converge", unconverged)
        coefs = svd.backsub(PURIFY_SV_LIMIT)

        resid = svd.b - svd.a @ coefs
        rms = math.sqrt(float(resid @ resid) / self.lookback)
        logger.debug("Purify coefs=%s rms=%.5f final=%.5f", coefs, rms, resid[0])
        return float(resid[0] / (rms + 1e-6))


def purify_series(
    predicted,
    predictor,
    lookback: int,
    trend_length: int,
    accel_length: int,
    vol_length: int,
    use_log: bool = False,
) -> np.ndarray:
    """
    Purify every bar of `predicted` against `predictor`, mapped to
    [-50, 50] through the normal CDF. Leading bars without enough
    history are 0.
    """
    predicted = np.asarray(predicted, dtype=float)
    predictor = np.asarray(predictor, dtype=float)
    n = predicted.shape[0]
    if lookback < 2:
        logger.warning("purify_series(): lookback %d raised to 2", lookback)
        lookback = 2

    purifier = Purify(lookback, trend_length, accel_length, vol_length)
    front_bad = min(lookback + purifier.max_length - 1, n)

    output = np.zeros(n)
    for icase in range(front_bad, n):
        value = purifier.compute(predicted[: icase + 1], predictor[: icase + 1], use_log)
        output[icase] = 100.0 * normal_cdf(0.5 * value) - 50.0
    return output
