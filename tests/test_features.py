# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import logging
import math

import numpy as np
import pytest
from scipy import stats

from quantlinalg import features
from quantlinalg.eigen import EigenDecomposition
from quantlinalg.features import (
    absorption_ratio,
    absorption_shift,
    coherence,
    delta_coherence,
    mahalanobis,
)

logger = logging.getLogger(__name__)

MAX_LOGIT = math.log(0.99999 / 0.00001)


def make_prices(n_markets=4, n_bars=120, common=0.0, seed=0):
    """Random-walk log prices, optionally driven by a shared factor."""
    rng = np.random.default_rng(seed)
    shared = rng.normal(scale=0.01, size=n_bars)
    own = rng.normal(scale=0.01, size=(n_markets, n_bars))
    steps = common * shared + own
    return 100.0 * np.exp(np.cumsum(steps, axis=1))


# ----- Mahalanobis -----


def test_mahalanobis_front_and_range():
    close = make_prices()
    lookback = 20
    out = mahalanobis(close, lookback)
    assert out.shape == (close.shape[1],)
    assert np.all(out[:lookback] == 0.0)
    assert np.all(out >= 0.0)
    assert np.all(out <= MAX_LOGIT + 1e-12)


def test_mahalanobis_matches_direct_computation():
    close = make_prices(n_markets=3, n_bars=60, seed=1)
    lookback = 15
    out = mahalanobis(close, lookback)

    changes = np.log(close[:, 1:] / close[:, :-1])
    n_markets = 3
    k = lookback - 1 - n_markets
    for icase in (lookback, 33, 59):
        window = changes[:, icase - lookback : icase - 1]
        mean = window.mean(axis=1)
        cov = np.cov(window, bias=True)
        diff = changes[:, icase - 1] - mean
        dist = diff @ np.linalg.inv(cov) @ diff
        dist *= (lookback - 1.0) * k / (n_markets * (lookback - 2.0) * lookback)
        prob = min(max(stats.f.cdf(dist, n_markets, k), 0.5), 0.99999)
        assert out[icase] == pytest.approx(math.log(prob / (1.0 - prob)), abs=1e-4)


def test_mahalanobis_flags_a_shock():
    close = make_prices(n_markets=3, n_bars=80, seed=2)
    close[1, 60:] *= 1.2  # one market jumps 20 percent at bar 60
    out = mahalanobis(close, 30)
    logger.debug(f"\nMahalanobis around the shock:\n{out[55:65]}\n")
    assert out[60] == pytest.approx(MAX_LOGIT)


def test_mahalanobis_smoothing():
    close = make_prices(seed=3)
    lookback, span = 20, 5
    raw = mahalanobis(close, lookback)
    smoothed = mahalanobis(close, lookback, n_to_smooth=span)

    alpha = 2.0 / (span + 1.0)
    expected = raw.copy()
    for i in range(lookback + 1, raw.size):
        expected[i] = alpha * raw[i] + (1.0 - alpha) * expected[i - 1]
    np.testing.assert_allclose(smoothed, expected, atol=1e-12)


def test_mahalanobis_singular_covariance_outputs_zero(caplog):
    close = make_prices(n_markets=2, n_bars=40, seed=4)
    close[1] = close[0]
    with caplog.at_level(logging.DEBUG, logger="quantlinalg.features"):
        out = mahalanobis(close, 10)
    np.testing.assert_array_equal(out, np.zeros(40))
    assert any("singular" in r.getMessage() for r in caplog.records)


def test_mahalanobis_lookback_too_short():
    with pytest.raises(ValueError):
        mahalanobis(make_prices(n_markets=5), 6)


def test_short_history_is_all_zero():
    close = make_prices(n_markets=2, n_bars=8)
    np.testing.assert_array_equal(mahalanobis(close, 10), np.zeros(8))
    np.testing.assert_array_equal(absorption_ratio(close, 10, 0.5), np.zeros(8))
    np.testing.assert_array_equal(delta_coherence(close, 5, 10), np.zeros(8))


def test_nonpositive_prices_raise():
    close = make_prices()
    close[2, 7] = 0.0
    with pytest.raises(ValueError):
        absorption_ratio(close, 10, 0.5)


# ----- Absorption ratio -----


def test_absorption_ratio_matches_direct_computation():
    close = make_prices(n_markets=5, n_bars=70, common=1.0, seed=5)
    lookback, fraction = 16, 0.2
    out = absorption_ratio(close, lookback, fraction)
    assert np.all(out[: lookback - 1] == 0.0)

    changes = np.log(close[:, 1:] / close[:, :-1])
    alpha = 2.0 / (lookback / 2.0 + 1.0)
    numer = denom = None
    for icase in range(lookback - 1, close.shape[1]):
        window = changes[:, icase - lookback + 1 : icase]
        evals = np.linalg.eigvalsh(np.cov(window, bias=True))[::-1]
        value, total = evals[0], evals.sum()
        if numer is None:
            numer, denom = value, total
        else:
            numer = alpha * value + (1.0 - alpha) * numer
            denom = alpha * total + (1.0 - alpha) * denom
        assert out[icase] == pytest.approx(100.0 * numer / denom, rel=1e-8)


def test_absorption_ratio_extremes():
    close = make_prices(n_markets=4, n_bars=50, seed=6)
    # All eigenvalues counted
    np.testing.assert_allclose(absorption_ratio(close, 12, 1.0)[11:], 100.0, rtol=1e-12)

    # Identical markets: one eigenvalue holds everything
    same = np.tile(close[0], (4, 1))
    np.testing.assert_allclose(absorption_ratio(same, 12, 0.25)[11:], 100.0, rtol=1e-9)


def test_absorption_ratio_bad_fraction():
    with pytest.raises(ValueError):
        absorption_ratio(make_prices(), 10, 0.0)


def test_absorption_shift():
    close = make_prices(n_markets=4, n_bars=150, common=0.7, seed=7)
    lookback, long_lb, short_lb = 20, 40, 5
    out = absorption_shift(close, lookback, 0.25, long_lb, short_lb)
    front_bad = lookback - 1 + long_lb - 1
    assert np.all(out[:front_bad] == 0.0)

    ratio = absorption_ratio(close, lookback, 0.25)
    icase = 120
    window = ratio[icase - long_lb + 1 : icase + 1]
    expected = (window[-short_lb:].mean() - window.mean()) / window.std()
    assert out[icase] == pytest.approx(expected, rel=1e-8)


def test_absorption_shift_coerces_long_lookback(caplog):
    close = make_prices(n_bars=80, seed=8)
    with caplog.at_level(logging.WARNING, logger="quantlinalg.features"):
        coerced = absorption_shift(close, 10, 0.5, 3, 5)
    assert any("long_lookback" in r.getMessage() for r in caplog.records)
    np.testing.assert_array_equal(coerced, absorption_shift(close, 10, 0.5, 6, 5))


# ----- Coherence -----


def test_coherence_two_markets_is_scaled_correlation():
    close = make_prices(n_markets=2, n_bars=60, common=1.0, seed=9)
    lookback = 20
    out = coherence(close, lookback)
    assert np.all(out[: lookback - 1] == 0.0)

    changes = np.log(close[:, 1:] / close[:, :-1])
    for icase in (lookback - 1, 40, 59):
        r = np.corrcoef(changes[:, icase - lookback + 1 : icase])[0, 1]
        assert out[icase] == pytest.approx(200.0 * (abs(r) - 0.5), abs=1e-8)


def test_coherence_identical_markets():
    close = make_prices(n_markets=3, n_bars=40, seed=10)
    same = np.tile(close[0], (3, 1))
    np.testing.assert_allclose(coherence(same, 10)[9:], 100.0, atol=1e-8)


def test_coherence_needs_two_markets():
    with pytest.raises(ValueError):
        coherence(make_prices(n_markets=1), 10)


def test_delta_coherence():
    close = make_prices(n_markets=3, n_bars=90, common=0.5, seed=11)
    lookback, delta = 15, 7
    coh = coherence(close, lookback)
    out = delta_coherence(close, lookback, delta)
    front_bad = lookback - 1 + delta
    assert np.all(out[:front_bad] == 0.0)
    np.testing.assert_allclose(out[front_bad:], coh[front_bad:] - coh[front_bad - delta : -delta])


# ----- Eigen-solver failures -----


def fail_on_call(monkeypatch, failing_call):
    """Make the features' eigen-solver report non-convergence on one call."""
    real = features.eigen_symmetric
    calls = []

    def eigen_symmetric(A, *args, **kwargs):
        calls.append(None)
        result = real(A, *args, **kwargs)
        if len(calls) == failing_call:
            return EigenDecomposition(result.values, result.vectors, unconverged=1)
        return result

    monkeypatch.setattr(features, "eigen_symmetric", eigen_symmetric)


def test_absorption_ratio_repeats_previous_when_unconverged(monkeypatch, caplog):
    close = make_prices(n_markets=4, n_bars=40, common=0.5, seed=12)
    lookback = 10
    reference = absorption_ratio(close, lookback, 0.5)

    fail_on_call(monkeypatch, 6)
    with caplog.at_level(logging.DEBUG, logger="quantlinalg.features"):
        out = absorption_ratio(close, lookback, 0.5)

    bad = lookback - 1 + 5
    np.testing.assert_array_equal(out[:bad], reference[:bad])
    assert out[bad] == out[bad - 1]
    assert out[bad] != reference[bad]
    assert any("did not converge" in r.getMessage() for r in caplog.records)


def test_coherence_zero_when_unconverged(monkeypatch, caplog):
    close = make_prices(n_markets=3, n_bars=40, common=0.5, seed=13)
    lookback = 10
    reference = coherence(close, lookback)

    fail_on_call(monkeypatch, 4)
    with caplog.at_level(logging.DEBUG, logger="quantlinalg.features"):
        out = coherence(close, lookback)

    bad = lookback - 1 + 3
    assert out[bad] == 0.0
    keep = np.arange(out.size) != bad
    np.testing.assert_array_equal(out[keep], reference[keep])
    assert any("did not converge" in r.getMessage() for r in caplog.records)
