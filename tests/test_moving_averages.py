"""Tests for the moving-average library."""

import numpy as np
import pytest

from moving_averages import compute_ema, compute_sma, rolling_percentile, rolling_volatility


def naive_sma(prices, window):
    return [0.0 if i < window - 1 else sum(prices[i - window + 1: i + 1]) / window
            for i in range(len(prices))]


def test_sma_zero_sentinel_then_trailing_mean():
    np.random.seed(1)
    prices = list(100 + np.random.randn(60).cumsum())
    sma = compute_sma(prices, 10)

    assert len(sma) == len(prices)
    assert (sma[:9] == 0).all()
    assert sma.tolist() == pytest.approx(naive_sma(prices, 10))


def test_sma_window_longer_than_series_is_all_zero():
    assert compute_sma([1.0, 2.0, 3.0], 5).tolist() == [0.0, 0.0, 0.0]


def test_sma_non_positive_window_is_all_zero():
    assert compute_sma([1.0, 2.0, 3.0], 0).tolist() == [0.0, 0.0, 0.0]
    assert compute_sma([1.0, 2.0, 3.0], -3).tolist() == [0.0, 0.0, 0.0]


@pytest.mark.parametrize("window", [1, 2, 8, 40, 500])
def test_ema_seeded_with_first_price(window):
    prices = [42.5, 43.0, 41.0, 44.0]
    assert compute_ema(prices, window)[0] == 42.5


def test_ema_matches_recurrence():
    prices = [10.0, 11.0, 12.5, 12.0, 13.5, 15.0, 14.0]
    window = 3
    m = 2 / (window + 1)
    expected = [prices[0]]
    for p in prices[1:]:
        expected.append(p * m + expected[-1] * (1 - m))

    assert compute_ema(prices, window).tolist() == pytest.approx(expected)


def test_ema_empty_input():
    assert len(compute_ema([], 5)) == 0


def test_ema_rejects_zero_window():
    with pytest.raises(ValueError):
        compute_ema([1.0, 2.0], 0)


def test_rolling_volatility_warmup_and_value():
    prices = [100.0, 110.0, 99.0, 108.9]
    vol = rolling_volatility(prices, 3)

    assert vol[0] == 0 and vol[1] == 0
    # returns +10% and -10%: population std 0.1, annualized
    assert vol[2] == pytest.approx(0.1 * np.sqrt(252))


def test_rolling_percentile_needs_ten_values():
    assert rolling_percentile(5.0, [1.0, 2.0, 3.0], 2) == 50.0


def test_rolling_percentile_rank_ignores_nan():
    values = [np.nan] * 5 + list(range(1, 21))
    # 10 of the 20 finite values are <= 10
    assert rolling_percentile(10, values, len(values) - 1, window=100) == 50.0
    assert rolling_percentile(20, values, len(values) - 1, window=100) == 100.0
