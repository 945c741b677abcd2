"""Tests for the risk scoring strategies."""

import math
from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from conftest import DAY_MS, make_prices
from instruments import RiskThresholds, build_config
from risk_errors import MalformedInputError
from risk_scoring import (
    YEAR_MS,
    _percentile_risk,
    base_risk,
    deviation,
    raw_ema_focused_risk,
    recency_weight,
    round_risk,
    score_series,
    to_epoch_ms,
    trailing_volatility,
)
from series import compute_indicators, prepare_prices

T = RiskThresholds(elevated=0.15, moderate=0.08, near_base=-0.05)


def indicators(prices, config):
    return compute_indicators(prepare_prices(prices), config)


def last_ts(prices):
    return int(prices["timestamp"].iloc[-1])


# --------- base risk branches ---------
@pytest.mark.parametrize("dev, expected", [
    (0.16, 8.0),
    (0.19, 8.5),
    (0.23, 9.0),
    (0.31, 9.5),
    (0.08, 6.5),
])
def test_base_risk_upper_branches(dev, expected):
    assert base_risk(dev, 0.0, 0.0, 0.0, 0.0, T) == pytest.approx(expected)


def test_price_sixteen_percent_above_short_ema_is_just_past_elevated():
    ema = 123.4
    dev = deviation(ema * 1.16, ema)
    assert base_risk(dev, 0.0, 0.0, 0.0, 0.0, T) == 8.0


def test_base_risk_interpolates_between_thresholds():
    assert base_risk(0.115, 0.0, 0.0, 0.0, 0.0, T) == pytest.approx(6.5 + 0.035 / 0.07 * 1.5)
    assert base_risk(0.0, 0.0, 0.0, 0.0, 0.0, T) == pytest.approx(5.0 + 0.05 / 0.13 * 1.5)
    assert base_risk(-0.05, 0.0, 0.0, 0.0, 0.0, T) == pytest.approx(5.0)


def test_base_risk_long_ema_band():
    assert base_risk(-0.06, 0.04, 0.0, 0.0, 0.0, T) == pytest.approx(4.5)
    assert base_risk(-0.06, 0.0, 0.0, 0.0, 0.0, T) == pytest.approx(4.0)
    assert base_risk(-0.06, -0.04, 0.0, 0.0, 0.0, T) == pytest.approx(3.5)
    assert base_risk(-0.06, -0.08, 0.0, 0.0, 0.0, T) == pytest.approx(3.0)


@pytest.mark.parametrize("sma_devs, expected", [
    ((-0.30, -0.10, -0.05), 1.0),
    ((-0.10, -0.20, -0.05), 1.5),
    ((-0.02, -0.01, -0.10), 2.0),
    ((-0.05, -0.05, -0.04), 2.5),
    ((-0.02, -0.01, 0.00), 3.0),
    ((-0.05, math.inf, math.inf), 2.5),
])
def test_base_risk_deep_discount_breakpoints(sma_devs, expected):
    assert base_risk(-0.20, -0.10, *sma_devs, T) == expected


def test_deviation_against_missing_reference_is_infinite():
    assert deviation(100.0, 0.0) == math.inf
    assert deviation(110.0, 100.0) == pytest.approx(0.1)


# --------- helpers ---------
def test_recency_weight_decays_over_five_years():
    now = to_epoch_ms("2025-01-01")
    assert recency_weight(now, now) == 1.0
    assert recency_weight(now - int(2.5 * YEAR_MS), now) == pytest.approx(0.5)
    assert recency_weight(now - int(7 * YEAR_MS), now) == 0.0


def test_trailing_volatility_is_rms_of_returns():
    prices = np.array([100.0, 110.0, 99.0])
    assert trailing_volatility(prices, 2) == pytest.approx(0.1)


def test_round_risk_rounds_halves_up():
    assert round_risk(2.5) == 2.5
    assert round_risk(7.125) == 7.13


def test_to_epoch_ms_accepts_dates_and_ints():
    assert to_epoch_ms(1_700_000_000_000) == 1_700_000_000_000
    assert to_epoch_ms("1970-01-02") == DAY_MS
    assert to_epoch_ms(pd.Timestamp("1970-01-02", tz="UTC")) == DAY_MS


# --------- ema-focused series ---------
def test_guard_rows_are_exactly_neutral(small_config, random_walk):
    ind = indicators(random_walk, small_config)
    scored = score_series(ind, small_config, last_ts(random_walk))

    guarded = (ind["sma_short"] == 0) | (ind["ema_short"] == 0) | (ind["ema_long"] == 0)
    assert guarded.sum() == small_config.sma_windows.short - 1
    assert (scored.loc[guarded, "risk"] == 5.0).all()


def test_risk_bounded_and_deterministic(small_config, random_walk):
    ind = indicators(random_walk, small_config)
    as_of = last_ts(random_walk)
    a = score_series(ind, small_config, as_of)
    b = score_series(ind, small_config, as_of)

    assert a["risk"].between(1, 10).all()
    pd.testing.assert_frame_equal(a, b)


def test_risk_rounded_to_two_decimals(small_config, random_walk):
    scored = score_series(indicators(random_walk, small_config), small_config, last_ts(random_walk))
    cents = scored["risk"] * 100
    assert np.allclose(cents, cents.round())


def test_first_and_last_rows_are_not_smoothed(random_walk):
    # one-day short SMA so the very first row is scored instead of guarded
    config = build_config("TEST", {
        "ema_windows": {"short": 7, "long": 15},
        "sma_windows": {"short": 1, "mid": 50, "long": 100, "extra_long": 200},
    })
    ind = indicators(random_walk, config)
    as_of = last_ts(random_walk)
    raw, guarded = raw_ema_focused_risk(ind, config, as_of)
    scored = score_series(ind, config, as_of)["risk"].to_numpy()

    assert not guarded[0]
    assert scored[0] == round_risk(raw[0])
    assert scored[-1] == round_risk(raw[-1])
    middle = raw[200] * 0.8 + scored[199] * (1 - 0.8)
    assert scored[200] == round_risk(middle)


def test_constant_price_settles_without_drift(small_config, constant_prices):
    scored = score_series(indicators(constant_prices, small_config), small_config,
                          last_ts(constant_prices))
    risk = scored["risk"].to_numpy()

    # 5 + 0.05/0.13 * 1.5 from the near-EMA band, -0.15 because no deviation is positive
    assert (risk[:19] == 5.0).all()
    assert (risk[30:] == 5.43).all()


def test_rescoring_is_idempotent(small_config, random_walk):
    as_of = last_ts(random_walk)
    once = score_series(indicators(random_walk, small_config), small_config, as_of)
    twice = score_series(once, small_config, as_of)
    assert twice["risk"].tolist() == once["risk"].tolist()


def test_as_of_changes_recent_scores(small_config, rally_prices):
    ind = indicators(rally_prices, small_config)
    now = last_ts(rally_prices)
    recent = score_series(ind, small_config, now)["risk"]
    later = score_series(ind, small_config, now + 10 * int(YEAR_MS))["risk"]

    # ~20% above the short EMA: base 8.5, +0.15 trend alignment.
    # Recent rows also get +0.1 for being extended and -0.2 for 7% daily moves.
    assert recent.iloc[-1] == pytest.approx(8.55)
    assert later.iloc[-1] == pytest.approx(8.65)
    assert not recent.equals(later)


def test_as_of_beyond_horizon_is_stable(small_config, rally_prices):
    ind = indicators(rally_prices, small_config)
    now = last_ts(rally_prices)
    a = score_series(ind, small_config, now + 6 * int(YEAR_MS))["risk"]
    b = score_series(ind, small_config, now + 9 * int(YEAR_MS))["risk"]
    assert a.tolist() == b.tolist()


def test_finalized_prefix_is_kept(small_config, random_walk):
    ind = indicators(random_walk, small_config)
    kept = np.full(100, 2.22)
    scored = score_series(ind, small_config, last_ts(random_walk), finalized=kept)["risk"].to_numpy()

    assert (scored[:100] == 2.22).all()
    raw, _ = raw_ema_focused_risk(ind, small_config, last_ts(random_walk))
    assert scored[100] == round_risk(raw[100] * 0.8 + 2.22 * (1 - 0.8))


def test_unordered_points_are_rejected(small_config, random_walk):
    ind = indicators(random_walk, small_config)
    shuffled = ind.iloc[::-1]
    with pytest.raises(MalformedInputError):
        score_series(shuffled, small_config, last_ts(random_walk))


def test_missing_indicator_column_is_rejected(small_config, random_walk):
    ind = indicators(random_walk, small_config).drop(columns=["sma_mid"])
    with pytest.raises(MalformedInputError):
        score_series(ind, small_config, last_ts(random_walk))


# --------- enhanced ---------
def test_percentile_risk_breakpoints():
    assert _percentile_risk(0) == 1.0
    assert _percentile_risk(10) == 2.0
    assert _percentile_risk(50) == pytest.approx(5.0)
    assert _percentile_risk(95) == pytest.approx(8.0)
    assert _percentile_risk(100) == pytest.approx(8.5)


def test_enhanced_warmup_and_bounds(small_config, random_walk):
    config = replace(small_config, algorithm="enhanced")
    scored = score_series(indicators(random_walk, config), config, last_ts(random_walk))
    risk = scored["risk"]

    assert (risk.iloc[:130] == 5.0).all()
    assert risk.between(1, 8.5).all()
    assert risk.iloc[130:].nunique() > 1


def test_enhanced_extended_price_is_at_least_elevated(small_config):
    closes = np.concatenate([np.full(300, 100.0), np.full(10, 130.0)])
    prices = make_prices(closes)
    config = replace(small_config, algorithm="enhanced")
    scored = score_series(indicators(prices, config), config, last_ts(prices))
    # first day of the jump sits 30% above the short EMA
    assert scored["risk"].iloc[300] >= 7.5


# --------- simple ---------
def _frame(rows):
    cols = ["price", "ema_short", "ema_long", "sma_short", "sma_mid", "sma_long", "sma_extra_long"]
    df = pd.DataFrame(rows, columns=cols)
    df.insert(0, "timestamp", np.arange(len(df), dtype="int64") * DAY_MS)
    return df


def test_simple_linear_strategy(small_config):
    config = replace(small_config, algorithm="simple")
    df = _frame([
        [90.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0],   # below long SMA
        [135.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0],  # 35% above short EMA
        [115.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0],  # halfway
        [95.0, 100.0, 100.0, 90.0, 90.0, 90.0, 90.0],       # above long SMA, below short EMA
    ])
    risk = score_series(df, config, 0)["risk"].tolist()
    assert risk == [1.0, 10.0, 5.5, 1.0]


def test_discounted_choppy_prices_get_buy_nudge_and_mid_volatility(small_config):
    # 20% under both EMAs, level with the SMAs: base 3.0 from the deep-discount branch
    moves = np.where(np.arange(60) % 2, 0.955, 1.045)
    moves[0] = 1.0
    prices = 100.0 * np.cumprod(moves)
    ema = prices / 0.8
    df = _frame(np.column_stack([prices, ema, ema, prices, prices, prices, prices]))
    raw, guarded = raw_ema_focused_risk(df, small_config, int(df["timestamp"].iloc[-1]))

    assert not guarded.any()
    # -0.2 recent low risk, -0.15 all signals below
    assert raw[10] == pytest.approx(2.65)
    assert raw[50] == pytest.approx(2.65)
    # from index 51 the 4.5% daily swings also cost 0.1
    assert raw[51] == pytest.approx(2.55)
    assert raw[59] == pytest.approx(2.55)
