"""
Risk scoring strategies.

Every strategy takes an indicator frame (price plus the six moving-average
columns, ascending by timestamp) and returns per-row risk in [1, 10].
`score_series` picks the strategy from `InstrumentConfig.algorithm`.
"""
import math
from datetime import date, datetime

import numpy as np
import pandas as pd

from instruments import InstrumentConfig, RiskThresholds
from moving_averages import rolling_percentile, rolling_volatility
from risk_errors import MalformedInputError

NEUTRAL_RISK = 5.0
MIN_RISK, MAX_RISK = 1.0, 10.0
YEAR_MS = 365.25 * 24 * 60 * 60 * 1000

INDICATOR_COLS = ["ema_short", "ema_long", "sma_short", "sma_mid", "sma_long", "sma_extra_long"]

# ema-focused tuning
LONG_EMA_BAND = 0.08
RECENCY_HORIZON_YEARS = 5.0
VOL_LOOKBACK = 20
VOL_MIN_INDEX = 50
SMOOTHING = 0.8

# enhanced tuning
ENH_MIN_INDEX = 130
ENH_DEV_WINDOW = 780
ENH_VOL_PERIOD = 65
ENH_VOL_WINDOW = 520
ENH_ELEVATION_RUN = 20
ENH_PEAK_RATIO = 0.95
ENH_MAX_RISK = 8.5


def round_risk(x: float) -> float:
    """Two decimals, halves rounded up."""
    return math.floor(x * 100 + 0.5) / 100


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def to_epoch_ms(value) -> int:
    if value is None:
        return int(pd.Timestamp.now(tz="UTC").value // 1_000_000)
    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return int(ts.value // 1_000_000)


def deviation(price: float, ref: float) -> float:
    """(price - ref) / ref; a missing (zero) reference is infinitely far away."""
    if ref == 0:
        return math.inf
    return (price - ref) / ref


def recency_weight(timestamp_ms: int, as_of_ms: int) -> float:
    years = (as_of_ms - timestamp_ms) / YEAR_MS
    return clamp((RECENCY_HORIZON_YEARS - years) / RECENCY_HORIZON_YEARS, 0.0, 1.0)


def trailing_volatility(prices: np.ndarray, i: int) -> float:
    """Root mean square of the daily returns in prices[i-20 ..= i]."""
    window = prices[max(0, i - VOL_LOOKBACK): i + 1]
    if len(window) < 2:
        return 0.0
    returns = np.diff(window) / window[:-1]
    return float(np.sqrt(np.mean(returns ** 2)))


def base_risk(dev_ema_short: float, dev_ema_long: float, dev_sma_short: float,
              dev_sma_mid: float, dev_sma_long: float, thresholds: RiskThresholds) -> float:
    e, m, n = thresholds.elevated, thresholds.moderate, thresholds.near_base

    if dev_ema_short >= e:
        if dev_ema_short >= e * 2:
            return 9.5
        if dev_ema_short >= e * 1.5:
            return 9.0
        if dev_ema_short >= e * 1.2:
            return 8.5
        return 8.0
    if dev_ema_short >= m:
        return 6.5 + (dev_ema_short - m) / (e - m) * 1.5
    if dev_ema_short >= n:
        return 5.0 + (dev_ema_short - n) / (m - n) * 1.5
    if dev_ema_long >= -LONG_EMA_BAND:
        if dev_ema_long >= 0:
            return 4.0 + dev_ema_long / LONG_EMA_BAND
        return 3.0 + (dev_ema_long + LONG_EMA_BAND) / LONG_EMA_BAND

    deepest = min(dev_sma_short, dev_sma_mid, dev_sma_long)
    if deepest <= -0.25:
        return 1.0
    if deepest <= -0.15:
        return 1.5
    if deepest <= -0.08:
        return 2.0
    if dev_sma_short <= -0.03:
        return 2.5
    return 3.0


def trend_alignment(*devs: float) -> float:
    return sum(1 if d > 0 else -1 for d in devs) / len(devs)


# --------- ema-focused ---------
def raw_ema_focused_risk(points: pd.DataFrame, config: InstrumentConfig, as_of_ms: int):
    """
    Phase 1: unsmoothed, clamped risk per row.

    Returns (raw, guarded) arrays; guarded rows lack the history needed for
    scoring and carry the neutral value.
    """
    n = len(points)
    prices = points["price"].to_numpy(dtype=float)
    stamps = points["timestamp"].to_numpy(dtype=np.int64)
    ind = {c: points[c].to_numpy(dtype=float) for c in INDICATOR_COLS}

    raw = np.full(n, NEUTRAL_RISK)
    guarded = np.zeros(n, dtype=bool)

    for i in range(n):
        price = prices[i]
        if ind["sma_short"][i] == 0 or ind["ema_short"][i] == 0 or ind["ema_long"][i] == 0:
            guarded[i] = True
            continue

        d_es = deviation(price, ind["ema_short"][i])
        d_el = deviation(price, ind["ema_long"][i])
        d_ss = deviation(price, ind["sma_short"][i])
        d_sm = deviation(price, ind["sma_mid"][i])
        d_sl = deviation(price, ind["sma_long"][i])

        risk = base_risk(d_es, d_el, d_ss, d_sm, d_sl, config.thresholds)

        weight = recency_weight(int(stamps[i]), as_of_ms)
        if weight > 0.7:
            if risk <= 3:
                risk -= 0.2
            elif risk >= 7:
                risk += 0.1

        if weight > 0.3 and i > VOL_MIN_INDEX:
            vol = trailing_volatility(prices, i)
            if vol > 0.06:
                risk -= 0.2
            elif vol > 0.04:
                risk -= 0.1

        alignment = trend_alignment(d_es, d_el, d_ss)
        if abs(alignment) > 0.6:
            risk += alignment * 0.15

        raw[i] = clamp(risk, MIN_RISK, MAX_RISK)

    return raw, guarded


def smooth_risk(raw: np.ndarray, guarded: np.ndarray, finalized=None) -> np.ndarray:
    """
    Phase 2: left-to-right blend with the previous emitted risk.

    The first and last rows are never blended. Rows covered by `finalized`
    keep those values and the scan continues from the last of them.
    """
    n = len(raw)
    out = np.empty(n)
    start = 0
    if finalized is not None:
        start = min(len(finalized), n)
        out[:start] = np.asarray(finalized, dtype=float)[:start]

    for i in range(start, n):
        risk = raw[i]
        if not guarded[i] and 0 < i < n - 1:
            risk = risk * SMOOTHING + out[i - 1] * (1 - SMOOTHING)
        out[i] = round_risk(risk)
    return out


def score_ema_focused(points: pd.DataFrame, config: InstrumentConfig, as_of_ms: int,
                      finalized=None) -> np.ndarray:
    raw, guarded = raw_ema_focused_risk(points, config, as_of_ms)
    return smooth_risk(raw, guarded, finalized)


# --------- enhanced ---------
def _elevation_runs(dev_short: np.ndarray, level: float) -> np.ndarray:
    runs = np.zeros(len(dev_short), dtype=int)
    for i, d in enumerate(dev_short):
        if d >= level:
            runs[i] = (runs[i - 1] if i else 0) + 1
    return runs


def _percentile_risk(p: float) -> float:
    if p <= 10:
        return 1 + p / 10
    if p <= 30:
        return 2 + (p - 10) / 20 * 1.5
    if p <= 50:
        return 3.5 + (p - 30) / 20 * 1.5
    if p <= 70:
        return 5 + (p - 50) / 20
    if p <= 85:
        return 6 + (p - 70) / 15
    if p <= 95:
        return 7 + (p - 85) / 10
    return 8 + (p - 95) / 5 * 0.5


def score_enhanced(points: pd.DataFrame, config: InstrumentConfig, as_of_ms: int,
                   finalized=None) -> np.ndarray:
    """Percentile / regime variant: where does today's distance from the long SMA rank historically?"""
    prices = points["price"].to_numpy(dtype=float)
    sma_long = points["sma_long"].to_numpy(dtype=float)
    ema_short = points["ema_short"].to_numpy(dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        dev_long = np.where(sma_long > 0, (prices - sma_long) / sma_long, np.nan)
        dev_short = np.where(ema_short > 0, (prices - ema_short) / ema_short, 0.0)

    vols = rolling_volatility(prices, ENH_VOL_PERIOD)
    runs = _elevation_runs(dev_short, config.thresholds.moderate)
    peaks = pd.Series(prices).rolling(ENH_DEV_WINDOW + 1, min_periods=1).max().to_numpy()

    out = np.full(len(points), NEUTRAL_RISK)
    for i in range(len(points)):
        if i < ENH_MIN_INDEX or sma_long[i] == 0:
            continue

        risk = _percentile_risk(rolling_percentile(dev_long[i], dev_long, i, ENH_DEV_WINDOW))

        vol_pct = rolling_percentile(vols[i], vols, i, ENH_VOL_WINDOW)
        if vol_pct > 80:
            risk += 0.3
        elif vol_pct < 20:
            risk -= 0.3

        if runs[i] >= ENH_ELEVATION_RUN:
            risk += 0.25
        if prices[i] >= peaks[i] * ENH_PEAK_RATIO:
            risk += 0.25

        if dev_short[i] > config.thresholds.elevated:
            risk = max(risk, 7.5)
        elif dev_short[i] < -0.1:
            risk = min(risk, 4.0)

        out[i] = round_risk(clamp(risk, MIN_RISK, ENH_MAX_RISK))

    if finalized is not None:
        k = min(len(finalized), len(out))
        out[:k] = np.asarray(finalized, dtype=float)[:k]
    return out


# --------- simple ---------
def score_simple(points: pd.DataFrame, config: InstrumentConfig, as_of_ms: int,
                 finalized=None) -> np.ndarray:
    out = np.empty(len(points))
    for i, row in enumerate(points[["price", "sma_long", "ema_short"]].itertuples(index=False)):
        dev_long = (row.price - row.sma_long) / row.sma_long if row.sma_long > 0 else 0.0
        dev_short = (row.price - row.ema_short) / row.ema_short if row.ema_short > 0 else 0.0
        if dev_long <= 0:
            risk = 1.0
        elif dev_short >= 0.3:
            risk = 10.0
        else:
            risk = 1 + min(dev_short / 0.3, 1) * 9
        out[i] = round_risk(clamp(risk, MIN_RISK, MAX_RISK))

    if finalized is not None:
        k = min(len(finalized), len(out))
        out[:k] = np.asarray(finalized, dtype=float)[:k]
    return out


STRATEGIES = {
    "ema-focused": score_ema_focused,
    "enhanced": score_enhanced,
    "simple": score_simple,
}


def check_ordering(points: pd.DataFrame) -> None:
    missing = [c for c in ["timestamp", "price"] + INDICATOR_COLS if c not in points.columns]
    if missing:
        raise MalformedInputError(f"indicator frame is missing columns: {missing}")
    stamps = points["timestamp"].to_numpy()
    if len(stamps) > 1 and not (np.diff(stamps) > 0).all():
        raise MalformedInputError("timestamps must be strictly increasing")


def score_series(points: pd.DataFrame, config: InstrumentConfig, as_of=None,
                 finalized=None) -> pd.DataFrame:
    """
    Annotate an indicator frame with risk.

    Args:
        points: rows ascending by timestamp with price and the six indicator columns
        config: instrument config; `config.algorithm` selects the strategy
        as_of: anchor for time decay (epoch ms or datetime-like); defaults to now.
            The same series scored at a different `as_of` can differ for rows
            inside the five-year decay horizon.
        finalized: risk values already final for a leading prefix of rows

    Returns:
        A copy of `points` with a `risk` column.
    """
    check_ordering(points)
    strategy = STRATEGIES[config.algorithm]
    out = points.copy()
    out["risk"] = strategy(points.reset_index(drop=True), config, to_epoch_ms(as_of), finalized)
    return out
