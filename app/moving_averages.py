import numpy as np
import pandas as pd

TRADING_DAYS = 252


def _as_series(prices) -> pd.Series:
    return pd.Series(np.asarray(prices, dtype=float))


# --------- moving averages ---------
def compute_sma(prices, window: int) -> np.ndarray:
    """Trailing mean of `window` prices, 0.0 where the window is not full yet."""
    s = _as_series(prices)
    if window <= 0 or window > len(s):
        return np.zeros(len(s))
    return s.rolling(int(window)).mean().fillna(0.0).to_numpy()


def compute_ema(prices, window: int) -> np.ndarray:
    """
    Exponential moving average seeded with the first price.

    multiplier = 2 / (window + 1); out[0] = prices[0];
    out[i] = prices[i] * multiplier + out[i - 1] * (1 - multiplier)
    """
    if window < 1:
        raise ValueError(f"EMA window must be >= 1, got {window}")
    s = _as_series(prices)
    if s.empty:
        return np.zeros(0)
    return s.ewm(span=int(window), adjust=False).mean().to_numpy()


# --------- volatility / ranks ---------
def rolling_volatility(prices, period: int) -> np.ndarray:
    """Annualized population std of daily returns over a trailing `period`-price window."""
    s = _as_series(prices)
    if period < 2 or period > len(s):
        return np.zeros(len(s))
    vol = s.pct_change().rolling(period - 1).std(ddof=0) * np.sqrt(TRADING_DAYS)
    return vol.fillna(0.0).to_numpy()


def rolling_percentile(value: float, values, index: int, window: int = 520) -> float:
    arr = np.asarray(values, dtype=float)[max(0, index - window): index + 1]
    arr = arr[np.isfinite(arr)]
    if len(arr) < 10: return 50.0
    return float((arr <= value).sum()) / len(arr) * 100.0
