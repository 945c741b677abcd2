import logging
import random
import time
from datetime import date, timedelta
from typing import Optional

import pandas as pd
import yfinance as yf

from risk_errors import PriceFeedError

logger = logging.getLogger(__name__)

CRYPTO_SYMBOLS = {"BTC", "ETH", "DOGE", "ADA", "SOL"}
HISTORY_START = date(1999, 1, 1)


def provider_symbol(symbol: str) -> str:
    """Yahoo quotes crypto against USD (BTC -> BTC-USD)."""
    sym = symbol.strip().upper()
    return f"{sym}-USD" if sym in CRYPTO_SYMBOLS else sym


def _history_with_retry(ticker: yf.Ticker, retries: int = 2, **kwargs) -> pd.DataFrame:
    last_exc: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            return ticker.history(**kwargs)
        except Exception as exc:
            last_exc = exc
            logger.warning("history() failed for %s (attempt %d/%d): %s",
                           ticker.ticker, attempt + 1, retries + 1, exc)
            if attempt < retries:
                time.sleep(0.4 * (2 ** attempt) + random.random() * 0.2)
    raise PriceFeedError(f"{ticker.ticker}: price history unavailable") from last_exc


def _to_points(hist: pd.DataFrame) -> pd.DataFrame:
    if hist is None or hist.empty or "Close" not in hist:
        return pd.DataFrame(columns=["timestamp", "price"])
    closes = hist["Close"].dropna()
    idx = pd.DatetimeIndex(closes.index)
    if idx.tz is None:
        idx = idx.tz_localize("UTC")
    stamps = (idx.tz_convert("UTC").tz_localize(None) - pd.Timestamp("1970-01-01")) // pd.Timedelta(milliseconds=1)
    return pd.DataFrame({"timestamp": stamps.to_numpy(dtype="int64"), "price": closes.to_numpy(dtype=float)})


def fetch_prices(symbol: str, start=None, end=None, retries: int = 2) -> pd.DataFrame:
    """
    Daily closes for `symbol` between `start` and `end` (inclusive).

    Returns:
        DataFrame with `timestamp` (epoch ms) and `price`, oldest first.
    """
    start = start or HISTORY_START
    end = end or date.today()
    yf_symbol = provider_symbol(symbol)
    logger.info("Fetching %s (%s) from %s to %s", symbol, yf_symbol, start, end)

    hist = _history_with_retry(
        yf.Ticker(yf_symbol),
        retries=retries,
        start=pd.Timestamp(start).strftime("%Y-%m-%d"),
        end=(pd.Timestamp(end) + timedelta(days=1)).strftime("%Y-%m-%d"),
        interval="1d",
        auto_adjust=False,
    )
    points = _to_points(hist)
    if points.empty:
        raise PriceFeedError(f"No data found for {symbol}")

    logger.info("Fetched %d data points for %s", len(points), symbol)
    return points.sort_values("timestamp").reset_index(drop=True)


def fetch_latest_price(symbol: str) -> dict:
    """Last close with its change against the previous close."""
    end = date.today()
    points = fetch_prices(symbol, start=end - timedelta(days=7), end=end)
    if len(points) < 2:
        raise PriceFeedError(f"Insufficient data for {symbol}")

    latest, previous = points.iloc[-1], points.iloc[-2]
    change = latest["price"] - previous["price"]
    return {
        "price": float(latest["price"]),
        "date": pd.to_datetime(int(latest["timestamp"]), unit="ms", utc=True).date(),
        "change": float(change),
        "change_pct": float(change / previous["price"] * 100),
    }
