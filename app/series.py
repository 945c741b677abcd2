import logging

import numpy as np
import pandas as pd

from instruments import InstrumentConfig
from moving_averages import compute_ema, compute_sma
from risk_errors import InsufficientHistoryError, MalformedInputError
from risk_scoring import score_series

logger = logging.getLogger(__name__)

SERIES_COLUMNS = [
    "date", "price", "timestamp",
    "ema_short", "ema_long", "sma_short", "sma_mid", "sma_long", "sma_extra_long",
    "risk",
]

# an intraday quote that moves less than this is not a revision
REVISION_TOLERANCE = 0.01


def _dates(timestamps: pd.Series) -> pd.Series:
    return pd.to_datetime(timestamps, unit="ms", utc=True).dt.tz_localize(None).dt.normalize()


def prepare_prices(prices) -> pd.DataFrame:
    """
    Validate and order raw price points.

    Accepts a DataFrame (or anything pandas can build one from) with
    `timestamp` (epoch ms) and `price` columns. Sorting is stable, so points
    sharing a timestamp stay in input order; of those only the last is kept.
    """
    df = pd.DataFrame(prices).copy()
    if len(df) == 0:
        return pd.DataFrame({"date": pd.Series(dtype="datetime64[ns]"),
                             "timestamp": pd.Series(dtype="int64"),
                             "price": pd.Series(dtype=float)})
    missing = [c for c in ("timestamp", "price") if c not in df.columns]
    if missing:
        raise MalformedInputError(f"price points are missing columns: {missing}")
    df = df[["timestamp", "price"]]

    ts = pd.to_numeric(df["timestamp"], errors="coerce")
    if ts.isna().any():
        raise MalformedInputError(f"{int(ts.isna().sum())} price points have no usable timestamp")
    px = pd.to_numeric(df["price"], errors="coerce")
    bad = px.isna() | ~np.isfinite(px) | (px <= 0)
    if bad.any():
        first = df.index[bad.to_numpy()][0]
        raise MalformedInputError(
            f"{int(bad.sum())} price points are NaN or non-positive (first at row {first}: {df['price'].loc[first]!r})"
        )

    out = pd.DataFrame({"timestamp": ts.astype("int64"), "price": px.astype(float)})
    out = out.sort_values("timestamp", kind="mergesort")
    dupes = out["timestamp"].duplicated(keep="last")
    if dupes.any():
        logger.warning("Dropping %d price points with duplicate timestamps (last one wins)", int(dupes.sum()))
        out = out[~dupes]
    out = out.reset_index(drop=True)
    out.insert(0, "date", _dates(out["timestamp"]))
    return out


def compute_indicators(prices: pd.DataFrame, config: InstrumentConfig) -> pd.DataFrame:
    df = prices.copy()
    closes = df["price"].to_numpy(dtype=float)
    df["ema_short"] = compute_ema(closes, config.ema_windows.short)
    df["ema_long"] = compute_ema(closes, config.ema_windows.long)
    df["sma_short"] = compute_sma(closes, config.sma_windows.short)
    df["sma_mid"] = compute_sma(closes, config.sma_windows.mid)
    df["sma_long"] = compute_sma(closes, config.sma_windows.long)
    df["sma_extra_long"] = compute_sma(closes, config.sma_windows.extra_long)
    return df


def assemble_series(prices, config: InstrumentConfig, as_of=None) -> pd.DataFrame:
    """Raw price points -> moving averages -> risk, as one frame in SERIES_COLUMNS order."""
    prepared = prepare_prices(prices)
    if prepared.empty:
        raise InsufficientHistoryError(f"{config.symbol}: no price points to score")
    scored = score_series(compute_indicators(prepared, config), config, as_of)
    logger.debug("%s: scored %d points with %s", config.symbol, len(scored), config.algorithm)
    return scored[SERIES_COLUMNS]


# --------- incremental updates ---------
def _merge_plan(existing: pd.DataFrame, new_prices):
    """
    Work out how `new_prices` changes an existing series.

    Returns (merged price frame, index of the first changed row or None,
    number of appended points, whether the last stored point was revised).
    Only points after the stored history are appended; a point on the same
    UTC date as the last stored point revises that point's price.
    """
    base = prepare_prices(existing[["timestamp", "price"]])
    incoming = prepare_prices(new_prices)
    if base.empty:
        return incoming, (0 if len(incoming) else None), len(incoming), False

    last_idx = len(base) - 1
    last_ts = int(base["timestamp"].iloc[-1])
    last_date = base["date"].iloc[-1]

    revised = False
    appended = []
    for row in incoming.itertuples(index=False):
        if row.date == last_date:
            if abs(base.at[last_idx, "price"] - row.price) > REVISION_TOLERANCE:
                base.at[last_idx, "price"] = row.price
                revised = True
        elif row.timestamp > last_ts:
            appended.append({"timestamp": row.timestamp, "price": row.price})

    if not revised and not appended:
        return base, None, 0, False

    merged = base[["timestamp", "price"]]
    if appended:
        merged = pd.concat([merged, pd.DataFrame(appended)], ignore_index=True)
    first_changed = last_idx if revised else len(base)
    return prepare_prices(merged), first_changed, len(appended), revised


def needs_update(existing: pd.DataFrame, new_prices) -> bool:
    _, first_changed, _, _ = _merge_plan(existing, new_prices)
    return first_changed is not None


def extend_series(existing: pd.DataFrame, new_prices, config: InstrumentConfig,
                  as_of=None, preserve_finalized: bool = True) -> pd.DataFrame:
    """
    Append new points to (or revise the last point of) a scored series.

    Moving averages are always recomputed from the first point since every
    EMA value depends on the whole prefix. With `preserve_finalized`, risk of
    rows before the first change is kept, except the old last row, which was
    exempt from smoothing and is scored again now that it has a successor.
    """
    if existing is None or existing.empty:
        return assemble_series(new_prices, config, as_of)

    merged, first_changed, n_appended, revised = _merge_plan(existing, new_prices)
    if first_changed is None:
        logger.info("%s: no new or revised points", config.symbol)
        return existing[SERIES_COLUMNS].copy()

    finalized = None
    if preserve_finalized and "risk" in existing.columns:
        keep = min(first_changed, len(existing) - 1)
        finalized = existing["risk"].to_numpy(dtype=float)[:keep]

    scored = score_series(compute_indicators(merged, config), config, as_of, finalized=finalized)
    logger.info("%s: appended %d points%s", config.symbol, n_appended,
                ", revised last price" if revised else "")
    return scored[SERIES_COLUMNS]
