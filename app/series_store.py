import logging
from pathlib import Path

import numpy as np
import pandas as pd

from risk_errors import MalformedInputError
from series import SERIES_COLUMNS

logger = logging.getLogger(__name__)

FLOAT_COLUMNS = ["price", "ema_short", "ema_long", "sma_short", "sma_mid", "sma_long", "sma_extra_long", "risk"]

# header written by the first generation of series files
LEGACY_COLUMNS = {
    "ema8": "ema_short",
    "ema21": "ema_long",
    "sma50": "sma_short",
    "sma100": "sma_mid",
    "sma200": "sma_long",
    "sma400": "sma_extra_long",
}


def series_path(data_dir, symbol: str) -> Path:
    return Path(data_dir) / f"{symbol.strip().upper()}.csv"


def write_series(df: pd.DataFrame, path) -> Path:
    """Write a scored series: ISO dates, epoch-ms timestamps, floats to 2 decimals."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    out = df.sort_values("timestamp", kind="mergesort")[SERIES_COLUMNS].copy()
    out["date"] = pd.to_datetime(out["timestamp"], unit="ms", utc=True).dt.strftime("%Y-%m-%d")
    out["timestamp"] = out["timestamp"].astype("int64")
    # the target is only replaced once the whole file is on disk
    tmp = p.with_name(p.name + ".tmp")
    out.to_csv(tmp, index=False, float_format="%.2f")
    tmp.replace(p)

    logger.info("Wrote %d rows to %s (%.2f KB)", len(out), p, p.stat().st_size / 1024)
    return p


def read_series(path) -> pd.DataFrame:
    """
    Load a stored series, oldest first.

    Lines starting with '#' are ignored. Older files with the ema8/ema21/
    sma50/... header are accepted and renamed.
    """
    try:
        df = pd.read_csv(Path(path), comment="#", skip_blank_lines=True)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise MalformedInputError(f"{path}: unreadable series file: {e}") from e
    df.columns = [c.strip() for c in df.columns]
    df = df.rename(columns=LEGACY_COLUMNS)

    missing = [c for c in SERIES_COLUMNS if c not in df.columns]
    if missing:
        raise MalformedInputError(f"{path}: missing columns {missing}")

    for c in FLOAT_COLUMNS:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    bad = df["price"].isna() | ~np.isfinite(df["price"]) | (df["price"] <= 0)
    if bad.any():
        raise MalformedInputError(f"{path}: {int(bad.sum())} rows with a missing or non-positive price")
    ts = pd.to_numeric(df["timestamp"], errors="coerce")
    if ts.isna().any():
        raise MalformedInputError(f"{path}: {int(ts.isna().sum())} rows without a timestamp")

    df["timestamp"] = ts.astype("int64")
    df[FLOAT_COLUMNS[1:-1]] = df[FLOAT_COLUMNS[1:-1]].fillna(0.0)
    df["risk"] = df["risk"].fillna(5.0)
    df["date"] = pd.to_datetime(df["date"])
    df = df.sort_values("timestamp", kind="mergesort").reset_index(drop=True)
    return df[SERIES_COLUMNS]
