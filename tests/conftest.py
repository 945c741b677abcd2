"""Shared test fixtures."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from instruments import build_config

DAY_MS = 24 * 60 * 60 * 1000
START_MS = int(pd.Timestamp("2024-01-02", tz="UTC").value // 1_000_000)


def make_prices(closes, start_ms: int = START_MS) -> pd.DataFrame:
    closes = np.asarray(closes, dtype=float)
    return pd.DataFrame({
        "timestamp": start_ms + np.arange(len(closes), dtype="int64") * DAY_MS,
        "price": closes,
    })


@pytest.fixture
def small_config():
    """Short windows so a few hundred points cover every moving average."""
    return build_config("TEST", {
        "name": "Test instrument",
        "ema_windows": {"short": 7, "long": 15},
        "sma_windows": {"short": 20, "mid": 50, "long": 100, "extra_long": 200},
        "thresholds": {"elevated": 0.15, "moderate": 0.08, "near_base": -0.05},
    })


@pytest.fixture
def random_walk() -> pd.DataFrame:
    """400 days of a positive random walk."""
    np.random.seed(42)
    closes = 100 * np.exp(np.cumsum(np.random.randn(400) * 0.02))
    return make_prices(closes)


@pytest.fixture
def constant_prices() -> pd.DataFrame:
    return make_prices(np.full(300, 100.0))


@pytest.fixture
def rally_prices() -> pd.DataFrame:
    """Flat for 250 days, then 50 days compounding at 7% a day."""
    closes = np.concatenate([np.full(250, 100.0), 100.0 * 1.07 ** np.arange(1, 51)])
    return make_prices(closes)
