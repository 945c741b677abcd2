from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
import math

import yaml

from risk_errors import ConfigInvariantError

CFG_PATH_DEFAULT = str(Path(__file__).resolve().parent.parent / "config" / "instruments.yaml")

ALGORITHMS = ("ema-focused", "enhanced", "simple")


@dataclass(frozen=True)
class EmaWindows:
    short: int = 40
    long: int = 105


@dataclass(frozen=True)
class SmaWindows:
    short: int = 250
    mid: int = 500
    long: int = 1000
    extra_long: int = 2000


@dataclass(frozen=True)
class RiskThresholds:
    """Fractional deviations of price from the short EMA (0.15 = 15% above)."""
    elevated: float = 0.15
    moderate: float = 0.08
    near_base: float = -0.05


@dataclass(frozen=True)
class InstrumentConfig:
    symbol: str
    name: str
    algorithm: str = "ema-focused"
    ema_windows: EmaWindows = field(default_factory=EmaWindows)
    sma_windows: SmaWindows = field(default_factory=SmaWindows)
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)

    def __post_init__(self):
        validate_config(self)


def validate_config(cfg: InstrumentConfig) -> None:
    if cfg.algorithm not in ALGORITHMS:
        raise ConfigInvariantError(f"{cfg.symbol}: unknown algorithm {cfg.algorithm!r}")

    t = cfg.thresholds
    values = (t.elevated, t.moderate, t.near_base)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
        raise ConfigInvariantError(f"{cfg.symbol}: thresholds must be finite numbers, got {values}")
    if not t.elevated > t.moderate > t.near_base:
        raise ConfigInvariantError(
            f"{cfg.symbol}: thresholds must satisfy elevated > moderate > near_base, "
            f"got {t.elevated} / {t.moderate} / {t.near_base}"
        )

    ema = (cfg.ema_windows.short, cfg.ema_windows.long)
    sma = (cfg.sma_windows.short, cfg.sma_windows.mid, cfg.sma_windows.long, cfg.sma_windows.extra_long)
    for w in ema + sma:
        if not isinstance(w, int) or isinstance(w, bool) or w < 1:
            raise ConfigInvariantError(f"{cfg.symbol}: windows must be positive integers, got {w!r}")
    if ema[0] > ema[1]:
        raise ConfigInvariantError(f"{cfg.symbol}: short EMA window longer than long EMA window")
    if list(sma) != sorted(sma):
        raise ConfigInvariantError(f"{cfg.symbol}: SMA windows must be non-decreasing, got {sma}")


# --------- loading ---------
@lru_cache(maxsize=4)
def _cfg(path: str = CFG_PATH_DEFAULT) -> dict:
    p = Path(path)
    if not p.exists():
        return {}
    with p.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _merged(base: dict, override: dict) -> dict:
    out = dict(base or {})
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = {**out[k], **v}
        else:
            out[k] = v
    return out


def build_config(symbol: str, raw: dict = None, defaults: dict = None) -> InstrumentConfig:
    """Merge an instrument entry over the defaults block once, then freeze it."""
    d = _merged(defaults or {}, raw or {})
    try:
        return InstrumentConfig(
            symbol=symbol.upper(),
            name=str(d.get("name") or symbol.upper()),
            algorithm=d.get("algorithm", "ema-focused"),
            ema_windows=EmaWindows(**(d.get("ema_windows") or {})),
            sma_windows=SmaWindows(**(d.get("sma_windows") or {})),
            thresholds=RiskThresholds(**(d.get("thresholds") or {})),
        )
    except TypeError as e:
        raise ConfigInvariantError(f"{symbol}: invalid config entry: {e}") from e


def load_instruments(path: str = CFG_PATH_DEFAULT) -> dict:
    cfg = _cfg(path)
    defaults = cfg.get("defaults", {}) or {}
    entries = cfg.get("instruments", {}) or {}
    return {sym.upper(): build_config(sym, entry, defaults) for sym, entry in entries.items()}


def navigation_symbols(path: str = CFG_PATH_DEFAULT) -> list:
    cfg = _cfg(path)
    nav = cfg.get("navigation") or list((cfg.get("instruments") or {}).keys())
    return [s.upper() for s in nav]


def resolve_config(symbol: str, path: str = CFG_PATH_DEFAULT) -> InstrumentConfig:
    """Config for `symbol`, or the defaults block under the symbol's own name."""
    sym = symbol.strip().upper()
    known = load_instruments(path)
    if sym in known:
        return known[sym]
    return build_config(sym, {}, _cfg(path).get("defaults", {}) or {})
