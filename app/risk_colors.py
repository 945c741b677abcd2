import math
from functools import lru_cache
from pathlib import Path

import yaml

CFG_PATH_DEFAULT = str(Path(__file__).resolve().parent.parent / "config" / "colors.yaml")

RISK_PALETTE_FALLBACK = [
    "#440154", "#5E278B", "#7B68EE", "#9384D1", "#21918C",
    "#5EC962", "#84CC16", "#FFC107", "#FFEB3B", "#FFFF00",
]

RISK_BANDS = [
    (2.0, "Very Low Risk", "Extreme undervaluation - historically rare buying opportunity"),
    (3.0, "Low Risk", "Below key support levels - good value territory"),
    (4.0, "Low-Moderate Risk", "Below historical average - reasonable entry point"),
    (6.0, "Moderate Risk", "Fair value range - consider market conditions"),
    (7.0, "Moderate-High Risk", "Above historical average - elevated valuation"),
    (8.5, "High Risk", "Top 25% of historical valuations - proceed with caution"),
    (9.0, "Very High Risk", "Top 10% of historical valuations - high risk territory"),
]
EXTREME_BAND = ("Extreme Risk", "Top 5% of historical deviations - extreme overextension")


@lru_cache(maxsize=1)
def _cfg(path: str = CFG_PATH_DEFAULT):
    p = Path(path)
    if not p.exists():
        return {}
    with p.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def color_of(name: str, group: str = "traces", path: str = CFG_PATH_DEFAULT) -> str:
    cfg = _cfg(path)
    bucket = (cfg.get(group) or {})
    if name in bucket:
        return bucket[name]
    low = {k.lower(): v for k, v in bucket.items()}
    if name.lower() in low:
        return low[name.lower()]
    d = cfg.get("defaults", {}) or {}
    if group == "hline":
        return d.get("hline", "#A0A0A0")
    return d.get("line", "#808080")


def _hex_to_rgb(h: str):
    h = h.lstrip("#")
    return tuple(int(h[i:i + 2], 16) for i in (0, 2, 4))


def risk_palette(path: str = CFG_PATH_DEFAULT) -> list:
    cfg = _cfg(path)
    palette = (cfg.get("palettes", {}) or {}).get("risk") or RISK_PALETTE_FALLBACK
    return [_hex_to_rgb(c) for c in palette]


def risk_color(risk: float, path: str = CFG_PATH_DEFAULT) -> str:
    """Piecewise-linear blend across the palette, risk 1 -> first stop, 10 -> last."""
    stops = risk_palette(path)
    normalized = max(0.0, min(1.0, (risk - 1) / 9))
    segments = len(stops) - 1
    size = 1 / segments
    seg = int(normalized // size)
    local = (normalized - seg * size) / size
    if seg >= segments:
        seg, local = segments - 1, 1.0
    a, b = stops[seg], stops[seg + 1]
    r, g, bl = (math.floor(a[k] + (b[k] - a[k]) * local + 0.5) for k in range(3))
    return f"rgb({r}, {g}, {bl})"


def risk_description(risk: float, path: str = CFG_PATH_DEFAULT) -> dict:
    for upper, level, description in RISK_BANDS:
        if risk <= upper:
            return {"level": level, "description": description, "color": risk_color(risk, path)}
    level, description = EXTREME_BAND
    return {"level": level, "description": description, "color": risk_color(risk, path)}
