import pandas as pd

# --------- risk distribution ---------
BUCKETS = [
    ("risk_1_to_3", 1.0, 3.0, True),    # closed on both ends
    ("risk_4_to_6", 3.0, 6.0, False),
    ("risk_7_to_8", 6.0, 8.0, False),
    ("risk_9_to_10", 8.0, 10.0, False),
]


def risk_stats(df: pd.DataFrame) -> dict:
    risks = df["risk"].dropna() if "risk" in df.columns else pd.Series(dtype=float)
    dist = {}
    for name, lo, hi, closed_lo in BUCKETS:
        above = risks >= lo if closed_lo else risks > lo
        dist[name] = int((above & (risks <= hi)).sum())
    if risks.empty:
        return {"min": None, "max": None, "avg": None, "distribution": dist}
    return {
        "min": float(risks.min()),
        "max": float(risks.max()),
        "avg": float(risks.mean()),
        "distribution": dist,
    }


# --------- latest point ---------
def day_change(closes: pd.Series):
    if len(closes) < 2: return None, None
    a, b = closes.iloc[-2], closes.iloc[-1]
    if pd.isna(a) or pd.isna(b) or a == 0: return None, None
    return b - a, (b / a - 1) * 100


def latest_summary(df: pd.DataFrame) -> dict:
    if df.empty:
        return {"price": None, "risk": None, "date": None, "change": None, "change_pct": None}
    d = df.sort_values("timestamp")
    last = d.iloc[-1]
    change, change_pct = day_change(d["price"])
    return {
        "price": float(last["price"]),
        "risk": float(last["risk"]) if "risk" in d.columns else None,
        "date": pd.to_datetime(int(last["timestamp"]), unit="ms", utc=True).date(),
        "change": None if change is None else float(change),
        "change_pct": None if change_pct is None else float(change_pct),
    }
