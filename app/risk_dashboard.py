import streamlit as st
import pandas as pd

from instruments import navigation_symbols, resolve_config
from log_config import setup_logging
from price_feed import fetch_latest_price, fetch_prices
from risk_chart import build_risk_figure
from risk_colors import risk_description
from risk_errors import RiskSeriesError
from risk_stats import latest_summary, risk_stats
from series import assemble_series, extend_series
from series_store import read_series, series_path
from settings import load_settings

st.set_page_config(page_title="Risk dashboard",
                   page_icon=":chart_with_upwards_trend:",
                   layout="wide")

"""
# Price Risk Dashboard
Where the current price sits against its moving averages, scored 1 (deep value) to 10 (overextended)
"""

SETTINGS = load_settings()
setup_logging(SETTINGS["log_level"])


@st.cache_data(ttl=3600)  # Cache for 1 hour
def load_scored_series(symbol: str, history_start: str):
    """
    Stored series extended with the latest quotes, or a full fetch when none is stored.

    Returns:
        tuple: (scored DataFrame, source label)
    """
    config = resolve_config(symbol)
    path = series_path(SETTINGS["data_dir"], config.symbol)
    if path.exists():
        stored = read_series(path)
        start = pd.Timestamp.today().normalize() - pd.Timedelta(days=SETTINGS["update_lookback_days"])
        try:
            recent = fetch_prices(config.symbol, start=start)
        except RiskSeriesError:
            return stored, "Stored series"
        return extend_series(stored, recent, config), "Stored series + latest quotes"

    prices = fetch_prices(config.symbol, start=history_start)
    return assemble_series(prices, config), "Yahoo Finance"


@st.cache_data(ttl=300)
def load_quote(symbol: str):
    """Latest close and day change, or None when the feed has nothing."""
    try:
        return fetch_latest_price(symbol)
    except RiskSeriesError:
        return None


# ---------- Sidebar Controls ----------
st.sidebar.title("Controls")

symbol = st.sidebar.selectbox(
    "Instrument",
    navigation_symbols(),
    index=0,
    placeholder="Select an instrument or type a new one",
    accept_new_options=True,
)
symbol = (symbol or "").upper()
config = resolve_config(symbol)
history_start = st.sidebar.text_input("History start", SETTINGS["history_start"])
show_mas = st.sidebar.checkbox("Show moving averages", value=True)

with st.spinner(f"Loading {symbol}..."):
    try:
        df, source = load_scored_series(symbol, history_start)
    except RiskSeriesError as e:
        st.error(f"Could not load data for {symbol}: {e}")
        st.stop()

date_min, date_max = df["date"].min(), df["date"].max()
date_range = st.sidebar.date_input("Date range", (date_min, date_max), min_value=date_min, max_value=date_max)
if len(date_range) == 2:
    start, end = pd.to_datetime(date_range[0]), pd.to_datetime(date_range[1])
    f = df[df["date"].between(start, end)]
else:
    f = df

col1, col2 = st.columns([0.7, 0.3])

# ---------- 1) Chart ----------
with col1:
    st.subheader(f"{config.name} ({config.symbol})")
    st.plotly_chart(build_risk_figure(f, show_mas=show_mas), use_container_width=True)
    st.caption(f"Source: {source} | algorithm: {config.algorithm}")

# ---------- 2) Metrics ----------
with col2:
    summary_tab, guide_tab = st.tabs(["Summary", "How to read"])

    with summary_tab:
        def fmt_pct(x): return "NA" if x is None or pd.isna(x) else f"{x:.2f}%"
        def fmt_price(x): return "NA" if x is None or pd.isna(x) else f"{x:,.2f}"

        latest = latest_summary(df)
        quote = load_quote(config.symbol)
        if quote is not None and quote["date"] >= latest["date"]:
            latest.update(price=quote["price"], change=quote["change"],
                          change_pct=quote["change_pct"], date=quote["date"])
        band = risk_description(latest["risk"])

        st.subheader("Current")
        c1, c2 = st.columns(2)
        c1.metric("Price", fmt_price(latest["price"]),
                  delta=fmt_pct(latest["change_pct"]) if latest["change_pct"] is not None else None)
        c2.metric("Risk", f"{latest['risk']:.2f}")
        st.markdown(
            f"<span style='color:{band['color']}'>&#9679;</span> **{band['level']}**: {band['description']}",
            unsafe_allow_html=True,
        )
        st.caption(f"As of {latest['date']}")

        st.subheader("Risk distribution")
        stats = risk_stats(f)
        s1, s2, s3 = st.columns(3)
        s1.metric("Min", "NA" if stats["min"] is None else f"{stats['min']:.2f}")
        s2.metric("Avg", "NA" if stats["avg"] is None else f"{stats['avg']:.2f}")
        s3.metric("Max", "NA" if stats["max"] is None else f"{stats['max']:.2f}")
        st.bar_chart(pd.Series(stats["distribution"], name="points"))

    with guide_tab:
        st.markdown(
            """
### How to read the risk score
- **1-3**: price well below its long moving averages, historically good value.
- **4-6**: fair value range around the short and long EMAs.
- **7-8**: extended above the short EMA.
- **9-10**: far above the short EMA, rare overextension.

Early history without enough data for the moving averages is shown as a neutral **5**.
Recent points get slightly stronger buy/sell nudges than points older than a few years.
            """
        )
