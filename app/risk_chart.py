import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from risk_colors import color_of, risk_color

MA_TRACES = [
    ("ema_short", "EMA short"),
    ("ema_long", "EMA long"),
    ("sma_short", "SMA short"),
    ("sma_long", "SMA long"),
]

RISK_LOW_LINE, RISK_HIGH_LINE = 3, 7


def build_risk_figure(df: pd.DataFrame, title: str = None, show_mas: bool = True) -> go.Figure:
    """
    Price colored by risk on top, the risk score itself underneath.

    Moving averages still at their zero sentinel are left out of the overlay.
    """
    d = df.sort_values("timestamp")
    x = d["date"] if "date" in d.columns else pd.to_datetime(d["timestamp"], unit="ms")

    fig = make_subplots(
        rows=2, cols=1, shared_xaxes=True,
        row_heights=[0.7, 0.3], vertical_spacing=0.05,
        subplot_titles=("Price (colored by risk)", "Risk"),
    )

    fig.add_trace(
        go.Scatter(x=x, y=d["price"], name="Price", mode="lines",
                   line=dict(color=color_of("Price"), width=1)),
        row=1, col=1,
    )
    fig.add_trace(
        go.Scatter(
            x=x, y=d["price"], name="Risk-colored price", mode="markers",
            marker=dict(color=[risk_color(r) for r in d["risk"]], size=4),
            customdata=d["risk"],
            hovertemplate="%{x|%Y-%m-%d}<br>Price %{y:.2f}<br>Risk %{customdata:.2f}<extra></extra>",
        ),
        row=1, col=1,
    )

    if show_mas:
        for col, name in MA_TRACES:
            if col not in d.columns:
                continue
            series = d[col].where(d[col] > 0)
            if series.isna().all():
                continue
            fig.add_trace(
                go.Scatter(x=x, y=series, name=name, mode="lines",
                           line=dict(color=color_of(name), width=1, dash="dot")),
                row=1, col=1,
            )

    fig.add_trace(
        go.Scatter(x=x, y=d["risk"], name="Risk", mode="lines",
                   line=dict(color=color_of("Risk"))),
        row=2, col=1,
    )
    fig.add_hline(y=RISK_LOW_LINE, line_dash="dash", line_color=color_of("Risk low", group="hline"), row=2, col=1)
    fig.add_hline(y=RISK_HIGH_LINE, line_dash="dash", line_color=color_of("Risk high", group="hline"), row=2, col=1)
    fig.update_yaxes(range=[1, 10], row=2, col=1)

    fig.update_layout(height=700, margin=dict(l=20, r=20, t=60, b=20), title=title)
    return fig
