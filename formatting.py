"""Pure helpers turning backend payloads into display values."""

from __future__ import annotations

import math
from typing import Any, List, Optional, Sequence

import pandas as pd
import plotly.graph_objects as go

PLACEHOLDER = "-"
LAST_TRADES = 5


def format_number(value: Any) -> str:
    """Thousands-grouped number with at most two fractional digits."""
    if value is None:
        return PLACEHOLDER
    try:
        number = float(value)
    except (TypeError, ValueError):
        return PLACEHOLDER
    if not math.isfinite(number):
        return PLACEHOLDER
    text = f"{number:,.2f}".rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text


def format_price(value: Any) -> str:
    return f"${format_number(value)}"


def format_timestamp(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            ts = pd.to_datetime(value, unit="ms", utc=True)
        else:
            # strings without an offset are local wall-clock time
            ts = pd.to_datetime(value)
    except (ValueError, TypeError, OverflowError):
        return str(value)
    if pd.isna(ts):
        return str(value)
    return ts.to_pydatetime().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def side_label(action: Optional[str]) -> str:
    return "Buy" if action == "buy" else "Sell"


def side_color(action: Optional[str]) -> str:
    return "green" if action == "buy" else "red"


def badge(action: Optional[str]) -> str:
    """Streamlit colored-markdown badge for a buy/sell side."""
    return f":{side_color(action)}[**{side_label(action)}**]"


def pnl_color(pnl: Optional[float]) -> str:
    return "green" if pnl is not None and pnl >= 0 else "red"


def recent_signals(signals: Optional[Sequence[Any]]) -> List[Any]:
    return list(reversed(signals or []))


def last_trades(trades: Optional[Sequence[Any]], limit: int = LAST_TRADES) -> List[Any]:
    if not trades or limit <= 0:
        return []
    return list(reversed(list(trades)[-limit:]))


def signals_frame(signals: Optional[Sequence[Any]]) -> pd.DataFrame:
    rows = [
        {
            "time": format_timestamp(s.t),
            "action": side_label(s.action),
            "price": s.price,
        }
        for s in recent_signals(signals)
    ]
    return pd.DataFrame(rows, columns=["time", "action", "price"])


def trades_frame(trades: Optional[Sequence[Any]], limit: int = LAST_TRADES) -> pd.DataFrame:
    rows = [
        {
            "entry_time": format_timestamp(t.entry_time),
            "side": side_label(t.side),
            "pnl": t.pnl,
        }
        for t in last_trades(trades, limit)
    ]
    return pd.DataFrame(rows, columns=["entry_time", "side", "pnl"])


def signals_chart(signals: Optional[Sequence[Any]], title: str = "Signals") -> go.Figure:
    fig = go.Figure()
    for action, color in (("buy", "green"), ("sell", "red")):
        points = [s for s in signals or [] if (s.action == "buy") == (action == "buy")]
        if not points:
            continue
        fig.add_trace(go.Scatter(
            x=[format_timestamp(s.t) for s in points],
            y=[s.price for s in points],
            mode="markers",
            name=side_label(action),
            marker=dict(color=color, size=10, symbol="triangle-up" if action == "buy" else "triangle-down"),
        ))
    fig.update_layout(title=title, template="plotly_dark", height=320)
    return fig
