import asyncio

import streamlit as st

import config
from client import BackendClient
from formatting import (
    PLACEHOLDER,
    badge,
    format_number,
    format_price,
    format_timestamp,
    last_trades,
    pnl_color,
    recent_signals,
    signals_chart,
    signals_frame,
    trades_frame,
)
from health import SystemCheck
from logger import setup_logger
from models import StrategyParameters
from session import DashboardSession


@st.cache_resource
def init_logging():
    return setup_logger()


def get_session() -> DashboardSession:
    if "dashboard" not in st.session_state:
        settings = config.load_settings()
        client = BackendClient(base_url=settings.backend_url, timeout=settings.timeout)
        session = DashboardSession(client, settings.identifiers)
        st.session_state["dashboard"] = session
        # initial load: signals and backtest side by side
        asyncio.run(session.refresh_all())
    return st.session_state["dashboard"]


def run(coro_fn, *args):
    asyncio.run(coro_fn(*args))


def place_order(session: DashboardSession):
    side = st.session_state.get("side", "Buy").lower()
    qty = st.session_state.get("qty", 1.0)
    run(session.place_order, side, qty, session.last_price)
    if session.order.outcome == "ok":
        # shown once on the next render
        st.session_state["order_placed"] = True


PARAM_INPUTS = [
    ("fast", "Fast MA", 1),
    ("slow", "Slow MA", 1),
    ("rsi_len", "RSI length", 1),
    ("rsi_buy", "RSI buy", 1),
    ("rsi_sell", "RSI sell", 1),
    ("tp_rr", "Take profit R:R", 0.1),
    ("sl_pct", "Stop loss %", 0.005),
]


def reset_params(session: DashboardSession):
    session.params = StrategyParameters()
    for name, _, _ in PARAM_INPUTS:
        st.session_state[f"param_{name}"] = getattr(session.params, name)


st.set_page_config(page_title="Paper Trading | MA + RSI Signals", layout="wide")
init_logging()
session = get_session()

menu = st.sidebar.radio("Menu", ["Dashboard", "System Check"])

st.sidebar.markdown("### Strategy")
edits = {}
for name, label, step in PARAM_INPUTS:
    key = f"param_{name}"
    if key not in st.session_state:
        st.session_state[key] = getattr(session.params, name)
    edits[name] = st.sidebar.number_input(label, step=step, key=key, format="%.3f" if name == "sl_pct" else None)
session.update_params(**edits)
st.sidebar.button("Reset to defaults", on_click=reset_params, args=(session,))
st.sidebar.caption("Changes apply on the next Refresh / Run.")

asset_label = f"{session.identifiers['asset']} / {session.identifiers['timeframe']}"

if menu == "Dashboard":
    st.caption("Paper Trading")
    st.title("MA + RSI Signals")

    signals = session.signals.data
    bt = session.backtest.data

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Asset", asset_label)
    with col2:
        st.metric("Last Price", format_price(session.last_price))
    with col3:
        st.metric("Suggestion", (signals.suggestion if signals else "") or "Waiting for signals")
    with col4:
        st.metric("Trades", bt.stats.trades if bt else 0)

    left, right = st.columns([2, 1])

    with left:
        head, action = st.columns([4, 1])
        head.subheader("Recent Signals")
        if action.button("Refresh", key="refresh_signals", use_container_width=True):
            # the spinner stands in for the signal list while the request is out
            with st.spinner("Loading..."):
                run(session.fetch_signals)
            st.rerun()

        if session.signals.failed:
            st.error(f"Could not load signals: {session.signals.error}")
        if signals:
            for s in recent_signals(signals.signals):
                c1, c2, c3 = st.columns([1, 3, 2])
                c1.markdown(badge(s.action))
                c2.write(format_timestamp(s.t))
                c3.write(format_price(s.price))
            if signals.signals:
                st.plotly_chart(signals_chart(signals.signals, title=f"{asset_label} signals"), use_container_width=True)
                with st.expander("Signal history"):
                    st.dataframe(signals_frame(signals.signals), use_container_width=True)
        if session.signals.updated_at:
            st.caption(f"Updated {session.signals.updated_at:%H:%M:%S}")

    with right:
        head, action = st.columns([3, 1])
        head.subheader("Backtest")
        if action.button("Run", key="run_backtest", use_container_width=True):
            with st.spinner("Running backtest..."):
                run(session.run_backtest)
            st.rerun()

        if session.backtest.failed:
            st.error(f"Backtest failed: {session.backtest.error}")

        stats = bt.stats if bt else None
        c1, c2 = st.columns(2)
        c1.write("Trades")
        c2.write(f"**{stats.trades if stats else PLACEHOLDER}**")
        c1.write("Win rate")
        c2.write(f"**{format_number(stats.win_rate if stats else None)}%**")
        c1.write("Total PnL")
        c2.write(f"**{format_price(stats.total_pnl if stats else None)}**")

        st.markdown("##### Last 5 trades")
        for t in last_trades(bt.trades if bt else []):
            c1, c2, c3 = st.columns([1, 2, 1])
            c1.markdown(badge(t.side))
            c2.write(format_timestamp(t.entry_time))
            c3.markdown(f":{pnl_color(t.pnl)}[{format_price(t.pnl)}]")
        if bt and bt.trades:
            with st.expander("All trades"):
                st.dataframe(trades_frame(bt.trades, limit=len(bt.trades)), use_container_width=True)
        if session.backtest.updated_at:
            st.caption(f"Updated {session.backtest.updated_at:%H:%M:%S}")

    st.divider()
    st.subheader("Quick Trade")
    c1, c2, c3, c4 = st.columns([2, 1, 2, 2])
    with c1:
        st.radio("Side", ["Buy", "Sell"], key="side", horizontal=True)
    with c2:
        st.number_input("Quantity", value=1.0, step=1.0, key="qty")
    with c3:
        st.write(f"at {format_price(session.last_price)}")
    with c4:
        if st.button("Place Paper Order", key="place_order", type="primary"):
            with st.spinner("Placing order..."):
                place_order(session)
            st.rerun()

    order = session.order
    if st.session_state.pop("order_placed", False):
        st.success("Paper order placed")
    elif order.failed:
        st.error(f"Order not placed: {order.error}")

elif menu == "System Check":
    st.title("System Check")
    st.write(f"Backend: `{session.client.base_url}`")
    st.code(session.client.url("/signals", session.query()))

    if st.button("Run check", key="system_check"):
        checker = SystemCheck(session.client)
        with st.spinner("Checking endpoints..."):
            results = asyncio.run(checker.check_once(session.query()))
        if checker.healthy():
            st.success("Backend healthy")
        else:
            st.error("Backend unhealthy")
        for r in results:
            latency = f"{r.latency_ms:.0f} ms" if r.latency_ms is not None else PLACEHOLDER
            if r.ok:
                st.info(f"{r.path}: OK ({latency})")
            else:
                st.warning(f"{r.path}: {r.detail} ({latency})")
        with st.expander("Raw results"):
            st.json(checker.snapshot())
