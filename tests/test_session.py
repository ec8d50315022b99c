import asyncio
import unittest

import requests

from client import BackendClient, BackendError
from models import StrategyParameters
from session import DashboardSession
from tests.fakes import (
    FakeHttpSession,
    FakeResponse,
    GatedClient,
    backtest_payload,
    order_result,
    signals_payload,
)

IDENTIFIERS = {"asset": "BTCUSDT", "timeframe": "1h"}


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class SignalFetchTests(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_signals_sets_data_and_clears_loading(self):
        payload = signals_payload(last_price=123.0)
        client = GatedClient(signals=[payload])
        session = DashboardSession(client, IDENTIFIERS)

        task = asyncio.create_task(session.fetch_signals())
        await wait_until(lambda: len(client.queries["signals"]) == 1)
        self.assertTrue(session.loading)
        self.assertEqual(session.signals.status, "loading")

        client.release("signals", 0)
        await task

        self.assertFalse(session.loading)
        self.assertEqual(session.signals.status, "ok")
        self.assertIs(session.signals.data, payload)
        self.assertEqual(session.last_price, 123.0)

    async def test_failure_keeps_stale_data_and_clears_loading(self):
        first = signals_payload(last_price=1.0)
        client = GatedClient(signals=[first, BackendError("boom")])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        await session.fetch_signals()
        await session.fetch_signals()

        self.assertFalse(session.loading)
        self.assertEqual(session.signals.status, "error")
        self.assertEqual(session.signals.error, "boom")
        self.assertIs(session.signals.data, first)

    async def test_parameters_are_read_when_the_call_starts(self):
        client = GatedClient(signals=[signals_payload(), signals_payload()])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        await session.fetch_signals()
        session.update_params(fast=12, sl_pct=0.05)
        await session.fetch_signals()

        self.assertEqual(client.queries["signals"][0]["fast"], "9")
        self.assertEqual(client.queries["signals"][1]["fast"], "12")
        self.assertEqual(client.queries["signals"][1]["sl_pct"], "0.05")

    async def test_drop_stale_keeps_latest_issued_response(self):
        older, newer = signals_payload(suggestion="older"), signals_payload(suggestion="newer")
        client = GatedClient(signals=[older, newer])
        session = DashboardSession(client, IDENTIFIERS, drop_stale=True)

        first = asyncio.create_task(session.fetch_signals())
        second = asyncio.create_task(session.fetch_signals())
        await wait_until(lambda: len(client.queries["signals"]) == 2)

        client.release("signals", 1)
        await second
        self.assertTrue(session.loading)
        client.release("signals", 0)
        await first

        self.assertFalse(session.loading)
        self.assertEqual(session.signals.data.suggestion, "newer")
        self.assertEqual(session.signals.applied, 2)

    async def test_without_drop_stale_last_resolved_response_wins(self):
        older, newer = signals_payload(suggestion="older"), signals_payload(suggestion="newer")
        client = GatedClient(signals=[older, newer])
        session = DashboardSession(client, IDENTIFIERS, drop_stale=False)

        first = asyncio.create_task(session.fetch_signals())
        second = asyncio.create_task(session.fetch_signals())
        await wait_until(lambda: len(client.queries["signals"]) == 2)

        client.release("signals", 1)
        await second
        client.release("signals", 0)
        await first

        self.assertFalse(session.loading)
        self.assertEqual(session.signals.data.suggestion, "older")

    async def test_stale_failure_does_not_mask_newer_success(self):
        newer = signals_payload(suggestion="newer")
        client = GatedClient(signals=[BackendError("late failure"), newer])
        session = DashboardSession(client, IDENTIFIERS)

        first = asyncio.create_task(session.fetch_signals())
        second = asyncio.create_task(session.fetch_signals())
        await wait_until(lambda: len(client.queries["signals"]) == 2)
        client.release("signals", 1)
        await second
        client.release("signals", 0)
        await first

        self.assertEqual(session.signals.status, "ok")
        self.assertIsNone(session.signals.error)


class BacktestFetchTests(unittest.IsolatedAsyncioTestCase):
    async def test_backtest_is_independent_of_signals(self):
        client = GatedClient(signals=[signals_payload()], backtest=[backtest_payload(trades=4)])
        session = DashboardSession(client, IDENTIFIERS)

        task = asyncio.create_task(session.refresh_all())
        await wait_until(lambda: client.queries["signals"] and client.queries["backtest"])
        client.release("backtest", 0)
        await wait_until(lambda: session.backtest.status == "ok")
        self.assertTrue(session.loading)
        self.assertEqual(session.backtest.data.stats.trades, 4)

        client.release("signals", 0)
        await task
        self.assertFalse(session.loading)
        self.assertEqual(client.queries["signals"][0], client.queries["backtest"][0])

    async def test_backtest_failure_is_recorded(self):
        client = GatedClient(backtest=[BackendError("engine down")])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        state = await session.run_backtest()

        self.assertEqual(state.status, "error")
        self.assertIsNone(state.data)
        self.assertEqual(session.signals.status, "idle")


class OrderSubmitTests(unittest.IsolatedAsyncioTestCase):
    async def test_accepted_order_refetches_signals_once(self):
        client = GatedClient(signals=[signals_payload()], orders=[order_result(ok=True)])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        state = await session.place_order("sell", 2, 65000.5)

        self.assertEqual(state.status, "ok")
        self.assertEqual(len(client.queries["signals"]), 1)
        self.assertEqual(len(client.queries["backtest"]), 0)
        order = client.orders[0]
        self.assertEqual(
            order.model_dump(),
            {"asset": "BTCUSDT", "timeframe": "1h", "side": "sell", "qty": 2, "price": 65000.5},
        )

    async def test_rejected_order_does_not_refetch(self):
        client = GatedClient(orders=[order_result(ok=False, message="insufficient balance")])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        state = await session.place_order("buy", 1, 100.0)

        self.assertEqual(client.queries["signals"], [])
        self.assertEqual(state.status, "error")
        self.assertEqual(state.error, "insufficient balance")
        self.assertEqual(session.signals.status, "idle")
        self.assertIsNone(session.signals.data)

    async def test_order_transport_failure_is_surfaced(self):
        client = GatedClient(orders=[BackendError("502: bad gateway")])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        state = await session.place_order("buy", 0, None)

        self.assertEqual(state.status, "error")
        self.assertIn("502", state.error)
        self.assertEqual(client.queries["signals"], [])

    async def test_zero_and_negative_quantities_are_sent_unchanged(self):
        client = GatedClient(orders=[order_result(ok=False), order_result(ok=False)])
        client.release_all()
        session = DashboardSession(client, IDENTIFIERS)

        await session.place_order("buy", 0, 10.0)
        await session.place_order("sell", -3.5, 10.0)

        self.assertEqual([o.qty for o in client.orders], [0, -3.5])


class EndToEndTests(unittest.IsolatedAsyncioTestCase):
    async def test_order_then_single_signals_get_with_current_parameters(self):
        http = FakeHttpSession(
            replies={
                ("POST", "/paper/order"): FakeResponse(payload={"ok": True}),
                ("GET", "/signals"): FakeResponse(
                    payload={"last_price": 65010.0, "suggestion": "sell", "signals": []}
                ),
            }
        )
        client = BackendClient(base_url="http://backend.test", session=http)
        session = DashboardSession(client, IDENTIFIERS, params=StrategyParameters())

        await session.place_order("sell", 2, 65000.5)

        self.assertEqual(len(http.calls_to("POST", "/paper/order")), 1)
        self.assertEqual(http.calls_to("POST", "/paper/order")[0]["json"]["price"], 65000.5)
        gets = http.calls_to("GET", "/signals")
        self.assertEqual(len(gets), 1)
        self.assertEqual(
            gets[0]["params"],
            {
                "asset": "BTCUSDT",
                "timeframe": "1h",
                "fast": "9",
                "slow": "21",
                "rsi_len": "14",
                "rsi_buy": "55",
                "rsi_sell": "45",
                "tp_rr": "1.5",
                "sl_pct": "0.02",
            },
        )
        self.assertEqual(session.last_price, 65010.0)

    async def test_unreachable_backend_never_leaves_loading_stuck(self):
        http = FakeHttpSession(error=requests.ConnectionError("refused"))
        session = DashboardSession(BackendClient(base_url="http://backend.test", session=http), IDENTIFIERS)

        await session.refresh_all()

        self.assertFalse(session.loading)
        self.assertEqual(session.signals.status, "error")
        self.assertEqual(session.backtest.status, "error")


class ParameterTests(unittest.TestCase):
    def test_defaults(self):
        session = DashboardSession(GatedClient(), IDENTIFIERS)
        self.assertEqual(
            session.params.model_dump(),
            {"fast": 9, "slow": 21, "rsi_len": 14, "rsi_buy": 55, "rsi_sell": 45, "tp_rr": 1.5, "sl_pct": 0.02},
        )

    def test_update_rejects_unknown_names(self):
        session = DashboardSession(GatedClient(), IDENTIFIERS)
        with self.assertRaises(ValueError):
            session.update_params(ema=3)

    def test_update_rejects_non_numeric_values(self):
        session = DashboardSession(GatedClient(), IDENTIFIERS)
        with self.assertRaises(ValueError):
            session.update_params(fast="fast")

    def test_query_follows_parameter_edits(self):
        session = DashboardSession(GatedClient(), IDENTIFIERS)
        session.update_params(slow=30)
        self.assertEqual(session.query()["slow"], "30")


if __name__ == "__main__":
    unittest.main()
