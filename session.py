"""Orchestration of backend calls behind the dashboard page.

A ``DashboardSession`` owns the strategy parameters and one ``FetchState``
per kind of call. Blocking HTTP calls run in worker threads while all state
changes happen on the event loop, so no locking is needed.

Each kind of call carries a generation counter. With ``drop_stale`` enabled
a response is applied only if no newer request of the same kind was issued
meanwhile; otherwise whichever response arrives last wins.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger

from client import BackendClient, BackendError, build_query
from models import FetchState, OrderRequest, StrategyParameters


class DashboardSession:
    def __init__(
        self,
        client: BackendClient,
        identifiers: Mapping[str, str],
        params: Optional[StrategyParameters] = None,
        drop_stale: bool = True,
    ):
        self.client = client
        self.identifiers = dict(identifiers)
        self.params = params or StrategyParameters()
        self.drop_stale = drop_stale
        self.signals = FetchState()
        self.backtest = FetchState()
        self.order = FetchState()

    @property
    def loading(self) -> bool:
        return self.signals.loading

    @property
    def last_price(self) -> Optional[float]:
        if self.signals.data is None:
            return None
        return self.signals.data.last_price

    def update_params(self, **changes: Any) -> StrategyParameters:
        for name, value in changes.items():
            if name not in StrategyParameters.model_fields:
                raise ValueError(f"unknown strategy parameter: {name}")
            setattr(self.params, name, value)
        return self.params

    def query(self) -> Dict[str, str]:
        return build_query(self.identifiers, self.params)

    async def _fetch(self, kind: str, state: FetchState, call: Callable[[Mapping[str, str]], Any]) -> FetchState:
        # Parameters are read once, before the request leaves.
        query = self.query()
        state.issued += 1
        generation = state.issued
        state.in_flight += 1
        try:
            result = await asyncio.to_thread(call, query)
        except BackendError as exc:
            if self._superseded(state, generation):
                logger.debug("Ignoring failed {} response #{} (latest #{})", kind, generation, state.issued)
                return state
            logger.warning("{} request #{} failed: {}", kind, generation, exc)
            state.outcome = "error"
            state.error = str(exc)
            state.applied = generation
            return state
        finally:
            state.in_flight -= 1

        if self._superseded(state, generation):
            logger.debug("Dropping stale {} response #{} (latest #{})", kind, generation, state.issued)
            return state
        state.data = result
        state.error = None
        state.outcome = "ok"
        state.applied = generation
        state.updated_at = datetime.now()
        return state

    def _superseded(self, state: FetchState, generation: int) -> bool:
        return self.drop_stale and generation < state.issued

    async def fetch_signals(self) -> FetchState:
        return await self._fetch("signals", self.signals, self.client.get_signals)

    async def run_backtest(self) -> FetchState:
        return await self._fetch("backtest", self.backtest, self.client.get_backtest)

    async def refresh_all(self) -> None:
        await asyncio.gather(self.fetch_signals(), self.run_backtest())

    async def place_order(self, side: str, qty: float, price: Optional[float]) -> FetchState:
        """Submit a paper order; on acceptance the signals are fetched again."""
        order = OrderRequest(side=side, qty=qty, price=price, **self.identifiers)
        state = self.order
        state.issued += 1
        state.in_flight += 1
        try:
            result = await asyncio.to_thread(self.client.place_order, order)
        except BackendError as exc:
            logger.warning("Paper order {} {} failed: {}", side, qty, exc)
            state.outcome = "error"
            state.error = str(exc)
            return state
        finally:
            state.in_flight -= 1

        state.data = result
        state.applied = state.issued
        state.updated_at = datetime.now()
        if not result.ok:
            reason = result.message or result.detail or "order rejected by backend"
            logger.warning("Paper order {} {} rejected: {}", side, qty, reason)
            state.outcome = "error"
            state.error = str(reason)
            return state

        logger.info("Paper order placed: {} {} {} @ {}", side, qty, order.asset, price)
        state.outcome = "ok"
        state.error = None
        await self.fetch_signals()
        return state
