"""Reachability check of the backend endpoints used by the dashboard."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from loguru import logger

from client import BACKTEST_PATH, SIGNALS_PATH, BackendClient, BackendError


@dataclass(slots=True)
class EndpointStatus:
    path: str
    status: str = "UNKNOWN"
    latency_ms: Optional[float] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "OK"


class SystemCheck:
    """Probes the read-only endpoints; the order endpoint is never called."""

    def __init__(self, client: BackendClient):
        self.client = client
        self.results: Dict[str, EndpointStatus] = {}

    async def check_once(self, query: Mapping[str, str]) -> List[EndpointStatus]:
        probes: List[tuple[str, Callable]] = [
            (SIGNALS_PATH, self.client.get_signals),
            (BACKTEST_PATH, self.client.get_backtest),
        ]
        results = await asyncio.gather(*(self._probe(path, call, query) for path, call in probes))
        self.results = {r.path: r for r in results}
        return list(results)

    async def _probe(self, path: str, call: Callable, query: Mapping[str, str]) -> EndpointStatus:
        started = time.perf_counter()
        try:
            await asyncio.to_thread(call, query)
        except BackendError as exc:
            logger.error("System check {} failed: {}", path, exc)
            return EndpointStatus(
                path=path,
                status="ERROR",
                latency_ms=(time.perf_counter() - started) * 1000,
                detail=str(exc),
            )
        return EndpointStatus(path=path, status="OK", latency_ms=(time.perf_counter() - started) * 1000)

    def healthy(self) -> bool:
        return bool(self.results) and all(r.ok for r in self.results.values())

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        return {
            path: {"status": r.status, "latency_ms": r.latency_ms, "detail": r.detail}
            for path, r in self.results.items()
        }
