from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Timestamp = Union[int, float, str]
Number = Union[int, float]


class StrategyParameters(BaseModel):
    """MA + RSI strategy settings sent with every signals/backtest request.

    Values are only checked for being numeric; combinations such as
    ``fast >= slow`` are left for the backend to reject or clamp.
    """

    model_config = ConfigDict(validate_assignment=True)

    fast: int = 9
    slow: int = 21
    rsi_len: int = 14
    rsi_buy: int = 55
    rsi_sell: int = 45
    tp_rr: float = 1.5
    sl_pct: float = 0.02


class Signal(BaseModel):
    model_config = ConfigDict(extra="allow")

    t: Timestamp
    action: str
    price: Optional[float] = None


class SignalsResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    last_price: Optional[float] = None
    suggestion: str = ""
    signals: List[Signal] = []

    @field_validator("suggestion", mode="before")
    @classmethod
    def _null_suggestion(cls, value):
        return "" if value is None else value

    @field_validator("signals", mode="before")
    @classmethod
    def _null_signals(cls, value):
        return [] if value is None else value


class BacktestStats(BaseModel):
    model_config = ConfigDict(extra="allow")

    trades: int = 0
    win_rate: Optional[float] = None
    total_pnl: Optional[float] = None

    @field_validator("trades", mode="before")
    @classmethod
    def _null_trade_count(cls, value):
        return 0 if value is None else value


class BacktestTrade(BaseModel):
    model_config = ConfigDict(extra="allow")

    entry_time: Timestamp
    side: str
    pnl: Optional[float] = None


class BacktestResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    stats: BacktestStats = Field(default_factory=BacktestStats)
    trades: List[BacktestTrade] = []

    @field_validator("stats", mode="before")
    @classmethod
    def _null_stats(cls, value):
        return {} if value is None else value

    @field_validator("trades", mode="before")
    @classmethod
    def _null_trades(cls, value):
        return [] if value is None else value


class OrderRequest(BaseModel):
    asset: str
    timeframe: str
    side: str
    qty: Number
    price: Optional[float] = None


class OrderResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    ok: bool = False
    message: Optional[str] = None
    detail: Any = None

    @field_validator("ok", mode="before")
    @classmethod
    def _truthy_ok(cls, value):
        # any truthy value counts as accepted
        return bool(value)


@dataclass
class FetchState:
    """Outcome of one kind of backend call as seen by the page.

    ``data`` keeps the last successful payload, so stale data stays visible
    while a newer request is in flight or after it failed.
    """

    data: Any = None
    error: Optional[str] = None
    outcome: str = "idle"
    in_flight: int = 0
    issued: int = 0
    applied: int = 0
    updated_at: Optional[datetime] = None

    @property
    def loading(self) -> bool:
        return self.in_flight > 0

    @property
    def status(self) -> str:
        if self.loading:
            return "loading"
        return self.outcome

    @property
    def failed(self) -> bool:
        return self.outcome == "error"
