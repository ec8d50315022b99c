"""HTTP access to the trading backend (signals, backtest, paper orders)."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlencode

import requests
from loguru import logger
from pydantic import BaseModel, ValidationError

import config
from models import BacktestResponse, OrderRequest, OrderResult, SignalsResponse, StrategyParameters

SIGNALS_PATH = "/signals"
BACKTEST_PATH = "/backtest"
ORDER_PATH = "/paper/order"


class BackendError(RuntimeError):
    """Raised when a backend call fails at the network, HTTP or payload level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_query(
    identifiers: Mapping[str, Any],
    params: Union[StrategyParameters, Mapping[str, Any]],
) -> Dict[str, str]:
    """Merge fixed identifiers and strategy parameters into query parameters.

    Identifiers go in first, so a parameter with the same name overrides the
    identifier. Every value is coerced to its string form.
    """
    if isinstance(params, BaseModel):
        params = params.model_dump()
    merged = {**identifiers, **params}
    return {key: _query_value(value) for key, value in merged.items()}


def encode_query(query: Mapping[str, str]) -> str:
    return urlencode(list(query.items()))


class BackendClient:
    def __init__(
        self,
        base_url: str = config.BACKEND_URL,
        timeout: float = config.BACKEND_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def url(self, path: str, query: Optional[Mapping[str, str]] = None) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{encode_query(query)}"
        return url

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = self.url(path)
        logger.debug("{} {} params={}", method, url, kwargs.get("params"))
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
                detail = payload.get("detail", payload) if isinstance(payload, dict) else payload
            except ValueError:
                detail = response.text
            raise BackendError(f"{response.status_code}: {detail}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"{method} {path} returned a non-JSON body") from exc

    def _parse(self, model, payload: Any, path: str):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise BackendError(f"unexpected {path} payload: {exc.error_count()} invalid field(s)") from exc

    def get_signals(self, query: Mapping[str, str]) -> SignalsResponse:
        payload = self._request("GET", SIGNALS_PATH, params=dict(query))
        return self._parse(SignalsResponse, payload, SIGNALS_PATH)

    def get_backtest(self, query: Mapping[str, str]) -> BacktestResponse:
        payload = self._request("GET", BACKTEST_PATH, params=dict(query))
        return self._parse(BacktestResponse, payload, BACKTEST_PATH)

    def place_order(self, order: OrderRequest) -> OrderResult:
        payload = self._request("POST", ORDER_PATH, json=order.model_dump())
        if payload is None:
            payload = {}
        return self._parse(OrderResult, payload, ORDER_PATH)
