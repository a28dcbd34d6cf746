"""
REST client with one method per endpoint.

Each wrapper only shapes its query params and picks route, method and auth
mode; all request handling lives in RequestExecutor.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Union

import aiohttp

from binance_client.clock import Clock
from binance_client.rest.config import RestConfig
from binance_client.rest.drift import DriftEstimator
from binance_client.rest.executor import RequestDescriptor, RequestExecutor, SecurityType

logger = logging.getLogger(__name__)

# shaper(payload, route_type) -> payload, e.g. renaming provider field names
ResponseShaper = Callable[[Any, str], Any]

Query = Union[dict[str, Any], str, None]


def _query(query: Query, key: str = "symbol") -> dict[str, Any]:
    """A bare string is shorthand for {key: string}."""
    if query is None:
        return {}
    if isinstance(query, str):
        return {key: query}
    return dict(query)


class BinanceRest:
    """
    Async REST client.

    Usage:
        async with BinanceRest(RestConfig(credentials=creds, handle_drift=True)) as rest:
            rest.start_time_sync()
            account = await rest.account()
            order = await rest.new_order({"symbol": "BNBBTC", "side": "BUY", ...})
    """

    def __init__(
        self,
        config: RestConfig,
        *,
        shaper: Optional[ResponseShaper] = None,
        drift: Optional[DriftEstimator] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
        name: str = "rest",
    ) -> None:
        self._config = config
        self._shaper = shaper
        self._executor = RequestExecutor(
            config, drift=drift, session=session, clock=clock, name=name
        )

    async def __aenter__(self) -> "BinanceRest":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def config(self) -> RestConfig:
        return self._config

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    @property
    def drift_ms(self) -> int:
        return self._executor.drift.drift_ms

    async def close(self) -> None:
        self._executor.drift.stop()
        await self._executor.close()

    async def _request(
        self,
        path: str,
        query: Optional[dict[str, Any]] = None,
        security: SecurityType = SecurityType.NONE,
        method: str = "GET",
    ) -> Any:
        descriptor = RequestDescriptor(
            path=path, params=query or {}, security=security, method=method
        )
        payload = await self._executor.execute(descriptor)
        if self._shaper is None:
            return payload
        if isinstance(payload, list):
            return [self._shaper(item, descriptor.route_type) for item in payload]
        return self._shaper(payload, descriptor.route_type)

    async def _signed(self, path: str, query: dict[str, Any], method: str = "GET") -> Any:
        if query.get("timestamp") is None:
            query["timestamp"] = self._executor.drift.timestamp()
        return await self._request(path, query, SecurityType.SIGNED, method)

    # --- Time sync ---

    async def calculate_drift(self) -> int:
        """Measure the clock offset against the server once."""
        return await self._executor.calibrate()

    def start_time_sync(self, interval_s: Optional[float] = None) -> None:
        """Calibrate now and periodically (default: config.time_sync_interval_s)."""
        self._executor.drift.start(interval_s or self._config.time_sync_interval_s)

    def end_time_sync(self) -> None:
        """Stop periodic calibration and reset the drift to 0."""
        self._executor.drift.stop()

    # --- Public APIs ---

    async def ping(self) -> Any:
        return await self._request("api/v3/ping")

    async def time(self) -> Any:
        return await self._request("api/v3/time")

    async def depth(self, query: Query = None) -> Any:
        return await self._request("api/v3/depth", _query(query))

    async def trades(self, query: Query = None) -> Any:
        return await self._request("api/v3/trades", _query(query))

    async def historical_trades(self, query: Query = None) -> Any:
        return await self._request(
            "api/v3/historicalTrades", _query(query), SecurityType.API_KEY
        )

    async def agg_trades(self, query: Query = None) -> Any:
        return await self._request("api/v3/aggTrades", _query(query))

    async def exchange_info(self) -> Any:
        return await self._request("api/v3/exchangeInfo")

    async def klines(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("api/v3/klines", _query(query))

    async def ticker_24hr(self, query: Query = None) -> Any:
        return await self._request("api/v3/ticker/24hr", _query(query))

    async def ticker_price(self, query: Query = None) -> Any:
        return await self._request("api/v3/ticker/price", _query(query))

    async def book_ticker(self, query: Query = None) -> Any:
        return await self._request("api/v3/ticker/bookTicker", _query(query))

    async def all_book_tickers(self) -> Any:
        return await self._request("api/v3/ticker/bookTicker")

    async def all_prices(self) -> Any:
        return await self._request("api/v3/ticker/price")

    # --- Private APIs ---

    async def new_order(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._signed("api/v3/order", _query(query), "POST")

    async def test_order(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._signed("api/v3/order/test", _query(query), "POST")

    async def query_order(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._signed("api/v3/order", _query(query))

    async def cancel_order(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._signed("api/v3/order", _query(query), "DELETE")

    async def open_orders(self, query: Query = None) -> Any:
        return await self._signed("api/v3/openOrders", _query(query))

    async def all_orders(self, query: Query = None) -> Any:
        return await self._signed("api/v3/allOrders", _query(query))

    async def account(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._signed("api/v3/account", _query(query))

    async def my_trades(self, query: Query = None) -> Any:
        return await self._signed("api/v3/myTrades", _query(query))

    async def withdraw(self, query: Optional[dict[str, Any]] = None) -> Any:
        return await self._signed("sapi/v1/capital/withdraw/apply", _query(query), "POST")

    async def deposit_history(self, query: Query = None) -> Any:
        return await self._signed("sapi/v1/capital/deposit/hisrec", _query(query, "coin"))

    async def withdraw_history(self, query: Query = None) -> Any:
        return await self._signed("sapi/v1/capital/withdraw/history", _query(query, "coin"))

    async def deposit_address(self, query: Query = None) -> Any:
        return await self._signed("sapi/v1/capital/deposit/address", _query(query, "coin"))

    async def account_status(self) -> Any:
        return await self._signed("sapi/v1/account/status", {})

    # --- User data stream (listen key) ---

    async def start_user_data_stream(self) -> Any:
        return await self._request("api/v3/userDataStream", None, SecurityType.API_KEY, "POST")

    async def keep_alive_user_data_stream(self, query: Query = None) -> Any:
        return await self._request(
            "api/v3/userDataStream", _query(query, "listenKey"), SecurityType.API_KEY, "PUT"
        )

    async def close_user_data_stream(self, query: Query = None) -> Any:
        return await self._request(
            "api/v3/userDataStream", _query(query, "listenKey"), SecurityType.API_KEY, "DELETE"
        )
