"""
Stream Router - subscription entry point.

Builds stream names, creates one ConnectionManager per subscription and wires
its frames to the caller's handler:

    frame text -> JSON (or raw text) -> unwrap combined envelope -> shaper -> handler

Binance combined stream format:
{
    "stream": "btcusdt@trade",
    "data": { ... trade event ... }
}

Individual stream format (direct connection):
{
    "e": "trade",
    "s": "BTCUSDT",
    ...
}
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from binance_client.codec import decode_json
from binance_client.rest.client import BinanceRest, ResponseShaper
from binance_client.stream.config import (
    ConnectionConfig,
    StreamSpec,
    StreamType,
    combine_streams,
)
from binance_client.stream.connection import ConnectionManager
from binance_client.stream.listen_key import ListenKeySession
from binance_client.stream.types import ConnectionTarget, LiteralPath

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]


class StreamRouter:
    """
    Opens stream subscriptions.

    Every on_* method connects a new ConnectionManager and returns it once the
    connection is open; call disconnect() on it (or close_all() here) to stop.

    Usage:
        router = StreamRouter(ConnectionConfig())

        async def on_trade(event: dict) -> None:
            print(event["p"])

        manager = await router.on_trade("BTCUSDT", on_trade)
        combined = await router.on_combined_stream(
            ["btcusdt@trade", "ethusdt@trade"], on_trade
        )
        await router.close_all()
    """

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        *,
        shaper: Optional[ResponseShaper] = None,
        session: Optional[aiohttp.ClientSession] = None,
        name: str = "stream",
    ) -> None:
        self._config = config or ConnectionConfig()
        self._shaper = shaper
        self._session = session
        self._name = name
        self._managers: list[ConnectionManager] = []

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def managers(self) -> list[ConnectionManager]:
        return list(self._managers)

    # --- Stream names ---

    @staticmethod
    def depth(symbol: str) -> str:
        return StreamSpec(StreamType.DEPTH, symbol).stream_name

    @staticmethod
    def depth_level(symbol: str, level: int) -> str:
        return StreamSpec(StreamType.DEPTH_LEVEL, symbol, level=level).stream_name

    @staticmethod
    def kline(symbol: str, interval: str) -> str:
        return StreamSpec(StreamType.KLINE, symbol, interval=interval).stream_name

    @staticmethod
    def agg_trade(symbol: str) -> str:
        return StreamSpec(StreamType.AGG_TRADE, symbol).stream_name

    @staticmethod
    def trade(symbol: str) -> str:
        return StreamSpec(StreamType.TRADE, symbol).stream_name

    @staticmethod
    def ticker(symbol: str) -> str:
        return StreamSpec(StreamType.TICKER, symbol).stream_name

    @staticmethod
    def all_tickers() -> str:
        return StreamSpec(StreamType.ALL_TICKERS).stream_name

    # --- Subscriptions ---

    async def on_depth_update(self, symbol: str, handler: EventHandler) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.depth(symbol)))

    async def on_depth_level_update(
        self, symbol: str, level: int, handler: EventHandler
    ) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.depth_level(symbol, level)))

    async def on_kline(self, symbol: str, interval: str, handler: EventHandler) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.kline(symbol, interval)))

    async def on_agg_trade(self, symbol: str, handler: EventHandler) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.agg_trade(symbol)))

    async def on_trade(self, symbol: str, handler: EventHandler) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.trade(symbol)))

    async def on_ticker(self, symbol: str, handler: EventHandler) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.ticker(symbol)))

    async def on_all_tickers(self, handler: EventHandler) -> ConnectionManager:
        return await self._subscribe(handler, LiteralPath(self.all_tickers()))

    async def on_combined_stream(
        self, streams: list[str], handler: EventHandler
    ) -> ConnectionManager:
        """Multiplex several streams over one connection; handler gets unwrapped events."""
        return await self._subscribe(handler, LiteralPath(combine_streams(streams)), combined=True)

    async def on_user_data(
        self,
        rest: BinanceRest,
        handler: EventHandler,
        interval_s: Optional[float] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> ConnectionManager:
        """
        Subscribe to the account's user data stream.

        A listen key is requested before every (re)connect and renewed every
        `interval_s` seconds until the connection is torn down. Renewal
        failures are passed to `on_error` and never close the stream.
        """
        session = ListenKeySession(
            rest.executor,
            interval_s=self._config.keep_alive_interval_s if interval_s is None else interval_s,
            on_error=on_error,
            name=f"{self._name}_listen_key",
        )
        return await self._subscribe(handler, session.as_target(), on_error=on_error)

    async def _subscribe(
        self,
        handler: EventHandler,
        target: ConnectionTarget,
        combined: bool = False,
        on_error: Optional[ErrorHandler] = None,
    ) -> ConnectionManager:
        label = target.path if isinstance(target, LiteralPath) else "user_data"
        manager = ConnectionManager(
            target,
            self._config,
            combined=combined,
            on_message=self._make_dispatcher(handler, combined),
            on_error=on_error,
            session=self._session,
            name=f"{self._name}[{label}]",
        )
        self._managers.append(manager)
        try:
            return await manager.connect()
        except BaseException:
            self._managers.remove(manager)
            raise

    # --- Frame pipeline ---

    def _make_dispatcher(
        self, handler: EventHandler, combined: bool
    ) -> Callable[[str], Awaitable[None]]:
        async def dispatch(frame: str) -> None:
            await handler(self.decode_event(frame, combined))

        return dispatch

    def decode_event(self, frame: str, combined: bool = False) -> Any:
        """Turn one frame into the event delivered to handlers."""
        event = decode_json(frame)
        if isinstance(event, str):
            logger.debug(f"[{self._name}] Received invalid JSON message, passing raw text")
            return event

        if combined and isinstance(event, dict) and "stream" in event and "data" in event:
            event = event["data"]

        if self._shaper is None:
            return event
        if isinstance(event, list):
            return [self._shape_one(self._shaper, item) for item in event]
        return self._shape_one(self._shaper, event)

    @staticmethod
    def _shape_one(shaper: ResponseShaper, data: Any) -> Any:
        # Only typed events ({"e": "trade", ...}) have a known shape
        if isinstance(data, dict) and data.get("e"):
            return shaper(data, f"{data['e']} Event")
        return data

    async def close_all(self) -> None:
        """Disconnect every subscription opened by this router."""
        managers, self._managers = self._managers, []
        for manager in managers:
            try:
                await manager.disconnect()
            except Exception as e:
                logger.warning(f"[{self._name}] Error closing connection: {e}")
