"""
Unit tests for StreamRouter.
"""

import asyncio
from typing import Any

import pytest

from binance_client.errors import ConnectionError, SubscriptionError
from binance_client.rest.client import BinanceRest
from binance_client.rest.config import Credentials, RestConfig
from binance_client.stream.config import ConnectionConfig, RetryConfig
from binance_client.stream.router import StreamRouter
from binance_client.stream.types import ConnectionState
from tests.fixtures.fakes import FakeHttpSession, FakeWsSession, wait_until

CONFIG = ConnectionConfig(
    base_url="wss://ws.test/ws/",
    combined_base_url="wss://ws.test/stream?streams=",
)


class Collector:
    """Async handler recording every event."""

    def __init__(self) -> None:
        self.events: list[Any] = []

    async def __call__(self, event: Any) -> None:
        self.events.append(event)


class TestStreamNames:
    """Tests for the name builders."""

    def test_names(self) -> None:
        """Test each builder follows the stream grammar."""
        assert StreamRouter.depth("BNBBTC") == "bnbbtc@depth"
        assert StreamRouter.depth_level("BNBBTC", 5) == "bnbbtc@depth5"
        assert StreamRouter.kline("BNBBTC", "1m") == "bnbbtc@kline_1m"
        assert StreamRouter.agg_trade("BNBBTC") == "bnbbtc@aggTrade"
        assert StreamRouter.trade("BNBBTC") == "bnbbtc@trade"
        assert StreamRouter.ticker("BNBBTC") == "bnbbtc@ticker"
        assert StreamRouter.all_tickers() == "!ticker@arr"


class TestDecodeEvent:
    """Tests for the frame pipeline."""

    def test_plain_event(self) -> None:
        """Test a JSON frame is decoded."""
        router = StreamRouter(CONFIG)
        assert router.decode_event('{"e": "trade", "p": "1.0"}') == {"e": "trade", "p": "1.0"}

    def test_invalid_json_passed_as_text(self) -> None:
        """Test a frame that is not JSON reaches the handler as raw text."""
        router = StreamRouter(CONFIG)
        assert router.decode_event("not json {") == "not json {"

    def test_combined_envelope_unwrapped(self) -> None:
        """Test combined frames deliver only the inner data."""
        router = StreamRouter(CONFIG)
        frame = '{"stream": "btcusdt@trade", "data": {"e": "trade", "p": "1.0"}}'

        assert router.decode_event(frame, combined=True) == {"e": "trade", "p": "1.0"}

    def test_envelope_kept_on_single_stream(self) -> None:
        """Test a single-stream frame is not unwrapped."""
        router = StreamRouter(CONFIG)
        frame = '{"stream": "x", "data": 1}'

        assert router.decode_event(frame) == {"stream": "x", "data": 1}

    def test_shaper_gets_event_route(self) -> None:
        """Test the shaper runs on typed events with '<e> Event'."""
        routes: list[str] = []

        def shaper(data: Any, route: str) -> Any:
            routes.append(route)
            return {"price": data["p"]}

        router = StreamRouter(CONFIG, shaper=shaper)

        assert router.decode_event('{"e": "trade", "p": "2"}') == {"price": "2"}
        assert routes == ["trade Event"]

    def test_shaper_per_item_on_lists(self) -> None:
        """Test list frames are shaped item by item."""
        router = StreamRouter(CONFIG, shaper=lambda data, route: (route, data["s"]))
        frame = '[{"e": "24hrTicker", "s": "A"}, {"e": "24hrTicker", "s": "B"}]'

        assert router.decode_event(frame) == [("24hrTicker Event", "A"), ("24hrTicker Event", "B")]

    def test_shaper_skips_untyped_data(self) -> None:
        """Test payloads without 'e' are passed through unshaped."""
        router = StreamRouter(CONFIG, shaper=lambda data, route: "shaped")
        assert router.decode_event('{"lastUpdateId": 1}') == {"lastUpdateId": 1}


class TestSubscriptions:
    """Tests for subscriptions over fake sockets."""

    @pytest.mark.asyncio
    async def test_on_trade(self) -> None:
        """Test a single-stream subscription connects and dispatches events."""
        session = FakeWsSession()
        router = StreamRouter(CONFIG, session=session)  # type: ignore[arg-type]
        handler = Collector()

        manager = await router.on_trade("BTCUSDT", handler)
        session.latest.feed({"e": "trade", "p": "1.5"})
        await wait_until(lambda: len(handler.events) == 1)

        assert session.urls == ["wss://ws.test/ws/btcusdt@trade"]
        assert handler.events == [{"e": "trade", "p": "1.5"}]
        assert router.managers == [manager]
        await router.close_all()

    @pytest.mark.asyncio
    async def test_on_kline_url(self) -> None:
        """Test kline subscriptions use the interval in the path."""
        session = FakeWsSession()
        router = StreamRouter(CONFIG, session=session)  # type: ignore[arg-type]

        await router.on_kline("ETHBTC", "5m", Collector())

        assert session.urls == ["wss://ws.test/ws/ethbtc@kline_5m"]
        await router.close_all()

    @pytest.mark.asyncio
    async def test_combined_stream(self) -> None:
        """Test combined subscriptions hit the combined endpoint and unwrap frames."""
        session = FakeWsSession()
        router = StreamRouter(CONFIG, session=session)  # type: ignore[arg-type]
        handler = Collector()

        manager = await router.on_combined_stream(["btcusdt@trade", "ethusdt@trade"], handler)
        session.latest.feed({"stream": "btcusdt@trade", "data": {"e": "trade", "s": "BTCUSDT"}})
        session.latest.feed({"stream": "ethusdt@trade", "data": {"e": "trade", "s": "ETHUSDT"}})
        await wait_until(lambda: len(handler.events) == 2)

        assert session.urls == ["wss://ws.test/stream?streams=btcusdt@trade/ethusdt@trade"]
        assert manager.combined
        assert [e["s"] for e in handler.events] == ["BTCUSDT", "ETHUSDT"]
        await router.close_all()

    @pytest.mark.asyncio
    async def test_empty_combined_stream(self) -> None:
        """Test an empty combined list is rejected without connecting."""
        session = FakeWsSession()
        router = StreamRouter(CONFIG, session=session)  # type: ignore[arg-type]

        with pytest.raises(SubscriptionError):
            await router.on_combined_stream([], Collector())

        assert session.connect_calls == 0
        assert router.managers == []

    @pytest.mark.asyncio
    async def test_invalid_json_frame_reaches_handler(self) -> None:
        """Test raw text frames are delivered as text."""
        session = FakeWsSession()
        router = StreamRouter(CONFIG, session=session)  # type: ignore[arg-type]
        handler = Collector()

        await router.on_all_tickers(handler)
        session.latest.feed("garbage")
        await wait_until(lambda: handler.events == ["garbage"])

        assert session.urls == ["wss://ws.test/ws/!ticker@arr"]
        await router.close_all()

    @pytest.mark.asyncio
    async def test_close_all(self) -> None:
        """Test close_all() disconnects every subscription."""
        session = FakeWsSession()
        router = StreamRouter(CONFIG, session=session)  # type: ignore[arg-type]
        first = await router.on_depth_update("BTCUSDT", Collector())
        second = await router.on_depth_level_update("BTCUSDT", 10, Collector())

        await router.close_all()

        assert first.state == ConnectionState.CLOSED
        assert second.state == ConnectionState.CLOSED
        assert router.managers == []
        assert session.urls == ["wss://ws.test/ws/btcusdt@depth", "wss://ws.test/ws/btcusdt@depth10"]


class TestUserData:
    """Tests for user data subscriptions."""

    @pytest.mark.asyncio
    async def test_on_user_data(self) -> None:
        """Test the listen key is fetched over REST and used as the path."""
        http = FakeHttpSession((200, {"listenKey": "lk-123"}))
        rest = BinanceRest(
            RestConfig(credentials=Credentials("key", "secret"), base_url="https://api.test/"),
            session=http,  # type: ignore[arg-type]
        )
        ws = FakeWsSession()
        router = StreamRouter(CONFIG, session=ws)  # type: ignore[arg-type]
        handler = Collector()

        await router.on_user_data(rest, handler, interval_s=10.0)
        ws.latest.feed({"e": "outboundAccountPosition", "E": 1})
        await wait_until(lambda: len(handler.events) == 1)

        assert http.requests[0].method == "POST"
        assert http.requests[0].path == "api/v3/userDataStream"
        assert ws.urls == ["wss://ws.test/ws/lk-123"]
        assert handler.events[0]["e"] == "outboundAccountPosition"
        await router.close_all()

    @pytest.mark.asyncio
    async def test_no_renewal_after_close_all(self) -> None:
        """Test the listen key stops being renewed once the router is closed."""
        http = FakeHttpSession((200, {"listenKey": "lk-123"}))
        rest = BinanceRest(
            RestConfig(credentials=Credentials("key", "secret"), base_url="https://api.test/"),
            session=http,  # type: ignore[arg-type]
        )
        router = StreamRouter(CONFIG, session=FakeWsSession())  # type: ignore[arg-type]

        await router.on_user_data(rest, Collector(), interval_s=0.02)
        await router.close_all()
        await asyncio.sleep(0.1)

        assert [r.method for r in http.requests] == ["POST"]

    @pytest.mark.asyncio
    async def test_no_renewal_after_failed_connect(self) -> None:
        """Test a user data stream that never connects leaves no renewal behind."""
        http = FakeHttpSession((200, {"listenKey": "lk-123"}))
        rest = BinanceRest(
            RestConfig(credentials=Credentials("key", "secret"), base_url="https://api.test/"),
            session=http,  # type: ignore[arg-type]
        )
        config = ConnectionConfig(
            base_url="wss://ws.test/ws/",
            combined_base_url="wss://ws.test/stream?streams=",
            retry=RetryConfig(forever=False, retries=1, min_delay_s=0.005, max_delay_s=0.01),
        )
        router = StreamRouter(config, session=FakeWsSession(OSError("refused"), OSError("refused")))  # type: ignore[arg-type]

        with pytest.raises(ConnectionError):
            await router.on_user_data(rest, Collector(), interval_s=0.02)
        await asyncio.sleep(0.1)

        assert router.managers == []
        assert [r.method for r in http.requests] == ["POST"]

    @pytest.mark.asyncio
    async def test_zero_interval_rejected(self) -> None:
        """Test an explicit zero interval is rejected instead of using the default."""
        http = FakeHttpSession()
        rest = BinanceRest(
            RestConfig(credentials=Credentials("key", "secret"), base_url="https://api.test/"),
            session=http,  # type: ignore[arg-type]
        )
        router = StreamRouter(CONFIG, session=FakeWsSession())  # type: ignore[arg-type]

        with pytest.raises(ValueError):
            await router.on_user_data(rest, Collector(), interval_s=0)

        assert http.requests == []
        assert router.managers == []
