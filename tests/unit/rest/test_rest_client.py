"""
Unit tests for BinanceRest endpoint wrappers.
"""

import asyncio
from typing import Any

import pytest

from binance_client.clock import ManualClock
from binance_client.rest.client import BinanceRest
from binance_client.rest.config import API_KEY_HEADER, Credentials, RestConfig
from tests.fixtures.fakes import FakeHttpSession

CREDS = Credentials(api_key="my-key", api_secret="my-secret")


def make_rest(session: FakeHttpSession, **kwargs: Any) -> BinanceRest:
    config = RestConfig(credentials=CREDS, base_url="https://api.test/")
    return BinanceRest(config, session=session, clock=ManualClock(start_ms=1_000), **kwargs)  # type: ignore[arg-type]


class TestPublicEndpoints:
    """Tests for unauthenticated wrappers."""

    @pytest.mark.asyncio
    async def test_symbol_shorthand(self) -> None:
        """Test a bare string becomes the symbol param."""
        session = FakeHttpSession((200, {"lastUpdateId": 1}))
        rest = make_rest(session)

        await rest.depth("BTCUSDT")

        request = session.requests[0]
        assert request.method == "GET"
        assert request.path == "api/v3/depth"
        assert request.params == {"symbol": "BTCUSDT"}
        assert request.headers == {}

    @pytest.mark.asyncio
    async def test_query_dict(self) -> None:
        """Test a dict query is sent as-is, in order."""
        session = FakeHttpSession((200, []))
        rest = make_rest(session)

        await rest.klines({"symbol": "BTCUSDT", "interval": "1m", "limit": 2})

        assert session.requests[0].query == "symbol=BTCUSDT&interval=1m&limit=2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method_name, path",
        [
            ("ping", "api/v3/ping"),
            ("time", "api/v3/time"),
            ("exchange_info", "api/v3/exchangeInfo"),
            ("all_book_tickers", "api/v3/ticker/bookTicker"),
            ("all_prices", "api/v3/ticker/price"),
        ],
    )
    async def test_routes(self, method_name: str, path: str) -> None:
        """Test argument-less wrappers hit their route."""
        session = FakeHttpSession((200, {}))
        rest = make_rest(session)

        await getattr(rest, method_name)()

        assert session.requests[0].path == path

    @pytest.mark.asyncio
    async def test_historical_trades_sends_api_key(self) -> None:
        """Test API-KEY endpoints carry the key header but no signature."""
        session = FakeHttpSession((200, []))
        rest = make_rest(session)

        await rest.historical_trades("BTCUSDT")

        request = session.requests[0]
        assert request.headers == {API_KEY_HEADER: "my-key"}
        assert "signature" not in request.params


class TestSignedEndpoints:
    """Tests for SIGNED wrappers."""

    @pytest.mark.asyncio
    async def test_new_order(self) -> None:
        """Test new_order POSTs a signed, timestamped query."""
        session = FakeHttpSession((200, {"orderId": 7}))
        rest = make_rest(session)

        result = await rest.new_order({"symbol": "BNBBTC", "side": "BUY", "type": "MARKET", "quantity": 1})

        request = session.requests[0]
        assert result == {"orderId": 7}
        assert request.method == "POST"
        assert request.path == "api/v3/order"
        assert request.params["timestamp"] == "1000"
        assert "signature" in request.params
        assert request.query.startswith("symbol=BNBBTC&side=BUY&type=MARKET&quantity=1&timestamp=1000")

    @pytest.mark.asyncio
    async def test_cancel_order_uses_delete(self) -> None:
        """Test cancel_order is a DELETE on the order route."""
        session = FakeHttpSession((200, {}))
        rest = make_rest(session)

        await rest.cancel_order({"symbol": "BNBBTC", "orderId": 7})

        assert session.requests[0].method == "DELETE"
        assert session.requests[0].path == "api/v3/order"

    @pytest.mark.asyncio
    async def test_coin_shorthand(self) -> None:
        """Test capital endpoints take the asset as `coin`."""
        session = FakeHttpSession((200, []), (200, {}))
        rest = make_rest(session)

        await rest.deposit_history("BTC")
        await rest.deposit_address("ETH")

        assert session.requests[0].path == "sapi/v1/capital/deposit/hisrec"
        assert session.requests[0].params["coin"] == "BTC"
        assert session.requests[1].params["coin"] == "ETH"

    @pytest.mark.asyncio
    async def test_caller_query_not_mutated(self) -> None:
        """Test the caller's dict is not changed by stamping."""
        session = FakeHttpSession((200, {}))
        rest = make_rest(session)
        query = {"symbol": "BNBBTC"}

        await rest.open_orders(query)

        assert query == {"symbol": "BNBBTC"}


class TestUserDataStream:
    """Tests for listen key wrappers."""

    @pytest.mark.asyncio
    async def test_lifecycle_calls(self) -> None:
        """Test start/keep-alive/close map to POST/PUT/DELETE."""
        session = FakeHttpSession((200, {"listenKey": "abc"}), (200, {}), (200, {}))
        rest = make_rest(session)

        started = await rest.start_user_data_stream()
        await rest.keep_alive_user_data_stream("abc")
        await rest.close_user_data_stream("abc")

        assert started == {"listenKey": "abc"}
        assert [r.method for r in session.requests] == ["POST", "PUT", "DELETE"]
        assert all(r.path == "api/v3/userDataStream" for r in session.requests)
        assert session.requests[1].params == {"listenKey": "abc"}
        assert all(r.headers == {API_KEY_HEADER: "my-key"} for r in session.requests)


class TestShaper:
    """Tests for response shaping."""

    @pytest.mark.asyncio
    async def test_shaper_applied_with_route_type(self) -> None:
        """Test the shaper sees the payload and the last path segment."""
        calls: list[tuple[Any, str]] = []

        def shaper(payload: Any, route_type: str) -> Any:
            calls.append((payload, route_type))
            return {"shaped": payload}

        session = FakeHttpSession((200, {"serverTime": 5}))
        rest = make_rest(session, shaper=shaper)

        result = await rest.time()

        assert result == {"shaped": {"serverTime": 5}}
        assert calls == [({"serverTime": 5}, "time")]

    @pytest.mark.asyncio
    async def test_shaper_applied_per_item(self) -> None:
        """Test list payloads are shaped item by item."""
        session = FakeHttpSession((200, [{"id": 1}, {"id": 2}]))
        rest = make_rest(session, shaper=lambda item, route: (route, item["id"]))

        assert await rest.trades("BTCUSDT") == [("trades", 1), ("trades", 2)]

    @pytest.mark.asyncio
    async def test_no_shaper_returns_payload(self) -> None:
        """Test payloads pass through without a shaper."""
        session = FakeHttpSession((200, [{"id": 1}]))
        assert await make_rest(session).trades("BTCUSDT") == [{"id": 1}]


class TestTimeSync:
    """Tests for drift lifecycle helpers."""

    @pytest.mark.asyncio
    async def test_calculate_drift(self) -> None:
        """Test calculate_drift() stores the measured offset."""
        session = FakeHttpSession((200, {"serverTime": 1_400}))
        rest = make_rest(session)

        assert await rest.calculate_drift() == 400
        assert rest.drift_ms == 400

    @pytest.mark.asyncio
    async def test_end_time_sync_resets(self) -> None:
        """Test end_time_sync() stops syncing and resets drift."""
        session = FakeHttpSession((200, {"serverTime": 1_400}))
        rest = make_rest(session)

        rest.start_time_sync(interval_s=10.0)
        await asyncio.sleep(0.01)
        assert rest.drift_ms == 400
        assert rest.executor.drift.is_syncing

        rest.end_time_sync()

        assert rest.drift_ms == 0
        assert not rest.executor.drift.is_syncing

    @pytest.mark.asyncio
    async def test_context_manager_stops_sync(self) -> None:
        """Test leaving the context stops time sync."""
        session = FakeHttpSession((200, {"serverTime": 1_000}))

        async with make_rest(session) as rest:
            rest.start_time_sync(interval_s=10.0)
            await asyncio.sleep(0.01)

        assert not rest.executor.drift.is_syncing
