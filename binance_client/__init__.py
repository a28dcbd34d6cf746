"""
Binance Client.

Async client core for the Binance REST and WebSocket APIs.

Components:
- BinanceRest: One method per REST endpoint
- RequestExecutor: Signing, drift-corrected timestamps, clock-skew retry
- DriftEstimator: Local/server clock offset measurement
- StreamRouter: Stream subscriptions (single, combined, user data)
- ConnectionManager: WebSocket lifecycle, heartbeat, reconnection with backoff

Usage:
    from binance_client import BinanceRest, Credentials, RestConfig, StreamRouter

    async with BinanceRest(RestConfig(credentials=Credentials(key, secret))) as rest:
        account = await rest.account()

    router = StreamRouter()
    manager = await router.on_trade("BTCUSDT", handler)
"""

from binance_client.errors import (
    BinanceClientError,
    ClockSkewError,
    ConfigurationError,
    ConnectionError,
    KeepAliveError,
    RequestError,
    SubscriptionError,
    TransportError,
)
from binance_client.rest import (
    BinanceRest,
    Credentials,
    DriftEstimator,
    RequestDescriptor,
    RequestExecutor,
    RestConfig,
    SecurityType,
    Signer,
    Venue,
)
from binance_client.stream import (
    ConnectionConfig,
    ConnectionManager,
    ConnectionState,
    RetryConfig,
    StreamRouter,
)

__all__ = [
    # REST
    "BinanceRest",
    "RequestExecutor",
    "RequestDescriptor",
    "SecurityType",
    "Signer",
    "DriftEstimator",
    "RestConfig",
    "Credentials",
    "Venue",
    # Streams
    "StreamRouter",
    "ConnectionManager",
    "ConnectionConfig",
    "ConnectionState",
    "RetryConfig",
    # Errors
    "BinanceClientError",
    "ConfigurationError",
    "RequestError",
    "ClockSkewError",
    "TransportError",
    "ConnectionError",
    "SubscriptionError",
    "KeepAliveError",
]
