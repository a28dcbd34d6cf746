"""WebSocket side: connection lifecycle, retry, heartbeat and stream routing."""

from binance_client.stream.config import (
    BINANCE_WS_ENDPOINTS,
    ConnectionConfig,
    RetryConfig,
    StreamSpec,
    StreamType,
    combine_streams,
)
from binance_client.stream.connection import ConnectionManager
from binance_client.stream.heartbeat import HeartbeatMonitor
from binance_client.stream.listen_key import ListenKeySession
from binance_client.stream.retry import BackoffOperation, RetryPolicy
from binance_client.stream.router import StreamRouter
from binance_client.stream.types import (
    ConnectionHealth,
    ConnectionMetrics,
    ConnectionState,
    ConnectionTarget,
    DeferredAuthPath,
    LiteralPath,
)

__all__ = [
    "StreamRouter",
    "ConnectionManager",
    "HeartbeatMonitor",
    "ListenKeySession",
    "RetryPolicy",
    "BackoffOperation",
    "ConnectionConfig",
    "RetryConfig",
    "StreamSpec",
    "StreamType",
    "combine_streams",
    "BINANCE_WS_ENDPOINTS",
    "ConnectionState",
    "ConnectionHealth",
    "ConnectionMetrics",
    "ConnectionTarget",
    "LiteralPath",
    "DeferredAuthPath",
]
