"""
Configuration types for the streaming side of the client.

Provides immutable, validated configuration dataclasses and the stream-name
grammar.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from binance_client.errors import ConfigurationError, SubscriptionError
from binance_client.rest.config import Venue

# Binance WebSocket endpoints: (single-stream base, combined-stream base)
BINANCE_WS_ENDPOINTS: dict[Venue, tuple[str, str]] = {
    Venue.BINANCE_SPOT: (
        "wss://stream.binance.com:9443/ws/",
        "wss://stream.binance.com:9443/stream?streams=",
    ),
    Venue.BINANCE_SPOT_TESTNET: (
        "wss://testnet.binance.vision/ws/",
        "wss://testnet.binance.vision/stream?streams=",
    ),
    Venue.BINANCE_US: (
        "wss://stream.binance.us:9443/ws/",
        "wss://stream.binance.us:9443/stream?streams=",
    ),
}

COMBINED_STREAM_SEPARATOR = "/"


class StreamType(str, Enum):
    """Available stream types."""

    DEPTH = "depth"
    DEPTH_LEVEL = "depthLevel"
    KLINE = "kline"
    AGG_TRADE = "aggTrade"
    TRADE = "trade"
    TICKER = "ticker"
    ALL_TICKERS = "allTickers"


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff for connection attempts."""

    forever: bool = True  # Ignore `retries` and never give up
    retries: int = 10  # Retries after the first failed attempt when not forever
    factor: float = 1.3
    min_delay_s: float = 0.3
    max_delay_s: float = 20.0
    jitter: float = 0.0  # ±jitter%, 0 keeps delays deterministic

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ConfigurationError(
                "retries must be non-negative",
                field="retries",
                value=self.retries,
            )
        if self.factor < 1:
            raise ConfigurationError(
                "factor must be >= 1",
                field="factor",
                value=self.factor,
            )
        if self.min_delay_s <= 0:
            raise ConfigurationError(
                "min_delay_s must be positive",
                field="min_delay_s",
                value=self.min_delay_s,
            )
        if self.max_delay_s < self.min_delay_s:
            raise ConfigurationError(
                "max_delay_s must be >= min_delay_s",
                field="max_delay_s",
                value=self.max_delay_s,
            )
        if not (0 <= self.jitter <= 1):
            raise ConfigurationError(
                "jitter must be between 0 and 1",
                field="jitter",
                value=self.jitter,
            )


@dataclass(frozen=True)
class ConnectionConfig:
    """Configuration shared by every WebSocket connection of a StreamRouter."""

    # Endpoints
    base_url: str = BINANCE_WS_ENDPOINTS[Venue.BINANCE_SPOT][0]
    combined_base_url: str = BINANCE_WS_ENDPOINTS[Venue.BINANCE_SPOT][1]

    # Connection behavior
    connect_timeout_s: float = 30.0
    close_timeout_s: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Liveness: first check after connecting, then every heartbeat_interval_s
    heartbeat_initial_s: float = 30.0
    heartbeat_interval_s: float = 20.0

    # Listen key renewal for user data streams
    keep_alive_interval_s: float = 60.0

    def __post_init__(self) -> None:
        for name in (
            "connect_timeout_s",
            "close_timeout_s",
            "heartbeat_initial_s",
            "heartbeat_interval_s",
            "keep_alive_interval_s",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(
                    f"{name} must be positive",
                    field=name,
                    value=value,
                )

    @classmethod
    def for_venue(cls, venue: Venue, **kwargs: object) -> "ConnectionConfig":
        """Build a config pointing at the WebSocket endpoints of `venue`."""
        base_url, combined_base_url = BINANCE_WS_ENDPOINTS[venue]
        return cls(base_url=base_url, combined_base_url=combined_base_url, **kwargs)  # type: ignore[arg-type]


@dataclass(frozen=True)
class StreamSpec:
    """A single stream subscription."""

    stream_type: StreamType
    symbol: Optional[str] = None
    interval: Optional[str] = None  # For klines: "1m", "5m", etc.
    level: Optional[int] = None  # For partial depth, e.g. 5, 10, 20

    def __post_init__(self) -> None:
        if self.stream_type != StreamType.ALL_TICKERS and not self.symbol:
            raise SubscriptionError(
                f"symbol required for {self.stream_type.value} streams",
                stream=self.stream_type.value,
            )
        if self.stream_type == StreamType.KLINE and not self.interval:
            raise SubscriptionError(
                "interval required for kline streams",
                stream=self.stream_type.value,
            )
        if self.stream_type == StreamType.DEPTH_LEVEL and (self.level is None or self.level <= 0):
            raise SubscriptionError(
                "level must be a positive integer",
                stream=self.stream_type.value,
            )

    @property
    def stream_name(self) -> str:
        """Generate Binance stream name."""
        symbol_lower = (self.symbol or "").lower()

        if self.stream_type == StreamType.DEPTH:
            return f"{symbol_lower}@depth"
        elif self.stream_type == StreamType.DEPTH_LEVEL:
            return f"{symbol_lower}@depth{self.level}"
        elif self.stream_type == StreamType.KLINE:
            return f"{symbol_lower}@kline_{self.interval}"
        elif self.stream_type == StreamType.ALL_TICKERS:
            return "!ticker@arr"
        else:
            return f"{symbol_lower}@{self.stream_type.value}"


def combine_streams(stream_names: list[str]) -> str:
    """Join stream names into the path of a combined stream."""
    if not stream_names:
        raise SubscriptionError("combined stream needs at least one stream name")
    return COMBINED_STREAM_SEPARATOR.join(stream_names)
