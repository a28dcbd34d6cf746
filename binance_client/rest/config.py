"""
Configuration types for the REST side of the client.

Provides immutable, validated configuration dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from binance_client.errors import ConfigurationError


class Venue(str, Enum):
    """Supported deployments of the API."""

    BINANCE_SPOT = "binance_spot"
    BINANCE_SPOT_TESTNET = "binance_spot_testnet"
    BINANCE_US = "binance_us"


# REST base endpoints; routes ("api/v3/order") are appended without a leading slash
BINANCE_REST_ENDPOINTS: dict[Venue, str] = {
    Venue.BINANCE_SPOT: "https://api.binance.com/",
    Venue.BINANCE_SPOT_TESTNET: "https://testnet.binance.vision/",
    Venue.BINANCE_US: "https://api.binance.us/",
}

API_KEY_HEADER = "X-MBX-APIKEY"
MAX_RECV_WINDOW_MS = 60_000


@dataclass(frozen=True)
class Credentials:
    """API key (sent as a header) and secret (signing key, never transmitted)."""

    api_key: str
    api_secret: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("api_key must be a non-empty string", field="api_key")
        if not self.api_secret:
            raise ConfigurationError("api_secret must be a non-empty string", field="api_secret")


@dataclass(frozen=True)
class RestConfig:
    """
    Immutable configuration for the REST client.

    Example:
        config = RestConfig(
            credentials=Credentials("key", "secret"),
            recv_window=5000,
            handle_drift=True,
        )
    """

    credentials: Optional[Credentials] = None
    base_url: str = BINANCE_REST_ENDPOINTS[Venue.BINANCE_SPOT]

    # Request behavior
    timeout_s: float = 15.0
    recv_window: Optional[int] = None  # ms, appended to SIGNED requests when set

    # Clock drift handling
    handle_drift: bool = False  # Recalibrate and retry once on -1021
    time_sync_interval_s: float = 300.0

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ConfigurationError(
                "timeout_s must be positive",
                field="timeout_s",
                value=self.timeout_s,
            )
        if self.recv_window is not None and not (0 < self.recv_window <= MAX_RECV_WINDOW_MS):
            raise ConfigurationError(
                f"recv_window must be between 1 and {MAX_RECV_WINDOW_MS}",
                field="recv_window",
                value=self.recv_window,
            )
        if self.time_sync_interval_s <= 0:
            raise ConfigurationError(
                "time_sync_interval_s must be positive",
                field="time_sync_interval_s",
                value=self.time_sync_interval_s,
            )
        if not self.base_url.endswith("/"):
            # Need to use object.__setattr__ for frozen dataclass
            object.__setattr__(self, "base_url", self.base_url + "/")

    @classmethod
    def for_venue(cls, venue: Venue, **kwargs: object) -> "RestConfig":
        """Build a config pointing at the REST endpoint of `venue`."""
        return cls(base_url=BINANCE_REST_ENDPOINTS[venue], **kwargs)  # type: ignore[arg-type]
