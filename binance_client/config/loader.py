"""
Purpose:
    - Load a client config file (TOML)
    - Validate it (unknown keys are rejected)
    - Build the RestConfig / ConnectionConfig the client components take

Example file:

    venue = "binance_spot"

    [rest]
    timeout_s = 10.0
    recv_window = 5000
    handle_drift = true

    [stream]
    heartbeat_initial_s = 30.0
    heartbeat_interval_s = 20.0

    [retry]
    forever = true
    factor = 1.3
    min_delay_s = 0.3
    max_delay_s = 20.0
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from binance_client.errors import ConfigurationError
from binance_client.rest.config import BINANCE_REST_ENDPOINTS, Credentials, RestConfig, Venue
from binance_client.stream.config import BINANCE_WS_ENDPOINTS, ConnectionConfig, RetryConfig


class RestSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: Optional[str] = None
    timeout_s: float = 15.0
    recv_window: Optional[int] = None
    handle_drift: bool = False
    time_sync_interval_s: float = 300.0


class RetrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    forever: bool = True
    retries: int = 10
    factor: float = 1.3
    min_delay_s: float = 0.3
    max_delay_s: float = 20.0
    jitter: float = 0.0


class StreamSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: Optional[str] = None
    combined_base_url: Optional[str] = None
    connect_timeout_s: float = 30.0
    close_timeout_s: float = 10.0
    heartbeat_initial_s: float = 30.0
    heartbeat_interval_s: float = 20.0
    keep_alive_interval_s: float = 60.0


class ClientSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    venue: Venue = Venue.BINANCE_SPOT
    rest: RestSettings = RestSettings()
    stream: StreamSettings = StreamSettings()
    retry: RetrySettings = RetrySettings()

    def rest_config(self, credentials: Optional[Credentials] = None) -> RestConfig:
        return RestConfig(
            credentials=credentials,
            base_url=self.rest.base_url or BINANCE_REST_ENDPOINTS[self.venue],
            timeout_s=self.rest.timeout_s,
            recv_window=self.rest.recv_window,
            handle_drift=self.rest.handle_drift,
            time_sync_interval_s=self.rest.time_sync_interval_s,
        )

    def connection_config(self) -> ConnectionConfig:
        base_url, combined_base_url = BINANCE_WS_ENDPOINTS[self.venue]
        return ConnectionConfig(
            base_url=self.stream.base_url or base_url,
            combined_base_url=self.stream.combined_base_url or combined_base_url,
            connect_timeout_s=self.stream.connect_timeout_s,
            close_timeout_s=self.stream.close_timeout_s,
            retry=RetryConfig(**self.retry.model_dump()),
            heartbeat_initial_s=self.stream.heartbeat_initial_s,
            heartbeat_interval_s=self.stream.heartbeat_interval_s,
            keep_alive_interval_s=self.stream.keep_alive_interval_s,
        )


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str = ".") -> None:
        self._base_dir = base_dir

    def load(self, file_name: str) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = Path(self._base_dir) / file_name

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            try:
                return tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(
                    f"Invalid TOML in {path}: {e}", component="ConfigLoader"
                ) from e

    def load_settings(self, file_name: str) -> ClientSettings:
        data = self.load(file_name)
        try:
            return ClientSettings.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ConfigurationError(
                f"Invalid client config: {first['msg']}",
                field=field,
                component="ConfigLoader",
            ) from e
