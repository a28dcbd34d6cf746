"""
Shared types, enums, and data structures for the streaming module.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, Union


class ConnectionState(str, Enum):
    """State machine for individual WebSocket connections."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass(frozen=True)
class LiteralPath:
    """A stream path known up front, e.g. "btcusdt@trade"."""

    path: str


@dataclass(frozen=True)
class DeferredAuthPath:
    """
    A path that must be obtained from the server before each (re)connect.

    resolve: fetches a fresh session token (the path) and starts its keep-alive
    release: stops the keep-alive; called on every teardown
    """

    resolve: Callable[[], Awaitable[str]]
    release: Callable[[], None]


ConnectionTarget = Union[LiteralPath, DeferredAuthPath]


@dataclass
class ConnectionHealth:
    """Health snapshot for a single WebSocket connection."""

    state: ConnectionState
    url: Optional[str]
    connected_since: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    reconnect_count: int = 0
    message_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    @property
    def uptime_s(self) -> Optional[float]:
        """Connection uptime in seconds, or None if not connected."""
        if self.connected_since is None:
            return None
        now = datetime.now(timezone.utc)
        return (now - self.connected_since).total_seconds()

    @property
    def is_healthy(self) -> bool:
        """Check if connection is in a healthy state."""
        return self.state == ConnectionState.CONNECTED

    @property
    def seconds_since_message(self) -> Optional[float]:
        """Seconds since last message, or None if no messages yet."""
        if self.last_message_at is None:
            return None
        now = datetime.now(timezone.utc)
        return (now - self.last_message_at).total_seconds()


@dataclass
class ConnectionMetrics:
    """Counters for a WebSocket connection."""

    messages_received: int = 0
    bytes_received: int = 0
    connect_attempts: int = 0
    reconnections: int = 0
    heartbeat_timeouts: int = 0
    errors: int = 0

    # Timing
    connected_at: Optional[float] = None  # monotonic time
    last_message_at: Optional[float] = None  # monotonic time
