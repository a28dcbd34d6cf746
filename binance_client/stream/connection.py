"""
WebSocket Connection Manager for stream subscriptions.

Handles WebSocket lifecycle including:
- Target resolution (literal path, or a listen key fetched before each connect)
- Exponential backoff on failed connection attempts
- Heartbeat supervision (reconnect when no frame arrives within a window)
- Automatic reconnection when the server closes the connection
- Connection-level metrics and health tracking
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, assert_never

import aiohttp

from binance_client.errors import ConnectionError
from binance_client.stream.config import ConnectionConfig
from binance_client.stream.heartbeat import HeartbeatMonitor
from binance_client.stream.retry import RetryPolicy
from binance_client.stream.types import (
    ConnectionHealth,
    ConnectionMetrics,
    ConnectionState,
    ConnectionTarget,
    DeferredAuthPath,
    LiteralPath,
)

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], Awaitable[None]]
EventCallback = Callable[[], Awaitable[None]]

# Failures of a single connection attempt; these are retried per the policy
TRANSPORT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class ConnectionManager:
    """
    Owns one WebSocket connection for one subscription target.

    State Machine:
        [IDLE] --connect()--> [CONNECTING] --open--> [CONNECTED]
                                   ^                    |  close frame / heartbeat timeout
                                   |                    v
                                   +-------------- [RECONNECTING]
        any state --disconnect()/force_disconnect()--> [CLOSED]

    Reconnection replaces the transport but keeps this object, its handler and
    its callbacks. Only an explicit disconnect ends in CLOSED; with a bounded
    retry policy an exhausted connect() raises ConnectionError and leaves the
    manager IDLE.

    The ConnectionManager does NOT parse messages - it delivers the raw frame
    text to the registered handler, in arrival order.

    Usage:
        async def on_message(frame: str) -> None:
            print(frame)

        manager = ConnectionManager(
            LiteralPath("btcusdt@trade"),
            ConnectionConfig(),
            on_message=on_message,
        )
        await manager.connect()
        # ... later ...
        await manager.disconnect()
    """

    def __init__(
        self,
        target: ConnectionTarget,
        config: ConnectionConfig,
        *,
        combined: bool = False,
        on_message: Optional[MessageCallback] = None,
        on_connected: Optional[EventCallback] = None,
        on_reconnect: Optional[EventCallback] = None,
        on_state_change: Optional[Callable[[ConnectionState], Awaitable[None]]] = None,
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        name: str = "connection",
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            target: Stream path, or a deferred path resolved before each connect
            config: Connection configuration
            combined: Target is a combined stream ("a/b/c"); use the combined endpoint
            on_message: Async callback for each received frame (raw text)
            on_connected: Async callback after every successful open
            on_reconnect: Async callback when an automatic reconnect starts
            on_state_change: Optional callback for state changes
            on_error: Optional callback for errors
            session: aiohttp session to use; one is created (and owned) if omitted
            name: Name for logging purposes
        """
        self._target = target
        self._config = config
        self._combined = combined
        self._on_message = on_message
        self._on_connected = on_connected
        self._on_reconnect = on_reconnect
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._name = name

        self._session = session
        self._owns_session = session is None
        self._retry_policy = RetryPolicy(config.retry)

        # State
        self._state = ConnectionState.IDLE
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._url: Optional[str] = None

        # Tasks
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._heartbeat = HeartbeatMonitor(
            initial_window_s=config.heartbeat_initial_s,
            interval_s=config.heartbeat_interval_s,
            on_timeout=self._on_heartbeat_timeout,
            name=name,
        )

        # Metrics
        self._metrics = ConnectionMetrics()
        self._connected_at: Optional[datetime] = None
        self._last_message_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_error_at: Optional[datetime] = None

        # Set by disconnect(); stops backoff waits and automatic reconnects
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self._state == ConnectionState.CONNECTED

    @property
    def url(self) -> Optional[str]:
        """Resolved endpoint of the current (or last) connection."""
        return self._url

    @property
    def target(self) -> ConnectionTarget:
        return self._target

    @property
    def combined(self) -> bool:
        return self._combined

    @property
    def metrics(self) -> ConnectionMetrics:
        """Connection metrics."""
        return self._metrics

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def websocket(self) -> Optional[aiohttp.ClientWebSocketResponse]:
        """The live transport, if any."""
        return self._ws

    def on_message(self, handler: MessageCallback) -> None:
        """Register the frame handler (replaces any previous one)."""
        self._on_message = handler

    async def _set_state(self, new_state: ConnectionState) -> None:
        """Update state and notify listener."""
        old_state = self._state
        self._state = new_state

        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:
                    logger.warning(f"[{self._name}] State change callback error: {e}")

    async def _emit(self, callback: Optional[EventCallback], label: str) -> None:
        if callback is None:
            return
        try:
            await callback()
        except Exception as e:
            logger.warning(f"[{self._name}] {label} callback error: {e}")

    async def _report_error(self, error: Exception) -> None:
        self._metrics.errors += 1
        self._last_error = str(error)
        self._last_error_at = datetime.now(timezone.utc)
        if self._on_error:
            try:
                await self._on_error(error)
            except Exception as cb_err:
                logger.warning(f"[{self._name}] Error callback failed: {cb_err}")

    # --- Connect ---

    async def connect(self) -> "ConnectionManager":
        """
        Open the connection, replacing any existing transport.

        Returns once the transport is open. Failed attempts are retried per the
        retry policy against the same resolved endpoint.

        Raises:
            ConnectionError: If a bounded retry policy is exhausted, or the
                manager is disconnected while connecting
            RequestError: If resolving a deferred (listen key) target fails
        """
        self._stop_event.clear()
        await self._connect_once(graceful_teardown=True)
        return self

    async def _connect_once(self, graceful_teardown: bool) -> None:
        await self._teardown(graceful=graceful_teardown)

        url = await self._resolve_url()
        self._url = url
        try:
            ws = await self._open_with_retry(url)
        except BaseException:
            # The resolved target (listen key) must not outlive a failed connect
            await self._abandon_connect()
            raise

        self._ws = ws
        await self._on_open(ws)

    async def _open_with_retry(self, url: str) -> aiohttp.ClientWebSocketResponse:
        # disconnect() may have landed while the target was resolving
        if self._stop_event.is_set():
            raise self._closed_while_connecting(0)
        await self._set_state(ConnectionState.CONNECTING)

        # A fresh operation per connect: attempt counts never carry over
        operation = self._retry_policy.operation()
        while True:
            if self._stop_event.is_set():
                raise self._closed_while_connecting(operation.attempts)

            self._metrics.connect_attempts += 1
            try:
                ws = await self._open_transport(url)
                break
            except TRANSPORT_ERRORS as e:
                await self._report_error(e)
                delay = operation.next_delay(e)
                logger.debug(
                    f"[{self._name}] WebSocket connect attempt #{operation.attempts} failed: {e}"
                )
                if delay is None:
                    await self._set_state(ConnectionState.IDLE)
                    logger.error(
                        f"[{self._name}] Giving up after {operation.attempts} attempts"
                    )
                    raise ConnectionError(
                        f"Failed to connect after {operation.attempts} attempts",
                        url=url,
                        reconnect_attempt=operation.attempts,
                        component="ConnectionManager",
                    ) from e

                if await self._wait_for_stop(delay):
                    raise self._closed_while_connecting(operation.attempts) from e

        if self._stop_event.is_set():
            await ws.close()
            raise self._closed_while_connecting(operation.attempts)
        return ws

    async def _abandon_connect(self) -> None:
        """Release the resolved target and the owned session after a failed connect."""
        if isinstance(self._target, DeferredAuthPath):
            self._target.release()
        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
            self._session = None

    def _closed_while_connecting(self, attempts: int) -> ConnectionError:
        return ConnectionError(
            "Disconnected while connecting",
            url=self._url,
            reconnect_attempt=attempts,
            component="ConnectionManager",
        )

    async def _resolve_url(self) -> str:
        """Resolve the target to a full endpoint URL."""
        target = self._target
        if isinstance(target, LiteralPath):
            path = target.path
        elif isinstance(target, DeferredAuthPath):
            path = await target.resolve()
        else:
            assert_never(target)

        base = self._config.combined_base_url if self._combined else self._config.base_url
        return f"{base}{path}"

    async def _open_transport(self, url: str) -> aiohttp.ClientWebSocketResponse:
        """Open the WebSocket (one attempt)."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.connect_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

        logger.debug(f"[{self._name}] Connecting to {url}")
        return await self._session.ws_connect(url, autoping=True)

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep for `delay` seconds; True if disconnect() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _on_open(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._connected_at = datetime.now(timezone.utc)
        self._metrics.connected_at = time.monotonic()
        await self._set_state(ConnectionState.CONNECTED)
        logger.info(f"[{self._name}] Connected to {self._url}")

        self._heartbeat.start()
        self._receive_task = asyncio.create_task(
            self._receive_loop(ws), name=f"{self._name}_receive"
        )
        await self._emit(self._on_connected, "Connected")

    # --- Receiving ---

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Deliver frames until the transport closes, then reconnect."""
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_frame(msg.data)

                elif msg.type == aiohttp.WSMsgType.BINARY:
                    await self._handle_frame(msg.data.decode("utf-8", errors="replace"))

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"[{self._name}] WebSocket error: {ws.exception()}")
                    self._metrics.errors += 1
                    break

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Receive loop error: {e}")
            await self._report_error(e)

        # The transport closed on its own: reconnect unless we are tearing down
        if ws is self._ws and not self._stop_event.is_set():
            logger.warning(f"[{self._name}] Connection closed by remote, reconnecting")
            self._schedule_reconnect()

    async def _handle_frame(self, data: str) -> None:
        self._heartbeat.beat()
        self._last_message_at = datetime.now(timezone.utc)
        self._metrics.last_message_at = time.monotonic()
        self._metrics.messages_received += 1
        self._metrics.bytes_received += len(data)

        if self._on_message is None:
            return
        try:
            await self._on_message(data)
        except Exception as e:
            logger.error(f"[{self._name}] Message handling error: {e}")
            self._metrics.errors += 1

    # --- Reconnecting ---

    def _on_heartbeat_timeout(self) -> None:
        self._metrics.heartbeat_timeouts += 1
        if self._stop_event.is_set():
            return
        self._schedule_reconnect(graceful_teardown=False)

    def _schedule_reconnect(self, graceful_teardown: bool = True) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(
            self._reconnect(graceful_teardown), name=f"{self._name}_reconnect"
        )

    async def _reconnect(self, graceful_teardown: bool) -> None:
        """
        Tear down and connect again.

        If the connect itself fails (bounded policy exhausted, listen key
        request failed), the failure is reported and, with a `forever` policy,
        the whole connect is tried again after a backoff delay.
        """
        self._metrics.reconnections += 1
        await self._set_state(ConnectionState.RECONNECTING)
        await self._emit(self._on_reconnect, "Reconnect")

        operation = self._retry_policy.operation()
        while not self._stop_event.is_set():
            try:
                await self._connect_once(graceful_teardown=graceful_teardown)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._stop_event.is_set():
                    return
                logger.error(f"[{self._name}] Reconnect failed: {e}")
                await self._report_error(e)

                delay = operation.next_delay(e) if self._config.retry.forever else None
                if delay is None:
                    await self._set_state(ConnectionState.IDLE)
                    return
                if await self._wait_for_stop(delay):
                    return

    # --- Teardown ---

    async def _teardown(self, graceful: bool) -> None:
        """Cancel timers and tasks, then close the transport. Idempotent."""
        self._heartbeat.stop()

        current = asyncio.current_task()
        if self._reconnect_task is not None and self._reconnect_task is not current:
            if not self._reconnect_task.done():
                self._reconnect_task.cancel()
            self._reconnect_task = None

        # Stop receiving first so the close below does not trigger a reconnect
        receive_task = self._receive_task
        self._receive_task = None
        if receive_task is not None and receive_task is not current and not receive_task.done():
            receive_task.cancel()
            try:
                await receive_task
            except asyncio.CancelledError:
                pass

        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            if graceful:
                await self._close_gracefully(ws)
            else:
                await self._terminate(ws)

        if isinstance(self._target, DeferredAuthPath):
            self._target.release()

    async def _close_gracefully(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            await asyncio.wait_for(ws.close(), timeout=self._config.close_timeout_s)
        except TRANSPORT_ERRORS as e:
            logger.debug(f"[{self._name}] Close handshake failed: {e}")

    async def _terminate(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Drop the transport without a close handshake."""
        if self._owns_session and self._session is not None:
            # The owned session holds only this connection; closing it aborts the socket
            await self._session.close()
            self._session = None
        else:
            await self._close_gracefully(ws)

    async def disconnect(self) -> None:
        """Close the connection gracefully; no reconnect follows."""
        await self._shutdown(graceful=True)

    async def force_disconnect(self) -> None:
        """Drop the connection immediately; no reconnect follows."""
        await self._shutdown(graceful=False)

    async def _shutdown(self, graceful: bool) -> None:
        logger.info(f"[{self._name}] Closing connection")
        self._stop_event.set()
        await self._teardown(graceful=graceful)

        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
            self._session = None

        await self._set_state(ConnectionState.CLOSED)
        logger.info(f"[{self._name}] Connection closed")

    def get_health(self) -> ConnectionHealth:
        """Get current connection health snapshot."""
        return ConnectionHealth(
            state=self._state,
            url=self._url,
            connected_since=self._connected_at,
            last_message_at=self._last_message_at,
            reconnect_count=self._metrics.reconnections,
            message_count=self._metrics.messages_received,
            error_count=self._metrics.errors,
            last_error=self._last_error,
            last_error_at=self._last_error_at,
        )
