"""
Heartbeat supervision for WebSocket connections.

Liveness is inferred from inbound traffic instead of ping/pong: after the
connection opens, at least one frame must arrive within each window. A window
that passes without a frame means the connection stalled silently, and the
owner is told to tear it down and reconnect.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class HeartbeatMonitor:
    """
    Single repeating liveness timer.

    Timeline:
        start() ──initial_window_s──> check ──interval_s──> check ──> ...

    At each check the monitor looks at whether beat() was called since the
    previous check. If it was, the flag is cleared and a fresh window starts;
    if not, on_timeout() is called once and the monitor stops.

    There is at most one pending timer: start() cancels any previous one.
    """

    def __init__(
        self,
        initial_window_s: float,
        interval_s: float,
        on_timeout: Callable[[], None],
        name: str = "heartbeat",
    ) -> None:
        """
        Initialize the heartbeat monitor.

        Args:
            initial_window_s: Window for the first frame after start()
            interval_s: Window for every following check
            on_timeout: Called (synchronously) when a window passes without a frame
            name: Name for logging purposes
        """
        self._initial_window_s = initial_window_s
        self._interval_s = interval_s
        self._on_timeout = on_timeout
        self._name = name

        self._alive = False
        self._task: Optional[asyncio.Task[None]] = None

        # Metrics
        self.checks = 0
        self.timeouts = 0
        self.last_beat_at: Optional[float] = None  # monotonic time

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_alive(self) -> bool:
        """Whether a frame arrived since the last check."""
        return self._alive

    def start(self) -> None:
        """Arm the first window; any pending timer is cancelled."""
        self.stop()
        self._alive = False
        self._task = asyncio.create_task(self._run(), name=f"{self._name}_heartbeat")

    def beat(self) -> None:
        """Record an inbound frame."""
        self._alive = True
        self.last_beat_at = time.monotonic()

    def stop(self) -> None:
        """Cancel the pending timer, if any."""
        if self._task is not None and not self._task.done():
            if self._task is not asyncio.current_task():
                self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        window = self._initial_window_s
        try:
            while True:
                await asyncio.sleep(window)
                self.checks += 1

                if not self._alive:
                    self.timeouts += 1
                    logger.warning(
                        f"[{self._name}] No frame within {window:.2f}s, connection considered dead"
                    )
                    self._on_timeout()
                    return

                self._alive = False
                window = self._interval_s
                logger.debug(f"[{self._name}] Alive, next check in {window:.2f}s")
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Heartbeat cancelled")
