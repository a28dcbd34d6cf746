"""
Clock drift estimation.

The server rejects SIGNED requests whose timestamp is too far from its own
clock. DriftEstimator measures the offset between the local clock and the
server clock from one "server time" round trip and keeps it in a DriftState
that every request reads when it is stamped.

Calibrations are not coalesced: two concurrent calibrate() calls both hit the
network and the last one to finish wins. Callers needing single-flight
semantics must serialize them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from binance_client.clock import Clock, Millis, RealtimeClock

logger = logging.getLogger(__name__)

ServerTimeFetcher = Callable[[], Awaitable[Millis]]


@dataclass
class DriftState:
    """Offset (ms) added to local timestamps. Written only by DriftEstimator."""

    offset_ms: int = 0
    calibrations: int = 0
    last_calibrated_at: Optional[Millis] = None  # local time of the last calibration
    last_round_trip_ms: Optional[int] = None

    def reset(self) -> None:
        self.offset_ms = 0
        self.last_calibrated_at = None
        self.last_round_trip_ms = None


class DriftEstimator:
    """
    Estimates and stores the client/server clock offset.

    Lifecycle:
        estimator = DriftEstimator(fetch_server_time)
        await estimator.calibrate()       # one-shot
        estimator.start(interval_s=300)   # periodic, in the background
        estimator.stop()                  # cancel and reset drift to 0

    One estimator may be shared by several executors; they then share the
    same DriftState.
    """

    def __init__(
        self,
        fetch_server_time: Optional[ServerTimeFetcher] = None,
        *,
        clock: Optional[Clock] = None,
        state: Optional[DriftState] = None,
        name: str = "drift",
    ) -> None:
        self._fetch_server_time = fetch_server_time
        self._clock = clock or RealtimeClock()
        self._state = state or DriftState()
        self._name = name
        self._sync_task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> DriftState:
        return self._state

    @property
    def drift_ms(self) -> int:
        return self._state.offset_ms

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    def bind(self, fetch_server_time: ServerTimeFetcher) -> None:
        """Set the server time source if none was given at construction."""
        if self._fetch_server_time is None:
            self._fetch_server_time = fetch_server_time

    def timestamp(self) -> Millis:
        """Local time corrected by the current drift."""
        return self._clock.now() + self._state.offset_ms

    async def calibrate(self) -> int:
        """
        Measure and store the drift.

        drift = S - (T0 + (T1 - T0) / 2), where T0/T1 are the local times around
        the server time request and S is the server time it returned.

        Returns:
            The new drift in milliseconds.

        Raises:
            RuntimeError: If no server time source is bound
            RequestError: If the server time request fails (drift is left unchanged)
        """
        if self._fetch_server_time is None:
            raise RuntimeError("DriftEstimator: no server time source bound")

        t0 = self._clock.now()
        server_time = await self._fetch_server_time()
        t1 = self._clock.now()

        transit_ms = (t1 - t0) // 2
        drift = int(server_time) - (t0 + transit_ms)

        old = self._state.offset_ms
        self._state.offset_ms = drift
        self._state.calibrations += 1
        self._state.last_calibrated_at = t1
        self._state.last_round_trip_ms = t1 - t0
        logger.info(f"[{self._name}] Drift calibrated: {old}ms -> {drift}ms (rtt={t1 - t0}ms)")
        return drift

    def start(self, interval_s: float = 300.0) -> None:
        """
        Calibrate now and then every `interval_s` seconds in the background.

        A sync already running is cancelled and its drift reset first.
        """
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        if self._sync_task is not None:
            self.stop()
        self._sync_task = asyncio.create_task(
            self._sync_loop(interval_s), name=f"{self._name}_time_sync"
        )

    def stop(self) -> None:
        """Cancel periodic calibration and reset the drift to 0."""
        if self._sync_task is not None and not self._sync_task.done():
            self._sync_task.cancel()
        self._sync_task = None
        self._state.reset()

    async def _sync_loop(self, interval_s: float) -> None:
        try:
            while True:
                try:
                    await self.calibrate()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.warning(f"[{self._name}] Periodic calibration failed: {e}")
                await asyncio.sleep(interval_s)
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Time sync cancelled")
