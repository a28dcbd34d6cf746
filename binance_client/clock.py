"""
now() provides the client's notion of local time in epoch milliseconds. It is used by
 - DriftEstimator, to measure the round trip of a server time request
 - RequestExecutor, to stamp SIGNED requests (local time + drift)
 - BinanceRest, which stamps SIGNED wrapper queries the same way
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

# type alias (at runtime equivalent to int)
Millis = int  # Milliseconds since epoch

# -------- Exceptions -----------------------------------------------------------


class ClockError(RuntimeError):
    """Raised when a clock operation would violate its invariants (e.g., going backward)."""


# -------- Interface -----------------------------------------------------------


class Clock(ABC):
    """
    Local time source.

    All timestamps are UTC epoch milliseconds (int).
    """

    @abstractmethod
    def now(self) -> Millis:
        """Current time in UTC epoch milliseconds."""
        raise NotImplementedError

    @property
    @abstractmethod
    def is_realtime(self) -> bool:
        """True for RealtimeClock; False for ManualClock."""
        raise NotImplementedError


# -------- RealtimeClock -------------------------------------------------------


@dataclass
class RealtimeClock(Clock):
    """
    Realtime clock that is robust to system time changes.

    It anchors to the wall-clock at construction and then advances using
    time.monotonic(). A round trip measured with two now() calls therefore
    never comes out negative, even if NTP adjusts the OS clock in between.

    _t0_wall_ms: The wall-clock time at the start (in milliseconds).
    _t0_mono: The monotonic counter at the start.
    """

    _t0_wall_ms: Optional[Millis] = None
    _t0_mono: Optional[float] = None

    def __post_init__(self) -> None:
        self._t0_wall_ms = int(time.time() * 1000)  # time since Unix Epoch (UTC)
        self._t0_mono = time.monotonic()

    @property
    def is_realtime(self) -> bool:
        return True

    def now(self) -> Millis:
        if self._t0_wall_ms is None or self._t0_mono is None:
            raise ClockError("Clock not properly initialized")
        elapsed_ms = int((time.monotonic() - self._t0_mono) * 1000)
        return self._t0_wall_ms + elapsed_ms


# -------- ManualClock ---------------------------------------------------------


class ManualClock(Clock):
    """
    Deterministic, manually-advanced clock.

    Time only moves when advance_to()/advance_by() is called, or when a queued
    reading is consumed: `queue(t0, t1)` makes the next two now() calls return
    t0 and t1, which lets a test pin both ends of a measured round trip.
    """

    def __init__(self, start_ms: Millis = 0) -> None:
        if start_ms < 0:
            raise ValueError("start_ms must be >= 0")
        self._current_ms: Millis = int(start_ms)
        self._queued: list[Millis] = []

    @property
    def is_realtime(self) -> bool:
        return False

    def now(self) -> Millis:
        if self._queued:
            self.advance_to(self._queued.pop(0))
        return self._current_ms

    def queue(self, *readings: Millis) -> None:
        """Queue readings returned by subsequent now() calls (must be non-decreasing)."""
        self._queued.extend(int(r) for r in readings)

    def advance_to(self, ts_ms: Millis) -> Millis:
        """
        Move the time forward to exactly ts_ms.

        Returns the new current time. Raises ClockError on backward moves.
        """
        if ts_ms < self._current_ms:
            raise ClockError(f"ManualClock: cannot go backwards: {ts_ms} < {self._current_ms}")
        self._current_ms = ts_ms
        return self._current_ms

    def advance_by(self, delta_ms: Millis) -> Millis:
        """Move the time forward by delta_ms (>= 0)."""
        if delta_ms < 0:
            raise ClockError(f"ManualClock: cannot go backwards, delta_ms < 0: {delta_ms}")
        return self.advance_to(self._current_ms + int(delta_ms))
