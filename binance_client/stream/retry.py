"""
Exponential backoff for connection attempts.

A RetryPolicy is configuration; each connect() call starts a fresh
BackoffOperation from it, so the attempt counter never carries over from an
earlier connection lifecycle.
"""

from __future__ import annotations

import random
from typing import Optional

from binance_client.stream.config import RetryConfig


class BackoffOperation:
    """
    Attempt bookkeeping for one connection lifecycle.

    Usage:
        operation = policy.operation()
        while True:
            try:
                return await open_transport()
            except OSError as e:
                delay = operation.next_delay(e)
                if delay is None:
                    raise
                await asyncio.sleep(delay)
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config
        self._attempt = 0
        self._last_error: Optional[BaseException] = None

    @property
    def attempts(self) -> int:
        """Number of failed attempts recorded so far."""
        return self._attempt

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def exhausted(self) -> bool:
        return not self._config.forever and self._attempt > self._config.retries

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based), before jitter."""
        try:
            delay = self._config.min_delay_s * self._config.factor**attempt
        except OverflowError:
            delay = self._config.max_delay_s
        return float(min(delay, self._config.max_delay_s))

    def next_delay(self, error: Optional[BaseException] = None) -> Optional[float]:
        """
        Record a failed attempt and return how long to wait before the next one.

        Returns:
            Delay in seconds, or None when the policy is exhausted.
        """
        self._last_error = error
        delay = self.delay_for(self._attempt)
        self._attempt += 1
        if self.exhausted:
            return None

        jitter = self._config.jitter
        if jitter:
            jitter_range = delay * jitter
            delay += random.uniform(-jitter_range, jitter_range)
            delay = min(max(delay, 0.0), self._config.max_delay_s)
        return delay

    def reset(self) -> None:
        self._attempt = 0
        self._last_error = None


class RetryPolicy:
    """Factory of BackoffOperations sharing one RetryConfig."""

    def __init__(self, config: Optional[RetryConfig] = None) -> None:
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def operation(self) -> BackoffOperation:
        return BackoffOperation(self._config)
