"""
Listen key lifecycle for user data streams.

A user data stream is addressed by a listen key obtained over REST. The key
expires unless it is renewed, so resolving it also starts a background task
that renews it on a fixed interval until the stream is torn down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from binance_client.errors import KeepAliveError, RequestError
from binance_client.models import ListenKey
from binance_client.rest.executor import RequestDescriptor, RequestExecutor, SecurityType
from binance_client.stream.types import DeferredAuthPath

logger = logging.getLogger(__name__)

USER_DATA_STREAM_PATH = "api/v3/userDataStream"


class ListenKeySession:
    """
    Acquires, renews and releases one listen key at a time.

    resolve() may be called again on every reconnect; each call obtains a new
    key and restarts the renewal task. A failed renewal is reported through
    `on_error` and the schedule carries on.

    Usage:
        session = ListenKeySession(rest.executor, interval_s=60)
        manager = ConnectionManager(session.as_target(), config)
        await manager.connect()      # resolve() runs here
        await manager.disconnect()   # release() runs here
    """

    def __init__(
        self,
        executor: RequestExecutor,
        interval_s: float = 60.0,
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None,
        name: str = "listen_key",
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._executor = executor
        self._interval_s = interval_s
        self._on_error = on_error
        self._name = name

        self._listen_key: Optional[str] = None
        self._keep_alive_task: Optional[asyncio.Task[None]] = None
        self._released = True

        # Statistics
        self.renewals = 0
        self.renewal_failures = 0

    @property
    def listen_key(self) -> Optional[str]:
        return self._listen_key

    @property
    def is_keeping_alive(self) -> bool:
        return self._keep_alive_task is not None and not self._keep_alive_task.done()

    def as_target(self) -> DeferredAuthPath:
        return DeferredAuthPath(resolve=self.resolve, release=self.release)

    async def resolve(self) -> str:
        """Start a user data stream and return its listen key."""
        payload = await self._executor.execute(
            RequestDescriptor(USER_DATA_STREAM_PATH, security=SecurityType.API_KEY, method="POST")
        )
        try:
            listen_key = ListenKey.model_validate(payload).listenKey
        except ValidationError as e:
            raise RequestError(
                "Malformed listen key payload",
                payload=payload,
                path=USER_DATA_STREAM_PATH,
                component="ListenKeySession",
            ) from e

        self.release()
        self._listen_key = listen_key
        self._released = False
        self._keep_alive_task = asyncio.create_task(
            self._keep_alive_loop(listen_key), name=f"{self._name}_keep_alive"
        )
        logger.info(f"[{self._name}] User data stream started")
        return listen_key

    def release(self) -> None:
        """Stop renewing the current key. Idempotent."""
        self._released = True
        if self._keep_alive_task is not None and not self._keep_alive_task.done():
            self._keep_alive_task.cancel()
        self._keep_alive_task = None

    async def close(self) -> None:
        """Stop renewing and invalidate the key on the server."""
        self.release()
        listen_key, self._listen_key = self._listen_key, None
        if listen_key is None:
            return
        await self._executor.execute(
            RequestDescriptor(
                USER_DATA_STREAM_PATH,
                params={"listenKey": listen_key},
                security=SecurityType.API_KEY,
                method="DELETE",
            )
        )
        logger.info(f"[{self._name}] User data stream closed")

    async def keep_alive(self, listen_key: str) -> None:
        """Renew `listen_key` once."""
        await self._executor.execute(
            RequestDescriptor(
                USER_DATA_STREAM_PATH,
                params={"listenKey": listen_key},
                security=SecurityType.API_KEY,
                method="PUT",
            )
        )

    async def _keep_alive_loop(self, listen_key: str) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval_s)
                if self._released or listen_key != self._listen_key:
                    return
                try:
                    await self.keep_alive(listen_key)
                    self.renewals += 1
                    logger.debug(f"[{self._name}] Listen key renewed")
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self.renewal_failures += 1
                    logger.error(f"[{self._name}] Failed renewing listen key: {e}")
                    await self._report(e, listen_key)
        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Keep-alive cancelled")

    async def _report(self, error: Exception, listen_key: str) -> None:
        if self._on_error is None:
            return
        wrapped = KeepAliveError(
            f"Failed requesting keep-alive for user data stream: {error}",
            listen_key=listen_key,
            component="ListenKeySession",
        )
        wrapped.__cause__ = error
        try:
            await self._on_error(wrapped)
        except Exception as cb_err:
            logger.warning(f"[{self._name}] Error callback failed: {cb_err}")
