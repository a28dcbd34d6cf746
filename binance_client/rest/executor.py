"""
Authenticated request execution.

RequestExecutor turns a RequestDescriptor into one HTTP call:
- stamps SIGNED requests with a drift-corrected timestamp (and recvWindow)
- signs the exact query string that is sent
- attaches the API key header for API-KEY and SIGNED requests
- decodes the body as JSON, falling back to the raw text
- on HTTP 400 with code -1021 (timestamp outside recvWindow), recalibrates
  the drift once and re-sends the request once with a fresh timestamp
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import aiohttp
from pydantic import ValidationError
from yarl import URL

from binance_client.clock import Clock, Millis
from binance_client.codec import decode_json
from binance_client.errors import (
    ClockSkewError,
    ConfigurationError,
    RequestError,
    TransportError,
)
from binance_client.models import ServerTime, parse_error_payload
from binance_client.rest.config import API_KEY_HEADER, RestConfig
from binance_client.rest.drift import DriftEstimator
from binance_client.rest.signer import Signer, encode_query

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")
SERVER_TIME_PATH = "api/v3/time"

# The clock-skew retry is attempted at most once per request
MAX_ATTEMPTS = 2


class SecurityType(str, Enum):
    """Authentication mode of an endpoint."""

    NONE = "NONE"
    API_KEY = "API-KEY"
    SIGNED = "SIGNED"


@dataclass(frozen=True)
class RequestDescriptor:
    """One call to make: route, method, ordered query params and auth mode."""

    path: str
    params: dict[str, Any] = field(default_factory=dict)
    security: SecurityType = SecurityType.NONE
    method: str = "GET"

    def __post_init__(self) -> None:
        method = self.method.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {self.method}")
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "path", self.path.lstrip("/"))
        # Own copy, so later changes by the caller never alter what gets signed
        object.__setattr__(self, "params", dict(self.params))

    @property
    def route_type(self) -> str:
        """Last path segment, e.g. "order" for "api/v3/order"."""
        return self.path.rstrip("/").split("/")[-1]

    def with_params(self, **updates: Any) -> "RequestDescriptor":
        """Copy with params updated in place (existing keys keep their position)."""
        params = dict(self.params)
        params.update(updates)
        return RequestDescriptor(
            path=self.path,
            params=params,
            security=self.security,
            method=self.method,
        )


@dataclass(frozen=True)
class PreparedRequest:
    """Final request as it goes on the wire."""

    method: str
    url: str
    query_string: str
    headers: dict[str, str]
    signature: Optional[str] = None


class RequestExecutor:
    """
    Issues single REST calls with signing and clock-skew recovery.

    Usage:
        executor = RequestExecutor(RestConfig(credentials=creds, handle_drift=True))
        payload = await executor.execute(
            RequestDescriptor("api/v3/account", security=SecurityType.SIGNED)
        )
        await executor.close()

    The HTTP session is created lazily and owned by the executor unless one is
    passed in.
    """

    def __init__(
        self,
        config: RestConfig,
        *,
        drift: Optional[DriftEstimator] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
        name: str = "rest",
    ) -> None:
        self._config = config
        self._name = name
        self._session = session
        self._owns_session = session is None

        self._signer: Optional[Signer] = None
        if config.credentials is not None:
            self._signer = Signer(config.credentials.api_secret)

        self._drift = drift or DriftEstimator(clock=clock, name=f"{name}_drift")
        self._drift.bind(self.server_time)

        # Statistics
        self.requests_sent = 0
        self.clock_skew_retries = 0

    @property
    def config(self) -> RestConfig:
        return self._config

    @property
    def drift(self) -> DriftEstimator:
        return self._drift

    # --- Request building ---

    def prepare(self, descriptor: RequestDescriptor) -> PreparedRequest:
        """
        Build the final request for `descriptor`.

        The timestamp is taken from the drift state at this point, so a
        calibration that finished before dispatch is always honored.
        """
        params = dict(descriptor.params)
        headers: dict[str, str] = {}
        signature: Optional[str] = None

        if descriptor.security in (SecurityType.API_KEY, SecurityType.SIGNED):
            if self._config.credentials is None or self._signer is None:
                raise ConfigurationError(
                    f"{descriptor.security.value} endpoint requires credentials",
                    field="credentials",
                    component="RequestExecutor",
                )
            headers[API_KEY_HEADER] = self._config.credentials.api_key

        if descriptor.security == SecurityType.SIGNED:
            if params.get("timestamp") is None:
                params["timestamp"] = self._drift.timestamp()
            if self._config.recv_window:
                params["recvWindow"] = self._config.recv_window
            query_string = encode_query(params)
            signature = self._signer.sign(query_string)
            full_query = f"{query_string}&signature={signature}"
        else:
            query_string = encode_query(params)
            full_query = query_string

        url = f"{self._config.base_url}{descriptor.path}?{full_query}"
        return PreparedRequest(
            method=descriptor.method,
            url=url,
            query_string=query_string,
            headers=headers,
            signature=signature,
        )

    # --- Execution ---

    async def execute(self, descriptor: RequestDescriptor) -> Any:
        """
        Execute `descriptor` and return the decoded payload unmodified.

        Raises:
            TransportError: Connection failure or timeout
            ClockSkewError: -1021 persisted after the single retry (or drift handling is off)
            RequestError: Any other non-2xx status
        """
        attempt = 0
        while True:
            prepared = self.prepare(descriptor)
            status, payload = await self._dispatch(prepared, descriptor.path)

            if 200 <= status <= 299:
                return payload

            error = parse_error_payload(payload)
            code = error.code if error else None

            if status == 400 and error is not None and error.is_clock_skew:
                if self._config.handle_drift and attempt + 1 < MAX_ATTEMPTS:
                    logger.warning(
                        f"[{self._name}] Timestamp rejected on {descriptor.path} "
                        f"(drift={self._drift.drift_ms}ms), recalibrating and retrying once"
                    )
                    self.clock_skew_retries += 1
                    await self._drift.calibrate()
                    descriptor = descriptor.with_params(timestamp=self._drift.timestamp())
                    attempt += 1
                    continue

                raise ClockSkewError(
                    f"Response code {status}",
                    status=status,
                    payload=payload,
                    code=code,
                    path=descriptor.path,
                    component="RequestExecutor",
                    details={"attempt": attempt + 1},
                )

            raise RequestError(
                f"Response code {status}",
                status=status,
                payload=payload,
                code=code,
                path=descriptor.path,
                component="RequestExecutor",
            )

    async def _dispatch(self, prepared: PreparedRequest, path: str) -> tuple[int, Any]:
        """Send one request and return (status, decoded payload)."""
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
        self.requests_sent += 1
        logger.debug(f"[{self._name}] {prepared.method} {path}")

        try:
            # encoded=True: send the query string byte-for-byte as signed
            async with session.request(
                prepared.method,
                URL(prepared.url, encoded=True),
                headers=prepared.headers,
                timeout=timeout,
            ) as response:
                body = await response.text()
                return response.status, decode_json(body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Request failed: {type(e).__name__}: {e}",
                path=path,
                component="RequestExecutor",
            ) from e

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    # --- Helpers ---

    async def server_time(self) -> Millis:
        """Fetch the server time (unauthenticated)."""
        payload = await self.execute(RequestDescriptor(SERVER_TIME_PATH))
        try:
            return ServerTime.model_validate(payload).serverTime
        except ValidationError as e:
            raise RequestError(
                "Malformed server time payload",
                payload=payload,
                path=SERVER_TIME_PATH,
                component="RequestExecutor",
            ) from e

    async def calibrate(self) -> int:
        """Recalculate the drift; see DriftEstimator.calibrate()."""
        return await self._drift.calibrate()

    async def close(self) -> None:
        """Close the HTTP session if the executor owns it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
