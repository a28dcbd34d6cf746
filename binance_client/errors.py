"""
Custom exceptions for the Binance client.

Exception hierarchy:
- BinanceClientError (base)
  - ConfigurationError: Invalid configuration
  - RequestError: HTTP call answered with a non-2xx status
    - ClockSkewError: Timestamp outside recvWindow (-1021) after the single retry
    - TransportError: Connection failure or timeout before any response
  - ConnectionError: WebSocket could not be (re)established
  - SubscriptionError: Invalid stream specification
  - KeepAliveError: Listen key renewal failed
"""

from __future__ import annotations

from typing import Any, Optional


class BinanceClientError(Exception):
    """Base exception for all client errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConfigurationError(BinanceClientError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class RequestError(BinanceClientError):
    """
    Raised when a REST call fails.

    Carries the HTTP status (None for transport failures), the parsed payload
    (dict/list when the body was JSON, raw text otherwise) and the provider
    error code when the payload had one.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        payload: Any = None,
        code: Optional[int] = None,
        path: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status = status
        self.payload = payload
        self.code = code
        self.path = path
        details = details or {}
        if status is not None:
            details["status"] = status
        if code is not None:
            details["code"] = code
        if path:
            details["path"] = path
        super().__init__(message, component=component, details=details)


class ClockSkewError(RequestError):
    """Raised when the server keeps rejecting the request timestamp."""


class TransportError(RequestError):
    """Raised when the request never produced an HTTP response."""


class ConnectionError(BinanceClientError):
    """Raised when a WebSocket connection cannot be established."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        reconnect_attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.reconnect_attempt = reconnect_attempt
        details = details or {}
        if url:
            details["url"] = url
        details["reconnect_attempt"] = reconnect_attempt
        super().__init__(message, component=component, details=details)


class SubscriptionError(BinanceClientError):
    """Raised when a stream subscription is invalid."""

    def __init__(
        self,
        message: str,
        *,
        stream: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.stream = stream
        details = details or {}
        if stream:
            details["stream"] = stream
        super().__init__(message, component=component, details=details)


class KeepAliveError(BinanceClientError):
    """Raised (and reported, never propagated) when a listen key renewal fails."""

    def __init__(
        self,
        message: str,
        *,
        listen_key: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.listen_key = listen_key
        # Don't include the key itself in details, it identifies the account session
        super().__init__(message, component=component, details=details)
