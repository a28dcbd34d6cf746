"""HMAC-SHA256 request signing."""

from __future__ import annotations

import hashlib
import hmac
from typing import Any
from urllib.parse import urlencode


def _query_value(value: Any) -> Any:
    # The API expects lowercase booleans ("true"), Python would send "True"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(v) for v in value]
    return value


def encode_query(params: dict[str, Any]) -> str:
    """Serialize params in insertion order; the result is what gets signed and sent."""
    return urlencode(
        [(key, _query_value(value)) for key, value in params.items() if value is not None],
        doseq=True,
    )


class Signer:
    """
    Computes the request signature over a byte-exact query string.

    Stateless apart from the secret; the same (secret, query) always yields the
    same lowercase hex digest.
    """

    def __init__(self, secret: str) -> None:
        if not isinstance(secret, str):
            raise TypeError("secret must be a str")
        self._key = secret.encode("utf-8")

    def sign(self, query_string: str) -> str:
        if not isinstance(query_string, str):
            raise TypeError("query_string must be a str")
        return hmac.new(self._key, query_string.encode("utf-8"), hashlib.sha256).hexdigest()

    def __repr__(self) -> str:
        return "Signer(secret=***)"
