"""JSON decoding shared by REST responses and stream frames."""

from __future__ import annotations

from typing import Any, Union

import orjson


def decode_json(raw: Union[str, bytes]) -> Any:
    """Decode a JSON document, degrading to the raw input when it is not valid JSON."""
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw
