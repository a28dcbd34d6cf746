"""Wire payload models for the few responses the client itself interprets."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

# Provider code for "Timestamp for this request is outside of the recvWindow."
CLOCK_SKEW_CODE = -1021


class ServerTime(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    serverTime: int


class ApiErrorPayload(BaseModel):
    """Error body returned with non-2xx statuses: {"code": -1021, "msg": "..."}."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    code: int
    msg: str = ""

    @property
    def is_clock_skew(self) -> bool:
        return self.code == CLOCK_SKEW_CODE


class ListenKey(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    listenKey: str


def parse_error_payload(payload: Any) -> Optional[ApiErrorPayload]:
    """Return the provider error payload, or None when the body is not one."""
    if not isinstance(payload, dict):
        return None
    try:
        return ApiErrorPayload.model_validate(payload)
    except ValidationError:
        return None
