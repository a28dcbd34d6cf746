"""REST side: configuration, signing, drift estimation and request execution."""

from binance_client.rest.client import BinanceRest, ResponseShaper
from binance_client.rest.config import (
    API_KEY_HEADER,
    BINANCE_REST_ENDPOINTS,
    Credentials,
    RestConfig,
    Venue,
)
from binance_client.rest.drift import DriftEstimator, DriftState
from binance_client.rest.executor import (
    PreparedRequest,
    RequestDescriptor,
    RequestExecutor,
    SecurityType,
)
from binance_client.rest.signer import Signer, encode_query

__all__ = [
    "BinanceRest",
    "ResponseShaper",
    "RequestExecutor",
    "RequestDescriptor",
    "PreparedRequest",
    "SecurityType",
    "Signer",
    "encode_query",
    "DriftEstimator",
    "DriftState",
    "RestConfig",
    "Credentials",
    "Venue",
    "API_KEY_HEADER",
    "BINANCE_REST_ENDPOINTS",
]
