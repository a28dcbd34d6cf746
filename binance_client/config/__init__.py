from binance_client.config.loader import ClientSettings, ConfigLoader
from binance_client.config.secrets import (
    EnvSecretsProvider,
    MissingSecretError,
    SecretsProvider,
    load_credentials,
)

__all__ = [
    "ConfigLoader",
    "ClientSettings",
    "SecretsProvider",
    "EnvSecretsProvider",
    "MissingSecretError",
    "load_credentials",
]
