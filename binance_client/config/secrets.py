"""
API credentials from the environment.

    BINANCE_API_KEY=...  BINANCE_API_SECRET=...

    creds = load_credentials(EnvSecretsProvider())
    rest = BinanceRest(settings.rest_config(creds))
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Protocol

from binance_client.rest.config import Credentials

_LOGGER = logging.getLogger(__name__)

# logical secret name -> environment variable suffix
DEFAULT_SECRET_NAMES: dict[str, str] = {
    "api_key": "API_KEY",
    "api_secret": "API_SECRET",
}


class SecretsProvider(Protocol):
    def get(self, secret_name: str) -> str: ...


class MissingSecretError(ValueError):
    """
    Raised when a logical secret is unknown or has no value.
    """

    def __init__(self, secret_name: str, env_var: str | None = None) -> None:
        super().__init__(secret_name)
        self.secret_name = secret_name
        self.env_var = env_var

    def __str__(self) -> str:
        if self.env_var:
            return f"Secret '{self.secret_name}' is unavailable (set {self.env_var})"
        return f"Secret '{self.secret_name}' is unavailable"


class EnvSecretsProvider(SecretsProvider):
    def __init__(
        self,
        prefix: str = "BINANCE_",
        allowed: dict[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """
        Resolve secrets from `<prefix><suffix>` environment variables.

        Only names in the allowlist can be resolved; `allowed` extends or
        overrides the default api_key/api_secret mapping. `environ` defaults to
        os.environ and is read on every lookup.
        """
        if not prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._prefix = prefix
        self._allowed = {**DEFAULT_SECRET_NAMES, **(allowed or {})}
        self._environ = environ

    def env_var(self, secret_name: str) -> str:
        """Environment variable backing `secret_name`."""
        if secret_name not in self._allowed:
            raise MissingSecretError(secret_name)
        return f"{self._prefix}{self._allowed[secret_name]}"

    def get(self, secret_name: str) -> str:
        env_var = self.env_var(secret_name)
        environ = os.environ if self._environ is None else self._environ
        value = environ.get(env_var)
        if not value:
            raise MissingSecretError(secret_name, env_var)

        # Never log the value
        _LOGGER.debug(
            "secret_resolved",
            extra={
                "event": "secret_resolved",
                "secret_name": secret_name,
                "env_var": env_var,
                "source": "env",
            },
        )
        return value


def load_credentials(provider: SecretsProvider) -> Credentials:
    """Build Credentials from the `api_key` and `api_secret` secrets."""
    return Credentials(
        api_key=provider.get("api_key"),
        api_secret=provider.get("api_secret"),
    )
