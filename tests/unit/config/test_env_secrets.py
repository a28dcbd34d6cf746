import logging

import pytest

from binance_client.config.secrets import EnvSecretsProvider, MissingSecretError, load_credentials


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    # Keep test logging deterministic and avoid leaking handlers between tests.
    logging.getLogger("binance_client.config.secrets").handlers = []


@pytest.fixture(autouse=True)
def clear_binance_env(monkeypatch):
    monkeypatch.delenv("BINANCE_API_KEY", raising=False)
    monkeypatch.delenv("BINANCE_API_SECRET", raising=False)


def test_get_returns_env_value(monkeypatch):
    monkeypatch.setenv("BINANCE_API_KEY", "key-123")

    provider = EnvSecretsProvider()

    assert provider.get("api_key") == "key-123"


def test_missing_secret_raises_for_unknown_name():
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError) as exc:
        provider.get("nonexistent")

    assert "nonexistent" in str(exc.value)


def test_missing_secret_raises_when_env_absent():
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError) as exc:
        provider.get("api_secret")

    assert "api_secret" in str(exc.value)


def test_empty_value_is_missing(monkeypatch):
    monkeypatch.setenv("BINANCE_API_SECRET", "")

    with pytest.raises(MissingSecretError):
        EnvSecretsProvider().get("api_secret")


def test_custom_prefix_and_allowlist(monkeypatch):
    monkeypatch.setenv("TESTNET_SECRET", "s-1")
    provider = EnvSecretsProvider(prefix="TESTNET_", allowed={"api_secret": "SECRET"})

    assert provider.get("api_secret") == "s-1"


def test_empty_prefix_rejected():
    with pytest.raises(ValueError):
        EnvSecretsProvider(prefix="")


def test_secret_value_not_logged(monkeypatch, caplog):
    monkeypatch.setenv("BINANCE_API_SECRET", "very-secret")
    caplog.set_level(logging.DEBUG, logger="binance_client.config.secrets")

    EnvSecretsProvider().get("api_secret")

    assert any(getattr(r, "event", None) == "secret_resolved" for r in caplog.records)
    assert "very-secret" not in caplog.text


def test_load_credentials(monkeypatch):
    monkeypatch.setenv("BINANCE_API_KEY", "key-123")
    monkeypatch.setenv("BINANCE_API_SECRET", "secret-456")

    creds = load_credentials(EnvSecretsProvider())

    assert creds.api_key == "key-123"
    assert creds.api_secret == "secret-456"
    assert "secret-456" not in repr(creds)


def test_explicit_environ_mapping():
    provider = EnvSecretsProvider(environ={"BINANCE_API_KEY": "from-mapping"})

    assert provider.get("api_key") == "from-mapping"
    with pytest.raises(MissingSecretError) as exc:
        provider.get("api_secret")
    assert "BINANCE_API_SECRET" in str(exc.value)
