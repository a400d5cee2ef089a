"""
Tests for config.py
Logic testing: Decision/Branch, Boundary Value
"""
import pytest

from construction_client.config import (
    DEFAULT_BASE_URL,
    ClientConfig,
    DefaultSerializer,
    is_ssl_verify_disabled_by_env,
    load_config_from_env,
    resolve_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CONSTRUCTION_API_URL",
        "CONSTRUCTION_API_TIMEOUT_MS",
        "CONSTRUCTION_API_MAX_RETRIES",
        "CONSTRUCTION_API_SLOW_MS",
        "SSL_CERT_VERIFY",
        "NODE_TLS_REJECT_UNAUTHORIZED",
    ):
        monkeypatch.delenv(name, raising=False)


class TestResolveConfig:
    def test_defaults_in_seconds(self):
        resolved = resolve_config()
        assert resolved.base_url == DEFAULT_BASE_URL
        assert resolved.timeout == 30.0
        assert resolved.max_retries == 3
        assert resolved.backoff_base == 1.0
        assert resolved.backoff_cap == 5.0
        assert resolved.slow_request_threshold == 3.0
        assert resolved.refresh_path == "/api/auth/refresh"
        assert resolved.headers == {"Content-Type": "application/json"}
        assert resolved.verify_ssl is True

    def test_trailing_slash_stripped(self):
        assert resolve_config(ClientConfig(base_url="https://api.example.com/")).base_url == "https://api.example.com"

    def test_headers_copied(self):
        config = ClientConfig(headers={"X-Tenant": "acme"})
        resolved = resolve_config(config)
        resolved.headers["X-Other"] = "1"
        assert "X-Other" not in config.headers

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"base_url": ""}, "base_url is required"),
            ({"base_url": "not-a-url"}, "Invalid base_url"),
            ({"timeout_ms": 0}, "timeout_ms"),
            ({"max_retries": -1}, "max_retries"),
            ({"backoff_base_ms": 2000, "backoff_cap_ms": 1000}, "backoff_cap_ms"),
            ({"slow_request_threshold_ms": 0}, "slow_request_threshold_ms"),
            ({"refresh_path": "api/auth/refresh"}, "refresh_path"),
        ],
    )
    def test_invalid_config(self, overrides, message):
        with pytest.raises(ValueError, match=message):
            resolve_config(ClientConfig(**overrides))

    def test_explicit_verify_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("SSL_CERT_VERIFY", "0")
        assert resolve_config(ClientConfig(verify_ssl=True)).verify_ssl is True


class TestSslEnv:
    @pytest.mark.parametrize("name", ["SSL_CERT_VERIFY", "NODE_TLS_REJECT_UNAUTHORIZED"])
    def test_disabled(self, monkeypatch, name):
        monkeypatch.setenv(name, "0")
        assert is_ssl_verify_disabled_by_env() is True
        assert resolve_config().verify_ssl is False

    def test_enabled_by_default(self):
        assert is_ssl_verify_disabled_by_env() is False


class TestLoadConfigFromEnv:
    def test_defaults(self):
        config = load_config_from_env()
        assert config.base_url == DEFAULT_BASE_URL
        assert config.timeout_ms == 30000

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CONSTRUCTION_API_URL", "https://build.example.com")
        monkeypatch.setenv("CONSTRUCTION_API_TIMEOUT_MS", "5000")
        monkeypatch.setenv("CONSTRUCTION_API_MAX_RETRIES", "1")
        monkeypatch.setenv("CONSTRUCTION_API_SLOW_MS", "1500")
        config = load_config_from_env()
        assert config.base_url == "https://build.example.com"
        assert config.timeout_ms == 5000
        assert config.max_retries == 1
        assert config.slow_request_threshold_ms == 1500

    def test_bad_number_falls_back(self, monkeypatch, caplog):
        monkeypatch.setenv("CONSTRUCTION_API_TIMEOUT_MS", "soon")
        assert load_config_from_env().timeout_ms == 30000
        assert "CONSTRUCTION_API_TIMEOUT_MS" in caplog.text

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("CONSTRUCTION_API_URL", "https://build.example.com")
        assert load_config_from_env(base_url="https://other.example.com").base_url == "https://other.example.com"


class TestDefaultSerializer:
    def test_stable_serialization_sorts_keys(self):
        serializer = DefaultSerializer()
        assert serializer.serialize_stable({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_round_trip(self):
        serializer = DefaultSerializer()
        assert serializer.deserialize(serializer.serialize({"a": [1, 2]})) == {"a": [1, 2]}
