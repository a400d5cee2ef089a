"""
Configuration for construction_client.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger("construction_client.config")

DEFAULT_BASE_URL = "http://localhost:3016"
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_MS = 1000
DEFAULT_BACKOFF_CAP_MS = 5000
DEFAULT_SLOW_REQUEST_THRESHOLD_MS = 3000
DEFAULT_REFRESH_PATH = "/api/auth/refresh"
DEFAULT_CONTENT_TYPE = "application/json"


def _default_headers() -> Dict[str, str]:
    return {"Content-Type": DEFAULT_CONTENT_TYPE}


@dataclass
class ClientConfig:
    """Client configuration. Durations are in milliseconds."""

    base_url: str = DEFAULT_BASE_URL
    timeout_ms: float = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base_ms: float = DEFAULT_BACKOFF_BASE_MS
    backoff_cap_ms: float = DEFAULT_BACKOFF_CAP_MS
    slow_request_threshold_ms: float = DEFAULT_SLOW_REQUEST_THRESHOLD_MS
    refresh_path: str = DEFAULT_REFRESH_PATH
    headers: Dict[str, str] = field(default_factory=_default_headers)
    verify_ssl: Optional[bool] = None
    debug: bool = False


class DefaultSerializer:
    """Default JSON serializer."""

    def serialize(self, data: Any) -> str:
        """Serialize data to JSON string."""
        return json.dumps(data)

    def serialize_stable(self, data: Any) -> str:
        """Serialize with sorted keys so equal bodies produce equal strings."""
        return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)

    def deserialize(self, text: str) -> Any:
        """Deserialize JSON string to data."""
        return json.loads(text)


default_serializer = DefaultSerializer()


@dataclass
class ResolvedConfig:
    """Resolved client configuration. Durations are in seconds."""

    base_url: str
    timeout: float
    max_retries: int
    backoff_base: float
    backoff_cap: float
    slow_request_threshold: float
    refresh_path: str
    headers: Dict[str, str]
    verify_ssl: bool
    debug: bool
    serializer: DefaultSerializer


def is_ssl_verify_disabled_by_env() -> bool:
    """
    Check if SSL verification is disabled via environment variables.

    Returns True if any of these are set:
    - NODE_TLS_REJECT_UNAUTHORIZED=0
    - SSL_CERT_VERIFY=0
    """
    node_tls = os.environ.get("NODE_TLS_REJECT_UNAUTHORIZED", "")
    ssl_cert_verify = os.environ.get("SSL_CERT_VERIFY", "")
    return node_tls == "0" or ssl_cert_verify == "0"


def validate_config(config: ClientConfig) -> None:
    """Validate client configuration."""
    if not config.base_url:
        raise ValueError("base_url is required")

    parsed = urlparse(config.base_url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid base_url: {config.base_url}")

    if config.timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive")
    if config.max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    if config.backoff_base_ms < 0:
        raise ValueError("backoff_base_ms must be >= 0")
    if config.backoff_cap_ms < config.backoff_base_ms:
        raise ValueError("backoff_cap_ms must be >= backoff_base_ms")
    if config.slow_request_threshold_ms <= 0:
        raise ValueError("slow_request_threshold_ms must be positive")
    if not config.refresh_path.startswith("/"):
        raise ValueError(f"refresh_path must start with '/': {config.refresh_path}")


def resolve_config(config: Optional[ClientConfig] = None) -> ResolvedConfig:
    """Resolve client configuration with defaults."""
    config = config or ClientConfig()
    validate_config(config)

    verify_ssl = config.verify_ssl
    if verify_ssl is None:
        verify_ssl = not is_ssl_verify_disabled_by_env()

    return ResolvedConfig(
        base_url=config.base_url.rstrip("/"),
        timeout=config.timeout_ms / 1000.0,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base_ms / 1000.0,
        backoff_cap=config.backoff_cap_ms / 1000.0,
        slow_request_threshold=config.slow_request_threshold_ms / 1000.0,
        refresh_path=config.refresh_path,
        headers=dict(config.headers),
        verify_ssl=verify_ssl,
        debug=config.debug,
        serializer=default_serializer,
    )


def _env_number(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


def load_config_from_env(**overrides: Any) -> ClientConfig:
    """Build a ClientConfig from CONSTRUCTION_API_* environment variables.

    Keyword overrides win over the environment.
    """
    values: Dict[str, Any] = {
        "base_url": os.environ.get("CONSTRUCTION_API_URL") or DEFAULT_BASE_URL,
        "timeout_ms": _env_number("CONSTRUCTION_API_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        "max_retries": int(_env_number("CONSTRUCTION_API_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
        "slow_request_threshold_ms": _env_number(
            "CONSTRUCTION_API_SLOW_MS", DEFAULT_SLOW_REQUEST_THRESHOLD_MS
        ),
    }
    values.update(overrides)
    return ClientConfig(**values)
