"""
Helpers for inspecting response payloads and client errors.
"""
from typing import Any, Optional

from .errors import ApiError, ClientError, NetworkError, RateLimitedError, ServerError


def is_success(payload: Any) -> bool:
    """True when the payload envelope reports ``success: true``."""
    return isinstance(payload, dict) and payload.get("success") is True


def get_data(payload: Any) -> Any:
    if isinstance(payload, dict):
        return payload.get("data")
    return None


def get_error(payload: Any) -> Optional[str]:
    """The envelope's ``error`` field, falling back to ``message``."""
    if not isinstance(payload, dict):
        return None
    return payload.get("error") or payload.get("message")


def is_status_ok(status: int) -> bool:
    return 200 <= status < 300


def is_network_error(error: BaseException) -> bool:
    return isinstance(error, NetworkError)


def is_server_error(error: BaseException) -> bool:
    if isinstance(error, ServerError):
        return True
    return isinstance(error, ApiError) and error.status is not None and error.status >= 500


def is_client_error(error: BaseException) -> bool:
    if isinstance(error, (ClientError, RateLimitedError)):
        return True
    return (
        isinstance(error, ApiError)
        and error.status is not None
        and 400 <= error.status < 500
    )
