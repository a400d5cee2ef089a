"""
Classified errors raised by the dispatcher.
"""
from typing import Any, Optional, Type


class ApiError(Exception):
    """Base exception for every failure surfaced by the client."""

    code = "ERR_API"
    default_message = "Unknown error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        request_id: Optional[str] = None,
        data: Any = None,
    ):
        self.status = status
        self.request_id = request_id
        self.data = data
        super().__init__(message or extract_error_message(data) or self.default_message)


class NetworkError(ApiError):
    """No response was received."""

    code = "ERR_NETWORK"
    default_message = "Network error - check the connection"


class ServerError(ApiError):
    """The server answered with a 5xx status."""

    code = "ERR_SERVER"
    default_message = "Server error"


class ClientError(ApiError):
    """The server answered with a non-auth 4xx, or a 3xx other than 304."""

    code = "ERR_CLIENT"
    default_message = "Request rejected"


class AuthError(ApiError):
    """A 401 that could not be resolved by refreshing the access token."""

    code = "ERR_AUTH"
    default_message = "Authentication required"


class RateLimitedError(ApiError):
    """Rejected by the client-side throttle. No network call was made."""

    code = "ERR_RATE_LIMITED"

    def __init__(self, key: str, retry_in_ms: float):
        self.key = key
        self.retry_in_ms = retry_in_ms
        super().__init__(f"Rate limited, retry in {int(retry_in_ms)}ms")


class RequestCancelledError(ApiError):
    """The caller cancelled the request before it settled."""

    code = "ERR_CANCELED"
    default_message = "Request cancelled"


def extract_error_message(data: Any) -> Optional[str]:
    """Pull a human readable message out of an error payload."""
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def classify_status(status: int) -> Type[ApiError]:
    """Map an HTTP status onto the error taxonomy."""
    if status == 401:
        return AuthError
    if status >= 500:
        return ServerError
    return ClientError
