"""
Type definitions for construction_client.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, TypedDict, Union


# HTTP methods
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

QueryValue = Union[str, int, float, bool, None]


@dataclass
class RequestDescriptor:
    """One logical call handed to the dispatcher.

    Everything except ``retry_count``, ``auth_retried`` and ``cancelled`` is
    treated as immutable once dispatched.
    """

    method: HttpMethod
    path: str
    query: Optional[Dict[str, QueryValue]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None
    """JSON-serializable request body."""

    content: Optional[Union[str, bytes]] = None
    """Raw request body, sent as-is."""

    files: Optional[Dict[str, Any]] = None
    """Multipart files, in httpx ``files=`` form."""

    dedupe_key: Union[str, Literal[False], None] = None
    """Explicit POST dedup key. ``False`` disables POST dedup."""

    rate_key: Optional[str] = None
    rate_limit_ms: Optional[float] = None
    timeout_ms: Optional[float] = None
    response_type: Literal["json", "bytes"] = "json"
    on_progress: Optional[Callable[[int, int], None]] = None
    """Upload progress callback, called with (bytes_sent, total_bytes)."""

    retry_count: int = 0
    auth_retried: bool = False
    cancelled: bool = False

    _cancel_event: asyncio.Event = field(
        default_factory=asyncio.Event, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.method = self.method.upper()  # type: ignore[assignment]

    def cancel(self) -> None:
        """Abort the call. Safe to call more than once."""
        self.cancelled = True
        self._cancel_event.set()

    async def wait_cancelled(self) -> None:
        """Suspend until ``cancel()`` is called."""
        await self._cancel_event.wait()


class FetchResponse(TypedDict):
    """Response from the dispatcher."""

    status: int
    status_text: str
    headers: Dict[str, str]
    data: Any
    ok: bool
    request_id: str
    cached: bool


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair. Replaced wholesale, never patched."""

    access_token: str
    refresh_token: Optional[str] = None


@dataclass
class CacheEntry:
    """Last known ETag and payload for a canonical GET signature."""

    etag: str
    data: Any


@dataclass
class InFlightEntry:
    """Pending result shared by every caller that hits the same key."""

    key: str
    future: "asyncio.Future[FetchResponse]"
    subscribers: int = 1
    started_at: float = 0.0


@dataclass
class RefreshState:
    """Single-flight state of the token refresh."""

    in_progress: bool = False
    waiters: List["asyncio.Future[Optional[str]]"] = field(default_factory=list)


@dataclass
class RateLimitRecord:
    """Last time a throttle key let a call through (monotonic seconds)."""

    key: str
    last_invoked_at: float


class NotificationKind(str, Enum):
    """Closed set of events published on the notification bus."""

    SLOW_REQUEST = "slow-request"
    SERVER_ERROR = "server-error"
    AUTH_REDIRECT = "auth-redirect"


@dataclass
class Notification:
    """Notification bus event."""

    kind: NotificationKind
    message: str
    code: Optional[Union[str, int]] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0


NotificationListener = Callable[[Notification], None]
"""Notification listener type."""
