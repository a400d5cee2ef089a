"""
ApiClient: one explicit, constructible owner of every piece of client state.

Token store, ETag cache, in-flight registry, rate-limit records and refresh
state are fields of the instance, never module globals, so independent
clients (and tests) can run side by side.
"""
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

import httpx

from .auth.refresh import RefreshCoordinator, extract_token_pair
from .auth.token_store import TokenStore
from .cache.etag import EtagCache
from .cache.inflight import InFlightRegistry
from .config import ClientConfig, resolve_config
from .core.dispatcher import Clock, RequestDispatcher
from .core.request_builder import build_url
from .notifications import NotificationBus
from .rate_limit import RateLimiter
from .retry import RetryPolicy, Sleep
from .types import (
    FetchResponse,
    HttpMethod,
    NotificationListener,
    QueryValue,
    RequestDescriptor,
    TokenPair,
)

logger = logging.getLogger("construction_client.client")


class ApiClient:
    """Asynchronous construction-API client.

    Example:
        async with ApiClient(ClientConfig(base_url="https://api.example.com")) as client:
            client.subscribe(lambda event: print(event.kind, event.message))
            response = await client.get("/api/projects/42")
            print(response["data"])
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        tokens: Optional[TokenPair] = None,
        bus: Optional[NotificationBus] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._config = resolve_config(config)
        self._owns_http = http_client is None
        if http_client is not None:
            self._http = http_client
        else:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout),
                verify=self._config.verify_ssl,
            )

        self.bus = bus or NotificationBus()
        self.token_store = TokenStore(tokens)
        self.etag_cache = EtagCache()
        self.inflight = InFlightRegistry()
        self.rate_limiter = RateLimiter(clock)
        self.retry_policy = RetryPolicy(
            max_retries=self._config.max_retries,
            base_delay_seconds=self._config.backoff_base,
            max_delay_seconds=self._config.backoff_cap,
            sleep=sleep,
        )
        self.coordinator = RefreshCoordinator(self.token_store, self._refresh_tokens, self.bus)
        self._dispatcher = RequestDispatcher(
            self._config,
            self._http,
            token_store=self.token_store,
            coordinator=self.coordinator,
            etag_cache=self.etag_cache,
            inflight=self.inflight,
            rate_limiter=self.rate_limiter,
            retry_policy=self.retry_policy,
            bus=self.bus,
            clock=clock,
        )
        self._closed = False

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher

    # === session ===

    @property
    def tokens(self) -> Optional[TokenPair]:
        return self.token_store.get()

    def set_tokens(self, tokens: TokenPair) -> None:
        self.coordinator.install(tokens)

    def clear_tokens(self) -> None:
        self.coordinator.clear()

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Listen for slow-request, server-error and auth-redirect events."""
        return self.bus.subscribe(listener)

    async def _refresh_tokens(self, refresh_token: Optional[str]) -> Optional[TokenPair]:
        """The raw refresh call. Bypasses the dispatcher so it never re-enters refresh."""
        url = build_url(self._config.base_url, self._config.refresh_path)
        body = {"refreshToken": refresh_token} if refresh_token else {}
        response = await self._http.post(
            url,
            content=self._config.serializer.serialize(body),
            headers=dict(self._config.headers),
            timeout=self._config.timeout,
        )
        if not response.is_success:
            logger.warning(f"Token refresh rejected with HTTP {response.status_code}")
            return None
        try:
            data = self._config.serializer.deserialize(response.text)
        except ValueError:
            logger.warning("Token refresh response is not JSON")
            return None
        return extract_token_pair(data, response.headers, refresh_token)

    # === requests ===

    def descriptor(
        self,
        method: HttpMethod,
        path: str,
        *,
        query: Optional[Mapping[str, QueryValue]] = None,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Any] = None,
        content: Optional[Union[str, bytes]] = None,
        files: Optional[Dict[str, Any]] = None,
        dedupe_key: Union[str, bool, None] = None,
        rate_key: Optional[str] = None,
        rate_limit_ms: Optional[float] = None,
        timeout_ms: Optional[float] = None,
        response_type: str = "json",
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> RequestDescriptor:
        """Build a descriptor; keep it to ``cancel()`` the call later."""
        return RequestDescriptor(
            method=method,
            path=path,
            query=dict(query) if query else None,
            headers=dict(headers or {}),
            body=json,
            content=content,
            files=files,
            dedupe_key=dedupe_key,  # type: ignore[arg-type]
            rate_key=rate_key,
            rate_limit_ms=rate_limit_ms,
            timeout_ms=timeout_ms,
            response_type=response_type,  # type: ignore[arg-type]
            on_progress=on_progress,
        )

    async def dispatch(self, descriptor: RequestDescriptor) -> FetchResponse:
        if self._closed:
            raise RuntimeError("Client has been closed")
        return await self._dispatcher.dispatch(descriptor)

    async def request(self, method: HttpMethod, path: str, **kwargs: Any) -> FetchResponse:
        """Make a generic HTTP request."""
        return await self.dispatch(self.descriptor(method, path, **kwargs))

    async def get(self, path: str, **kwargs: Any) -> FetchResponse:
        """GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> FetchResponse:
        """POST request."""
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> FetchResponse:
        """PUT request."""
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> FetchResponse:
        """PATCH request."""
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> FetchResponse:
        """DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    async def upload(
        self,
        path: str,
        file_name: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        fields: Optional[Dict[str, str]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> FetchResponse:
        """
        Multipart upload of a single file under the ``file`` field.

        Args:
            on_progress: Called with (bytes_sent, total_bytes) as the encoded
                body is streamed to the transport
        """
        return await self.request(
            "POST",
            path,
            files={"file": (file_name, content, content_type)},
            json=fields,
            on_progress=on_progress,
        )

    async def download(self, path: str, **kwargs: Any) -> bytes:
        """GET a binary payload."""
        response = await self.request("GET", path, response_type="bytes", **kwargs)
        return response["data"] or b""

    # === lifecycle ===

    async def close(self) -> None:
        """Close the client."""
        if self._closed:
            return
        self._closed = True
        await self.coordinator.close()
        self.inflight.clear()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_client(
    config: Optional[ClientConfig] = None,
    **kwargs: Any,
) -> ApiClient:
    """Create an ApiClient."""
    return ApiClient(config, **kwargs)
