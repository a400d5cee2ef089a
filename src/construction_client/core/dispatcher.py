"""
Request dispatcher: the orchestration core around one network call.

Stages, in order:

    rate-limit        reject calls made inside the throttle window
    dedup             attach to an identical in-flight call, or register one
    auth-attach       Authorization, X-Request-Id and If-None-Match headers
    send              the httpx call, racing caller cancellation
    cache-update      304 -> cached payload, 2xx + ETag -> cache entry
    refresh-on-401    single-flight token refresh, then one re-send
    retry-on-failure  bounded backoff for GET network/5xx/429 failures

Everything runs on one event loop. Registry and cache mutations happen
between suspension points, so check-then-insert needs no lock.
"""
import asyncio
import copy
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlsplit

import httpx

from .. import console
from ..auth.refresh import RefreshCoordinator
from ..auth.token_store import TokenStore
from ..cache.etag import EtagCache, extract_etag
from ..cache.inflight import InFlightRegistry
from ..config import ResolvedConfig
from ..errors import (
    ApiError,
    AuthError,
    NetworkError,
    RequestCancelledError,
    ServerError,
    classify_status,
)
from ..notifications import NotificationBus
from ..rate_limit import RateLimiter
from ..retry import RetryPolicy
from ..types import FetchResponse, NotificationKind, RequestDescriptor
from .request_builder import (
    RequestIdGenerator,
    UploadProgressStream,
    build_body,
    build_headers,
    build_url,
    canonical_signature,
    post_dedupe_key,
    rate_limit_key,
)

logger = logging.getLogger("construction_client.dispatcher")

Clock = Callable[[], float]


class RequestDispatcher:
    """Composes throttle, dedup, ETag cache, refresh and retry around httpx."""

    STAGES = (
        "rate-limit",
        "dedup",
        "auth-attach",
        "send",
        "cache-update",
        "refresh-on-401",
        "retry-on-failure",
    )

    def __init__(
        self,
        config: ResolvedConfig,
        http_client: httpx.AsyncClient,
        *,
        token_store: TokenStore,
        coordinator: RefreshCoordinator,
        etag_cache: EtagCache,
        inflight: InFlightRegistry,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy,
        bus: NotificationBus,
        clock: Optional[Clock] = None,
        request_ids: Optional[Callable[[], str]] = None,
    ) -> None:
        self._config = config
        self._http = http_client
        self._tokens = token_store
        self._coordinator = coordinator
        self._etag_cache = etag_cache
        self._inflight = inflight
        self._rate_limiter = rate_limiter
        self._retry = retry_policy
        self._bus = bus
        self._clock = clock or time.monotonic
        self._request_ids = request_ids or RequestIdGenerator()

    async def dispatch(self, descriptor: RequestDescriptor) -> FetchResponse:
        """
        Run one logical call through every stage.

        Returns:
            The response, shared with every caller deduplicated onto it

        Raises:
            RateLimitedError, NetworkError, ServerError, ClientError,
            AuthError, RequestCancelledError
        """
        if descriptor.cancelled:
            raise RequestCancelledError()
        descriptor.retry_count = 0
        descriptor.auth_retried = False

        url = build_url(self._config.base_url, descriptor.path, descriptor.query)
        self.check_rate_limit(descriptor, url)

        key = self.dedup_key(descriptor, url)
        if key is None:
            return await self._run(descriptor, url)

        existing = self._inflight.get(key)
        if existing is not None:
            self._inflight.join(existing)
            logger.debug(f"dispatch: {descriptor.method} {url} attached to in-flight call")
            return await self._guard(descriptor, asyncio.shield(existing.future))

        entry = self._inflight.register(key)
        try:
            response = await self._run(descriptor, url)
        except asyncio.CancelledError:
            self._inflight.settle(entry, error=RequestCancelledError())
            raise
        except Exception as error:
            self._inflight.settle(entry, error=error)
            raise
        self._inflight.settle(entry, response)
        return response

    # === rate-limit ===

    def check_rate_limit(self, descriptor: RequestDescriptor, url: str) -> None:
        window = descriptor.rate_limit_ms
        if window is None or window <= 0:
            return
        self._rate_limiter.check(rate_limit_key(descriptor, url), window)

    # === dedup ===

    def dedup_key(self, descriptor: RequestDescriptor, url: str) -> Optional[str]:
        """Registry key for GET and POST, None for methods that never dedup."""
        if descriptor.method == "GET":
            return self.cache_key(descriptor, url)
        if descriptor.method == "POST" and not descriptor.files:
            return post_dedupe_key(
                url, descriptor.body, descriptor.dedupe_key, self._config.serializer
            )
        return None

    def cache_key(self, descriptor: RequestDescriptor, url: str) -> str:
        """GET signature, suffixed with the response type for non-JSON payloads."""
        signature = canonical_signature("GET", url)
        if descriptor.response_type != "json":
            signature = f"{signature}#{descriptor.response_type}"
        return signature

    # === auth-attach ===

    def attach_headers(
        self,
        descriptor: RequestDescriptor,
        url: str,
        request_id: str,
        access_token: Optional[str] = None,
    ) -> Dict[str, str]:
        token = access_token or self._tokens.access_token
        conditional: Dict[str, str] = {}
        if descriptor.method == "GET":
            conditional = self._etag_cache.conditional_headers(self.cache_key(descriptor, url))
        return build_headers(
            self._config.headers,
            descriptor,
            request_id=request_id,
            access_token=token,
            conditional=conditional,
        )

    # === send ===

    async def _send(
        self,
        descriptor: RequestDescriptor,
        url: str,
        headers: Dict[str, str],
        request_id: str,
    ) -> httpx.Response:
        timeout = (
            descriptor.timeout_ms / 1000.0
            if descriptor.timeout_ms is not None
            else self._config.timeout
        )
        content = build_body(descriptor, self._config.serializer)
        extra: Dict[str, Any] = {}
        if descriptor.files:
            extra["files"] = descriptor.files
            if isinstance(descriptor.body, dict):
                extra["data"] = descriptor.body

        if self._config.debug:
            console.print_request(descriptor.method, url, headers, descriptor.body)

        request = self._http.build_request(
            descriptor.method,
            url,
            headers=headers,
            content=content,
            timeout=timeout,
            **extra,
        )
        if descriptor.on_progress is not None and descriptor.files:
            request.stream = UploadProgressStream(
                request.stream,
                int(request.headers.get("Content-Length", 0)),
                descriptor.on_progress,
            )

        started = self._clock()
        try:
            response = await self._guard(descriptor, self._http.send(request))
        except httpx.TimeoutException as error:
            raise NetworkError(
                f"Request timed out after {timeout}s", request_id=request_id
            ) from error
        except httpx.RequestError as error:
            raise NetworkError(str(error) or None, request_id=request_id) from error

        if self._config.debug:
            console.print_response(
                url,
                response.status_code,
                response.reason_phrase or "",
                (self._clock() - started) * 1000.0,
                response.content if descriptor.response_type == "bytes" else response.text,
            )
        return response

    def _parse(self, descriptor: RequestDescriptor, response: httpx.Response) -> Any:
        if descriptor.response_type == "bytes":
            return response.content
        if not response.content:
            return None
        try:
            return self._config.serializer.deserialize(response.text)
        except ValueError:
            return response.text

    # === cache-update ===

    def update_cache(
        self,
        descriptor: RequestDescriptor,
        url: str,
        response: httpx.Response,
        request_id: str,
    ) -> FetchResponse:
        """Turn a 304 or 2xx httpx response into the caller's result."""
        key = self.cache_key(descriptor, url) if descriptor.method == "GET" else None

        if response.status_code == 304:
            entry = self._etag_cache.get(key) if key else None
            if entry is None:
                logger.warning(f"update_cache: 304 for {url} without a cached payload")
            return FetchResponse(
                status=304,
                status_text=response.reason_phrase or "Not Modified",
                headers=dict(response.headers),
                data=copy.deepcopy(entry.data) if entry else None,
                ok=True,
                request_id=request_id,
                cached=entry is not None,
            )

        data = self._parse(descriptor, response)
        etag = extract_etag(response.headers)
        if key and etag:
            self._etag_cache.set(key, etag, copy.deepcopy(data))

        return FetchResponse(
            status=response.status_code,
            status_text=response.reason_phrase or "",
            headers=dict(response.headers),
            data=data,
            ok=True,
            request_id=request_id,
            cached=False,
        )

    # === refresh-on-401 ===

    def _is_refresh_url(self, url: str) -> bool:
        return self._config.refresh_path in urlsplit(url).path

    def _redirect_to_login(self, url: str, reason: str) -> None:
        self._coordinator.clear()
        self._bus.emit(
            NotificationKind.AUTH_REDIRECT,
            "Session expired, please sign in again",
            code=401,
            context={"url": url, "reason": reason},
        )

    async def _handle_unauthorized(
        self,
        descriptor: RequestDescriptor,
        url: str,
        error: AuthError,
        sent_token: Optional[str],
    ) -> FetchResponse:
        if self._is_refresh_url(url):
            self._redirect_to_login(url, "refresh_rejected")
            raise error

        if descriptor.auth_retried:
            logger.warning(f"401 again after refresh: {descriptor.method} {url}")
            self._redirect_to_login(url, "unauthorized_after_refresh")
            raise error

        current = self._tokens.access_token
        if current is not None and current != sent_token:
            # the 401 answered a token that has since been replaced
            descriptor.auth_retried = True
            logger.debug(f"re-sending {descriptor.method} {url} with the current token")
            return await self._attempt(descriptor, url, access_token=current)

        descriptor.auth_retried = True
        token = await self._guard(descriptor, self._coordinator.refresh())
        if token is None:
            raise AuthError("Session expired", status=401, request_id=error.request_id)

        logger.debug(f"re-sending {descriptor.method} {url} with refreshed token")
        return await self._attempt(descriptor, url, access_token=token)

    # === one network round trip ===

    async def _attempt(
        self,
        descriptor: RequestDescriptor,
        url: str,
        access_token: Optional[str] = None,
    ) -> FetchResponse:
        request_id = self._request_ids()
        sent_token = access_token or self._tokens.access_token
        headers = self.attach_headers(descriptor, url, request_id, sent_token)
        response = await self._send(descriptor, url, headers, request_id)

        status = response.status_code
        if status == 304 or 200 <= status < 300:
            return self.update_cache(descriptor, url, response, request_id)

        data = self._parse(descriptor, response)
        error_cls = classify_status(status)
        error = error_cls(status=status, request_id=request_id, data=data)

        if isinstance(error, AuthError):
            return await self._handle_unauthorized(descriptor, url, error, sent_token)
        raise error

    # === retry-on-failure ===

    async def _execute(self, descriptor: RequestDescriptor, url: str) -> FetchResponse:
        while True:
            try:
                return await self._attempt(descriptor, url)
            except ApiError as error:
                if descriptor.cancelled and not isinstance(error, RequestCancelledError):
                    raise RequestCancelledError(request_id=error.request_id) from error
                if not self._retry.should_retry(descriptor, error):
                    if isinstance(error, (NetworkError, ServerError)):
                        self._report_failure(descriptor, url, error)
                    raise
                delay = self._retry.next_delay(descriptor)
                await self._guard(descriptor, self._retry.sleep(delay))

    async def _run(self, descriptor: RequestDescriptor, url: str) -> FetchResponse:
        started = self._clock()
        settled = False
        try:
            response = await self._execute(descriptor, url)
            settled = True
            return response
        except RequestCancelledError:
            raise
        except ApiError:
            settled = True
            raise
        finally:
            if settled:
                self._report_duration(descriptor, url, self._clock() - started)

    # === notifications ===

    def _report_duration(self, descriptor: RequestDescriptor, url: str, elapsed: float) -> None:
        elapsed_ms = elapsed * 1000.0
        logger.debug(f"{descriptor.method} {url} took {elapsed_ms:.0f}ms")
        if elapsed > self._config.slow_request_threshold:
            threshold_ms = self._config.slow_request_threshold * 1000.0
            logger.warning(f"Slow request: {descriptor.method} {url} took {elapsed_ms:.0f}ms")
            self._bus.emit(
                NotificationKind.SLOW_REQUEST,
                f"Request slower than usual (over {threshold_ms:.0f}ms)",
                code="SLOW_REQUEST",
                context={"url": url, "method": descriptor.method, "duration_ms": elapsed_ms},
            )

    def _report_failure(self, descriptor: RequestDescriptor, url: str, error: ApiError) -> None:
        logger.warning(
            f"{descriptor.method} {url} failed after {descriptor.retry_count} retries: {error}"
        )
        self._bus.emit(
            NotificationKind.SERVER_ERROR,
            "A server or network error occurred. Please try again later.",
            code=error.status if error.status is not None else error.code,
            context={
                "url": url,
                "method": descriptor.method,
                "request_id": error.request_id,
                "retries": descriptor.retry_count,
            },
        )

    # === cancellation ===

    async def _guard(self, descriptor: RequestDescriptor, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless the descriptor is cancelled first."""
        if descriptor.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelledError()

        task = asyncio.ensure_future(awaitable)
        cancel_waiter = asyncio.ensure_future(descriptor.wait_cancelled())
        try:
            await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            cancel_waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        logger.debug(f"{descriptor.method} {descriptor.path} cancelled by caller")
        raise RequestCancelledError()
