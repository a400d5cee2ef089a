"""
Single-flight access-token refresh.

However many requests fail with 401 at the same time, exactly one refresh
call is issued. Every caller that asked for a refresh while it was running
is queued and resolved, in enqueue order, with the same outcome: the new
access token, or ``None`` when the refresh failed.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..console import mask_token
from ..notifications import NotificationBus
from ..types import NotificationKind, RefreshState, TokenPair
from .token_store import TokenStore

logger = logging.getLogger("construction_client.auth.refresh")
LOG_PREFIX = "[REFRESH]"

RefreshFn = Callable[[Optional[str]], Awaitable[Optional[TokenPair]]]
"""Performs the refresh call given the current refresh token."""


def _first_string(*candidates: Any) -> Optional[str]:
    for value in candidates:
        if isinstance(value, str) and value:
            return value
    return None


def extract_token_pair(
    data: Any,
    headers: Optional[Mapping[str, str]] = None,
    previous_refresh_token: Optional[str] = None,
) -> Optional[TokenPair]:
    """Read a token pair out of a refresh/login response.

    The access token may live at ``accessToken``, ``token``,
    ``data.accessToken`` or ``data.token``. A missing refresh token keeps the
    previous one.
    """
    if not isinstance(data, dict):
        return None
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}

    access_token = _first_string(
        data.get("accessToken"),
        data.get("token"),
        nested.get("accessToken"),
        nested.get("token"),
    )
    if not access_token:
        return None

    header_refresh = None
    if headers:
        header_refresh = headers.get("x-refresh-token") or headers.get("X-Refresh-Token")

    refresh_token = _first_string(
        data.get("refreshToken"),
        nested.get("refreshToken"),
        header_refresh,
        previous_refresh_token,
    )
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


class RefreshCoordinator:
    """
    Coordinates one in-flight refresh per token store.

    ``in_progress`` and ``waiters`` are only touched between suspension
    points, so the check-then-set below is atomic under the event loop.

    Example:
        coordinator = RefreshCoordinator(store, refresh_fn, bus)
        token = await coordinator.refresh()
        if token is None:
            ...  # tokens cleared, auth-redirect already published
    """

    def __init__(
        self,
        token_store: TokenStore,
        refresh_fn: RefreshFn,
        bus: Optional[NotificationBus] = None,
    ) -> None:
        self._store = token_store
        self._refresh_fn = refresh_fn
        self._bus = bus or NotificationBus()
        self._state = RefreshState()
        self._task: Optional[asyncio.Task] = None

    @property
    def in_progress(self) -> bool:
        return self._state.in_progress

    @property
    def waiter_count(self) -> int:
        return len(self._state.waiters)

    @property
    def token_store(self) -> TokenStore:
        return self._store

    async def refresh(self) -> Optional[str]:
        """Return a fresh access token, or None if the session is gone."""
        loop = asyncio.get_running_loop()
        waiter: "asyncio.Future[Optional[str]]" = loop.create_future()
        self._state.waiters.append(waiter)

        if self._state.in_progress:
            logger.debug(
                f"{LOG_PREFIX} refresh already running, queued waiter #{len(self._state.waiters)}"
            )
            return await waiter

        self._state.in_progress = True
        logger.info(f"{LOG_PREFIX} starting token refresh")
        # The refresh runs on its own task: cancelling the caller that
        # started it must not abort the refresh other callers wait on.
        self._task = loop.create_task(self._run())
        return await waiter

    async def _run(self) -> None:
        token: Optional[str] = None
        try:
            refresh_token = self._store.refresh_token
            try:
                pair = await self._refresh_fn(refresh_token)
            except Exception as error:
                logger.error(f"{LOG_PREFIX} refresh call failed: {error}")
                pair = None

            if pair is not None and pair.access_token:
                self._store.set(pair)
                token = pair.access_token
                logger.info(
                    f"{LOG_PREFIX} refresh succeeded: access_token={mask_token(token)}"
                )
            else:
                self._store.clear()
                logger.warning(f"{LOG_PREFIX} refresh failed, tokens cleared")
                self._bus.emit(
                    NotificationKind.AUTH_REDIRECT,
                    "Session expired, please sign in again",
                    code=401,
                    context={"reason": "refresh_failed"},
                )
        finally:
            self._resolve_waiters(token)

    def _resolve_waiters(self, token: Optional[str]) -> None:
        waiters = self._state.waiters
        self._state.waiters = []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(token)
        self._state.in_progress = False
        self._task = None

    def install(self, tokens: TokenPair) -> None:
        """Store a pair obtained outside a refresh (login)."""
        self._store.set(tokens)

    def clear(self) -> None:
        """Drop the session (logout, or 401 on the refresh endpoint itself)."""
        self._store.clear()

    async def close(self) -> None:
        """Cancel a running refresh; its waiters resolve with None."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        if self._state.in_progress:
            # cancelled before it ever ran
            self._resolve_waiters(None)
