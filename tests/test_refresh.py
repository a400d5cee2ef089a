"""
Tests for the token store and the single-flight refresh coordinator.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from construction_client.auth import RefreshCoordinator, TokenStore, extract_token_pair
from construction_client.notifications import NotificationBus
from construction_client.types import NotificationKind, TokenPair


class TestTokenStore:
    def test_empty(self):
        store = TokenStore()
        assert store.get() is None
        assert store.access_token is None
        assert store.refresh_token is None

    def test_set_and_clear_bump_generation(self, tokens):
        store = TokenStore()
        store.set(tokens)
        assert store.access_token == "access-token-1"
        assert store.refresh_token == "refresh-token-1"
        assert store.generation == 1
        store.clear()
        assert store.get() is None
        assert store.generation == 2


class TestExtractTokenPair:
    def test_top_level_fields(self):
        pair = extract_token_pair({"accessToken": "a", "refreshToken": "r"})
        assert pair == TokenPair("a", "r")

    def test_token_alias(self):
        assert extract_token_pair({"token": "a"}).access_token == "a"

    def test_nested_data(self):
        pair = extract_token_pair({"data": {"accessToken": "a", "refreshToken": "r"}})
        assert pair == TokenPair("a", "r")

    def test_refresh_token_from_header(self):
        pair = extract_token_pair({"accessToken": "a"}, {"x-refresh-token": "hdr"})
        assert pair.refresh_token == "hdr"

    def test_previous_refresh_token_kept(self):
        pair = extract_token_pair({"accessToken": "a"}, None, "old-refresh")
        assert pair.refresh_token == "old-refresh"

    @pytest.mark.parametrize("data", [None, "text", {}, {"accessToken": ""}])
    def test_no_access_token(self, data):
        assert extract_token_pair(data) is None


class TestRefreshCoordinator:
    @pytest.mark.asyncio
    async def test_success_updates_store(self, tokens):
        store = TokenStore(tokens)
        refresh_fn = AsyncMock(return_value=TokenPair("access-token-2", "refresh-token-2"))
        coordinator = RefreshCoordinator(store, refresh_fn)

        assert await coordinator.refresh() == "access-token-2"

        refresh_fn.assert_awaited_once_with("refresh-token-1")
        assert store.get() == TokenPair("access-token-2", "refresh-token-2")
        assert not coordinator.in_progress
        assert coordinator.waiter_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, tokens):
        store = TokenStore(tokens)
        gate = asyncio.Event()
        calls = []

        async def refresh_fn(refresh_token):
            calls.append(refresh_token)
            await gate.wait()
            return TokenPair("access-token-2", "refresh-token-2")

        coordinator = RefreshCoordinator(store, refresh_fn)
        tasks = [asyncio.create_task(coordinator.refresh()) for _ in range(5)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert coordinator.in_progress
        assert coordinator.waiter_count == 5
        gate.set()

        assert await asyncio.gather(*tasks) == ["access-token-2"] * 5
        assert calls == ["refresh-token-1"]

    @pytest.mark.asyncio
    async def test_failure_clears_store_and_redirects_once(self, tokens):
        store = TokenStore(tokens)
        bus = NotificationBus()
        received = []
        bus.subscribe(received.append)
        gate = asyncio.Event()

        async def refresh_fn(refresh_token):
            await gate.wait()
            return None

        coordinator = RefreshCoordinator(store, refresh_fn, bus)
        tasks = [asyncio.create_task(coordinator.refresh()) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()

        assert await asyncio.gather(*tasks) == [None, None, None]
        assert store.get() is None
        assert [event.kind for event in received] == [NotificationKind.AUTH_REDIRECT]

    @pytest.mark.asyncio
    async def test_exception_is_a_failure(self, tokens):
        store = TokenStore(tokens)
        refresh_fn = AsyncMock(side_effect=ConnectionError("down"))
        coordinator = RefreshCoordinator(store, refresh_fn)

        assert await coordinator.refresh() is None
        assert store.get() is None

    @pytest.mark.asyncio
    async def test_cancelled_leader_does_not_abort_refresh(self, tokens):
        store = TokenStore(tokens)
        gate = asyncio.Event()

        async def refresh_fn(refresh_token):
            await gate.wait()
            return TokenPair("access-token-2")

        coordinator = RefreshCoordinator(store, refresh_fn)
        leader = asyncio.create_task(coordinator.refresh())
        await asyncio.sleep(0)
        follower = asyncio.create_task(coordinator.refresh())
        await asyncio.sleep(0)

        leader.cancel()
        gate.set()

        assert await follower == "access-token-2"
        with pytest.raises(asyncio.CancelledError):
            await leader
        assert store.access_token == "access-token-2"

    @pytest.mark.asyncio
    async def test_sequential_refreshes_each_call_once(self, tokens):
        store = TokenStore(tokens)
        refresh_fn = AsyncMock(side_effect=[TokenPair("a2", "r2"), TokenPair("a3", "r3")])
        coordinator = RefreshCoordinator(store, refresh_fn)

        assert await coordinator.refresh() == "a2"
        assert await coordinator.refresh() == "a3"
        assert refresh_fn.await_args_list[1].args == ("r2",)

    @pytest.mark.asyncio
    async def test_close_resolves_waiters_with_none(self, tokens):
        store = TokenStore(tokens)

        async def refresh_fn(refresh_token):
            await asyncio.Event().wait()

        coordinator = RefreshCoordinator(store, refresh_fn)
        waiter = asyncio.create_task(coordinator.refresh())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        await coordinator.close()

        assert await waiter is None
        assert not coordinator.in_progress

    def test_install_and_clear(self, tokens):
        store = TokenStore()
        coordinator = RefreshCoordinator(store, AsyncMock())
        coordinator.install(tokens)
        assert store.get() == tokens
        coordinator.clear()
        assert store.get() is None
