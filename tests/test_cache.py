"""
Tests for the ETag cache and the in-flight registry.
"""
import asyncio

import httpx
import pytest

from construction_client.cache import EtagCache, InFlightRegistry, extract_etag
from construction_client.errors import ServerError


class TestExtractEtag:
    def test_plain_dict(self):
        assert extract_etag({"ETag": '"v7"'}) == '"v7"'

    def test_httpx_headers_case_insensitive(self):
        assert extract_etag(httpx.Headers({"etag": ' "v7" '})) == '"v7"'

    def test_missing(self):
        assert extract_etag({}) is None


class TestEtagCache:
    def test_set_and_get(self):
        cache = EtagCache()
        cache.set("GET:/x", '"v7"', {"id": 1})
        entry = cache.get("GET:/x")
        assert entry.etag == '"v7"'
        assert entry.data == {"id": 1}

    def test_last_write_wins(self):
        cache = EtagCache()
        cache.set("GET:/x", '"v1"', 1)
        cache.set("GET:/x", '"v2"', 2)
        assert cache.get("GET:/x").etag == '"v2"'
        assert cache.size() == 1

    def test_conditional_headers(self):
        cache = EtagCache()
        assert cache.conditional_headers("GET:/x") == {}
        cache.set("GET:/x", '"v7"', None)
        assert cache.conditional_headers("GET:/x") == {"If-None-Match": '"v7"'}

    def test_invalidate_and_clear(self):
        cache = EtagCache()
        cache.set("a", '"1"', None)
        cache.set("b", '"2"', None)
        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        cache.clear()
        assert cache.size() == 0


class TestInFlightRegistry:
    @pytest.mark.asyncio
    async def test_register_then_resolve_removes_entry(self):
        registry = InFlightRegistry()
        entry = registry.register("GET:/x")
        assert registry.has("GET:/x")

        registry.settle(entry, {"status": 200})

        assert await entry.future == {"status": 200}
        assert registry.size() == 0

    @pytest.mark.asyncio
    async def test_duplicate_register_raises(self):
        registry = InFlightRegistry()
        registry.register("GET:/x")
        with pytest.raises(KeyError):
            registry.register("GET:/x")

    @pytest.mark.asyncio
    async def test_join_counts_subscribers(self):
        registry = InFlightRegistry()
        entry = registry.register("GET:/x")
        registry.join(registry.get("GET:/x"))
        assert entry.subscribers == 2

    @pytest.mark.asyncio
    async def test_reject_propagates_error(self):
        registry = InFlightRegistry()
        entry = registry.register("GET:/x")
        registry.settle(entry, error=ServerError(status=500))

        with pytest.raises(ServerError):
            await entry.future
        assert not registry.has("GET:/x")

    @pytest.mark.asyncio
    async def test_stale_entry_does_not_remove_newer_one(self):
        registry = InFlightRegistry()
        old = registry.register("GET:/x")
        registry.settle(old, {"status": 200})
        new = registry.register("GET:/x")

        assert registry.remove(old) is False
        assert registry.get("GET:/x") is new

    @pytest.mark.asyncio
    async def test_settle_twice_is_harmless(self):
        registry = InFlightRegistry()
        entry = registry.register("GET:/x")
        registry.settle(entry, {"status": 200})
        registry.settle(entry, error=ServerError())
        assert entry.future.result() == {"status": 200}

    @pytest.mark.asyncio
    async def test_future_bound_to_running_loop(self):
        registry = InFlightRegistry()
        entry = registry.register("GET:/x")
        assert entry.future.get_loop() is asyncio.get_running_loop()
