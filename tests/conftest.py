"""
Shared fixtures for construction_client tests.
"""
import asyncio

import httpx
import pytest
import pytest_asyncio

from construction_client import ApiClient, ClientConfig, TokenPair

BASE_URL = "https://api.example.com"


class FakeClock:
    """Monotonic clock the tests move by hand (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stands in for asyncio.sleep: records delays, returns immediately."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def tokens():
    """Sample session for testing."""
    return TokenPair(access_token="access-token-1", refresh_token="refresh-token-1")


@pytest_asyncio.fixture
async def make_client(fake_clock, recording_sleep):
    """Factory: ApiClient wired to an httpx.MockTransport handler."""
    created = []

    def factory(handler, tokens=None, **config_overrides):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = ApiClient(
            ClientConfig(base_url=BASE_URL, **config_overrides),
            http_client=http,
            tokens=tokens,
            clock=fake_clock,
            sleep=recording_sleep,
        )
        created.append((client, http))
        return client

    yield factory

    for client, http in created:
        await client.close()
        await http.aclose()


@pytest.fixture
def events():
    """Collects notifications; subscribe with ``client.subscribe(events.append)``."""
    return []
