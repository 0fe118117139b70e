"""Shared fixtures for unit tests.

Provides an in-memory Redis double speaking the three commands the lock
protocol uses (SET NX PX, GET, EVAL of the release script) and a manual
clock so expiry can be tested without sleeping.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from fleetlock.distributed.coordinator import RELEASE_SCRIPT
from fleetlock.store.client import LockStoreClient, StoreConfig


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryRedis:
    """Single-node Redis double for the lock protocol.

    Each command yields to the event loop once (like a network round trip)
    and then runs without further suspension, so it is atomic with respect
    to other tasks, as a real Redis command is.
    """

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.data: dict[str, tuple[str, float | None]] = {}
        self.closed = False

    def _live(self, key: str) -> str | None:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    async def ping(self) -> bool:
        await asyncio.sleep(0)
        return True

    async def set(
        self, key: str, value: str, nx: bool = False, px: int | None = None
    ) -> bool | None:
        await asyncio.sleep(0)
        if nx and self._live(key) is not None:
            return None
        expires_at = self.clock() + px / 1000 if px else None
        self.data[key] = (value, expires_at)
        return True

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(0)
        return self._live(key)

    async def eval(self, script: str, numkeys: int, *keys_and_args: str) -> int:
        await asyncio.sleep(0)
        assert script == RELEASE_SCRIPT
        assert numkeys == 1
        key, expected = keys_and_args
        if self._live(key) == expected:
            del self.data[key]
            return 1
        return 0

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def redis_double(clock: ManualClock) -> InMemoryRedis:
    return InMemoryRedis(clock)


@pytest_asyncio.fixture
async def store(redis_double: InMemoryRedis) -> AsyncIterator[LockStoreClient]:
    """Ready store client backed by the in-memory Redis double."""
    client = LockStoreClient(
        StoreConfig(connect_retries=0),
        redis_factory=lambda config: redis_double,
    )
    await client.initialize()
    yield client
    await client.shutdown()


@pytest.fixture
def unreachable_redis() -> AsyncMock:
    """Redis handle whose every command fails with a connection error."""
    mock = AsyncMock()
    mock.ping = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    mock.set = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    mock.eval = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    mock.get = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    return mock


@pytest_asyncio.fixture
async def down_store(unreachable_redis: AsyncMock) -> AsyncIterator[LockStoreClient]:
    """Store client that could not connect (locks disabled)."""
    client = LockStoreClient(
        StoreConfig(connect_retries=0),
        redis_factory=lambda config: unreachable_redis,
    )
    await client.initialize()
    yield client
    await client.shutdown()
