"""Integration test fixtures using Docker.

Starts a throwaway Redis so the lock protocol runs against the real
SET NX PX and EVAL semantics.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Iterator
from urllib.parse import urlparse

import pytest
import pytest_asyncio
import redis.asyncio as redis

from fleetlock.store.client import LockStoreClient, StoreConfig

REDIS_IMAGE = "redis:7-alpine"


def pytest_collection_modifyitems(items):
    """Mark everything under tests/integration as an integration test."""
    for item in items:
        if "integration" in item.nodeid.split("/"):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    try:
        import docker

        client = docker.from_env()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def redis_config(docker_client) -> Iterator[StoreConfig]:
    """Run Redis for the session and point a store config at its published port."""
    container = docker_client.containers.run(
        REDIS_IMAGE, detach=True, ports={"6379/tcp": None}
    )
    try:
        container.reload()
        host_port = container.ports["6379/tcp"][0]["HostPort"]
        yield StoreConfig(
            host=_published_host(docker_client.api.base_url),
            port=int(host_port),
            connect_timeout=5.0,
        )
    finally:
        container.remove(force=True, v=True)


@pytest_asyncio.fixture
async def redis_client(redis_config: StoreConfig) -> AsyncIterator[redis.Redis]:
    """Raw Redis client, flushed after each test."""
    client = redis.Redis(
        host=redis_config.host,
        port=redis_config.port,
        decode_responses=True,
    )
    await _wait_for_redis(client)
    yield client
    await client.flushdb()
    await client.aclose()


@pytest_asyncio.fixture
async def live_store(
    redis_config: StoreConfig, redis_client: redis.Redis
) -> AsyncIterator[LockStoreClient]:
    """Ready store client connected to the container."""
    store = LockStoreClient(redis_config)
    await store.initialize()
    assert store.is_ready()
    yield store
    await store.shutdown()


def _published_host(docker_url: str) -> str:
    # Local sockets publish on localhost, remote daemons on their own host
    if docker_url.startswith(("unix://", "npipe://", "http+docker://")):
        return "localhost"
    return urlparse(docker_url).hostname or "localhost"


async def _wait_for_redis(client: redis.Redis, timeout: float = 30.0) -> None:
    """Wait for Redis to accept connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            await client.ping()
            return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)
