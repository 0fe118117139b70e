"""Redis connection management for fleetlock.

Owns the single Redis connection a process uses for lock coordination:
- Explicit initialize/shutdown lifecycle (no module-level client)
- Bounded connect retries with linear backoff
- Live readiness tracking, fed back by lock operations
- Background reconnection after the connection is lost

Connection failures never raise out of this module. When Redis cannot be
reached the client stays not-ready and the lock coordinator fails open.

Example:
    config = StoreConfig(host="redis", key_prefix="billing:")
    async with LockStoreClient(config) as store:
        coordinator = LockCoordinator(store)
        ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from fleetlock.config import Settings
from fleetlock.observability.metrics import set_store_ready

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class StoreState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"


@dataclass
class StoreConfig:
    """Connection parameters for the coordination store."""

    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    db: int = 0
    key_prefix: str = ""
    connect_timeout: float = 5.0
    socket_timeout: float = 5.0
    connect_retries: int = 3
    retry_step_ms: int = 200
    retry_cap_ms: int = 2000

    @classmethod
    def from_settings(cls, settings: Settings) -> StoreConfig:
        """Build a store config from environment-driven settings."""
        return cls(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            db=settings.redis_db,
            key_prefix=settings.redis_key_prefix,
            connect_timeout=settings.redis_connect_timeout,
            socket_timeout=settings.redis_socket_timeout,
            connect_retries=settings.redis_connect_retries,
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


def retry_delay(retry: int, step_ms: int = 200, cap_ms: int = 2000) -> float:
    """Seconds to wait before connect retry number ``retry`` (1-based).

    Grows linearly with the retry number and is capped, so the defaults
    give 0.2s, 0.4s, 0.6s, ... up to 2s.
    """
    return min(retry * step_ms, cap_ms) / 1000


RedisFactory = Callable[[StoreConfig], "Redis"]


def _create_redis(config: StoreConfig) -> Redis:
    return redis.Redis(
        host=config.host,
        port=config.port,
        password=config.password,
        db=config.db,
        socket_connect_timeout=config.connect_timeout,
        socket_timeout=config.socket_timeout,
        decode_responses=True,
    )


# -----------------------------------------------------------------------------
# Store Client
# -----------------------------------------------------------------------------


class LockStoreClient:
    """Manages the Redis connection used for distributed locks.

    One instance is created per process at startup, initialized explicitly
    (or lazily on first use), and shut down once at process teardown.
    Concurrent lock operations share the handle; redis-py's connection
    pool multiplexes them.

    Args:
        config: Connection parameters (defaults to localhost:6379/0)
        redis_factory: Builds a Redis handle from a config (for testing)
    """

    def __init__(
        self,
        config: StoreConfig | None = None,
        redis_factory: RedisFactory | None = None,
    ):
        self.config = config or StoreConfig()
        self._redis_factory = redis_factory or _create_redis
        self._client: Redis | None = None
        self._state = StoreState.DISCONNECTED
        self._retry_count = 0
        self._connect_lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[bool] | None = None
        self._closed = False

    @property
    def state(self) -> StoreState:
        """Current connection state."""
        return self._state

    @property
    def retry_count(self) -> int:
        """Retries used by the most recent connect run."""
        return self._retry_count

    def is_ready(self) -> bool:
        """Check whether the connection is currently usable."""
        return self._state == StoreState.READY and self._client is not None

    def get_raw_handle(self) -> Redis | None:
        """Get the Redis handle, or None if the store is not ready."""
        return self._client if self.is_ready() else None

    def namespaced(self, key: str) -> str:
        """Apply the deployment key prefix to a store key."""
        return f"{self.config.key_prefix}{key}"

    async def initialize(self) -> bool:
        """Connect to Redis, retrying with linear backoff.

        Never raises on connection failure. The client ends up either ready
        or in the error state, in which case locks are disabled until a
        background reconnect succeeds.

        Returns:
            True if the store is ready, False otherwise.
        """
        self._closed = False
        return await self._connect()

    async def shutdown(self) -> None:
        """Gracefully close the connection. Safe to call more than once."""
        self._closed = True

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        was_open = self._client is not None
        await self._discard_client()
        self._set_state(StoreState.DISCONNECTED)

        if was_open:
            logger.info(f"Redis disconnected from {self.config.address}")

    async def mark_unavailable(self, exc: BaseException, handle: Redis | None = None) -> None:
        """Record a connection-level failure seen by a lock operation.

        Drops the handle, moves to the error state and schedules a
        background reconnect.

        Args:
            exc: The error the operation saw
            handle: The handle the operation ran on. A failure on a handle
                that has since been replaced is ignored.
        """
        if self._state != StoreState.READY:
            return
        if handle is not None and handle is not self._client:
            logger.debug(f"Ignoring failure on a replaced Redis handle: {exc}")
            return

        logger.error(f"Redis connection to {self.config.address} lost: {exc}")
        self._set_state(StoreState.ERROR)
        await self._discard_client()
        self.reconnect_in_background()

    def reconnect_in_background(self) -> None:
        """Start a background connect run if one is needed and allowed."""
        if self._closed or self._state in (StoreState.READY, StoreState.CONNECTING):
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return

        self._reconnect_task = asyncio.create_task(self._connect())
        self._reconnect_task.add_done_callback(self._on_reconnect_done)

    async def health_check(self) -> bool:
        """Check Redis connectivity with a PING."""
        client = self.get_raw_handle()
        if client is None:
            return False
        try:
            await cast(Awaitable[bool], client.ping())
            return True
        except (RedisError, OSError):
            return False

    async def _connect(self) -> bool:
        async with self._connect_lock:
            if self.is_ready():
                return True

            self._set_state(StoreState.CONNECTING)
            await self._discard_client()
            self._retry_count = 0
            attempts = self.config.connect_retries + 1

            for attempt in range(attempts):
                if attempt:
                    self._retry_count = attempt
                    await asyncio.sleep(
                        retry_delay(attempt, self.config.retry_step_ms, self.config.retry_cap_ms)
                    )

                if self._closed:
                    break

                self._client = self._redis_factory(self.config)
                try:
                    await cast(Awaitable[bool], self._client.ping())
                except (RedisError, OSError) as e:
                    logger.warning(
                        f"Redis connection attempt {attempt + 1}/{attempts} "
                        f"to {self.config.address} failed: {e}"
                    )
                    await self._discard_client()
                    continue

                if self._closed:
                    break

                self._set_state(StoreState.READY)
                logger.info(f"Redis connected to {self.config.address}")
                return True

            if self._closed:
                # shutdown() ran while we were connecting
                await self._discard_client()
                self._set_state(StoreState.DISCONNECTED)
                return False

            self._set_state(StoreState.ERROR)
            logger.error(
                f"Redis connection failed after {self.config.connect_retries} retries, "
                "locks will be disabled"
            )
            return False

    async def _discard_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis connection: {e}")

    def _set_state(self, state: StoreState) -> None:
        self._state = state
        set_store_ready(state == StoreState.READY)

    def _on_reconnect_done(self, task: asyncio.Task[bool]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._set_state(StoreState.ERROR)
            logger.error(f"Redis background reconnect crashed: {exc!r}")

    async def __aenter__(self) -> LockStoreClient:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()
