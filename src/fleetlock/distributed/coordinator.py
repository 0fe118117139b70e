"""Distributed lock coordination on top of Redis.

Each lock is a single Redis key whose value is the holder's node id:
1. Acquire writes the key with SET NX PX, so exactly one node wins
2. Release deletes the key only if it still holds our node id (Lua script)
3. A holder that never releases is cleaned up by the key's expiry

No lock state is kept in process memory; ownership lives in Redis so a
crashed holder is recovered by expiry alone.

Availability policy: when Redis is not ready or an operation fails,
acquire returns True (fail-open) and release does nothing. Duplicate work
during a store outage is preferred over scheduled work stalling across the
whole fleet.

Example:
    coordinator = LockCoordinator(store)

    if await coordinator.acquire("cron:daily-sync", ttl_ms=300_000):
        try:
            await sync()
        finally:
            await coordinator.release("cron:daily-sync")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import cast

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from fleetlock.distributed.identity import generate_node_id
from fleetlock.observability.metrics import LockMetrics, get_metrics
from fleetlock.store.client import LockStoreClient
from fleetlock.store.keys import InvalidLockRequest, LockKeys

logger = logging.getLogger(__name__)

# Delete KEYS[1] only if its value is ARGV[1]; runs atomically in Redis
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


def validate_ttl(ttl_ms: int) -> int:
    """Return the TTL unchanged, or raise if it is not a positive integer."""
    if isinstance(ttl_ms, bool) or not isinstance(ttl_ms, int) or ttl_ms <= 0:
        raise InvalidLockRequest(f"Lock TTL must be a positive integer (ms), got {ttl_ms!r}")
    return ttl_ms


class LockCoordinator:
    """Acquire/release protocol for named distributed locks.

    Args:
        store: Store client owning the Redis connection
        node_id: Ownership token written into held locks (generated if None)
        metrics: Metrics registry (process-wide registry if None)
    """

    def __init__(
        self,
        store: LockStoreClient,
        node_id: str | None = None,
        metrics: LockMetrics | None = None,
    ):
        self._store = store
        self._node_id = node_id or generate_node_id()
        self._metrics = metrics or get_metrics()

    @property
    def node_id(self) -> str:
        """This process's ownership token."""
        return self._node_id

    @property
    def store(self) -> LockStoreClient:
        return self._store

    def lock_key(self, name: str) -> str:
        """Full Redis key for lock ``name``, including the deployment prefix."""
        return self._store.namespaced(LockKeys.lock(name))

    async def acquire(self, name: str, ttl_ms: int) -> bool:
        """Try to take lock ``name`` for ``ttl_ms`` milliseconds.

        Args:
            name: Logical lock name (e.g. "cron:daily-sync")
            ttl_ms: Lock lifetime, longer than the guarded work is expected to take

        Returns:
            True if this node now holds the lock or the store is unavailable
            (fail-open), False if another node holds it.

        Raises:
            InvalidLockRequest: If the name is empty or the TTL is not positive.
        """
        key = self.lock_key(name)
        validate_ttl(ttl_ms)

        client = self._store.get_raw_handle()
        if client is None:
            logger.warning(f"Redis not ready, proceeding without lock '{name}'")
            self._store.reconnect_in_background()
            self._metrics.record_acquire(name, "fail_open")
            return True

        try:
            acquired = await client.set(key, self._node_id, nx=True, px=ttl_ms)
        except Exception as e:
            logger.error(f"Failed to acquire lock '{name}', proceeding without it: {e}")
            self._metrics.record_acquire(name, "fail_open")
            if isinstance(e, _CONNECTION_ERRORS):
                await self._store.mark_unavailable(e, client)
            return True

        if acquired:
            logger.debug(f"Lock '{name}' acquired by {self._node_id}")
            self._metrics.record_acquire(name, "acquired")
            return True

        logger.debug(f"Lock '{name}' not acquired, already held")
        self._metrics.record_acquire(name, "contended")
        return False

    async def release(self, name: str) -> None:
        """Release lock ``name`` if this node holds it.

        Never raises. Releasing a lock that expired, was never acquired, or
        is now held by another node does nothing.
        """
        try:
            key = self.lock_key(name)
        except InvalidLockRequest as e:
            logger.warning(f"Ignoring release of invalid lock: {e}")
            self._metrics.record_release(str(name), "skipped")
            return

        client = self._store.get_raw_handle()
        if client is None:
            self._metrics.record_release(name, "skipped")
            return

        try:
            deleted = await cast(
                Awaitable[int],
                client.eval(RELEASE_SCRIPT, 1, key, self._node_id),
            )
        except Exception as e:
            logger.error(f"Failed to release lock '{name}': {e}")
            self._metrics.record_release(name, "error")
            if isinstance(e, _CONNECTION_ERRORS):
                await self._store.mark_unavailable(e, client)
            return

        if deleted:
            logger.debug(f"Lock '{name}' released by {self._node_id}")
            self._metrics.record_release(name, "released")
        else:
            logger.debug(f"Lock '{name}' not held by {self._node_id}, nothing to release")
            self._metrics.record_release(name, "not_owner")

    async def holder(self, name: str) -> str | None:
        """Get the node id currently holding lock ``name``.

        Diagnostic only. Returns None when the lock is free or the store
        cannot be read.
        """
        key = self.lock_key(name)
        client = self._store.get_raw_handle()
        if client is None:
            return None

        try:
            value = await client.get(key)
        except Exception as e:
            logger.warning(f"Failed to read holder of lock '{name}': {e}")
            if isinstance(e, _CONNECTION_ERRORS):
                await self._store.mark_unavailable(e, client)
            return None

        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else value
