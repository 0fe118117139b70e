"""Run work on at most one replica at a time.

Wraps a critical section with acquire-before / release-after:
- The work runs only if the lock was acquired (or the store is down)
- The lock is released on every exit path, including errors
- A held lock is a normal outcome: the run is skipped, not failed

Example:
    outcome = await run_exclusively(coordinator, "cron:daily-sync", 300_000, sync)
    if outcome.skipped:
        ...  # Another replica is running it

    # Or as decorator
    @distributed_lock(coordinator, "cron:daily-report", ttl_ms=600_000)
    async def generate_daily_report():
        # Only runs on one replica per invocation window
        ...
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, ParamSpec, TypeVar

from fleetlock.distributed.coordinator import LockCoordinator, validate_ttl
from fleetlock.observability.logging import LogContext
from fleetlock.store.keys import LockKeys

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

LOCK_SPEC_ATTR = "__fleetlock_spec__"


@dataclass(frozen=True)
class LockOutcome(Generic[R]):
    """Result of a guarded run.

    ``result`` is the work's return value when it ran, None when skipped.
    """

    acquired: bool
    result: R | None = None

    @property
    def skipped(self) -> bool:
        return not self.acquired

    @classmethod
    def skip(cls) -> LockOutcome[Any]:
        return cls(acquired=False)


@dataclass(frozen=True)
class LockSpec:
    """Lock name and TTL attached to a decorated function."""

    name: str
    ttl_ms: int


async def run_exclusively(
    coordinator: LockCoordinator,
    name: str,
    ttl_ms: int,
    work: Callable[P, Awaitable[R]],
    *args: P.args,
    **kwargs: P.kwargs,
) -> LockOutcome[R]:
    """Run ``work`` while holding lock ``name``.

    Args:
        coordinator: Lock coordinator to acquire and release through
        name: Logical lock name
        ttl_ms: Lock TTL in milliseconds
        work: Coroutine function to run under the lock
        *args: Positional arguments for ``work``
        **kwargs: Keyword arguments for ``work``

    Returns:
        The outcome, skipped if another node holds the lock. Exceptions
        raised by ``work`` propagate after the lock is released.
    """
    label = getattr(work, "__qualname__", repr(work))

    with LogContext(lock_name=name, node_id=coordinator.node_id):
        if not await coordinator.acquire(name, ttl_ms):
            logger.info(f"Skipping {label} - lock '{name}' held by another node")
            return LockOutcome.skip()

        try:
            logger.info(f"Executing {label} with distributed lock '{name}'")
            result = await work(*args, **kwargs)
        finally:
            await coordinator.release(name)

        return LockOutcome(acquired=True, result=result)


def distributed_lock(
    coordinator: LockCoordinator, name: str, ttl_ms: int
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R | None]]]:
    """Decorator that makes a coroutine function run on one replica at a time.

    The decorated function returns None when the run is skipped.

    Args:
        coordinator: Lock coordinator to acquire and release through
        name: Logical lock name
        ttl_ms: Lock TTL in milliseconds, longer than the expected run time

    Example:
        @distributed_lock(coordinator, "cron:sync-attendance", ttl_ms=300_000)
        async def sync_attendance():
            ...
    """
    if coordinator is None:
        raise TypeError("distributed_lock requires a LockCoordinator instance")

    spec = LockSpec(name=LockKeys.validate_name(name), ttl_ms=validate_ttl(ttl_ms))

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R | None]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            outcome = await run_exclusively(
                coordinator, spec.name, spec.ttl_ms, func, *args, **kwargs
            )
            return outcome.result

        setattr(wrapper, LOCK_SPEC_ATTR, spec)
        return wrapper

    return decorator


def get_lock_spec(func: Callable[..., Any]) -> LockSpec | None:
    """Get the lock a function was decorated with, if any."""
    return getattr(func, LOCK_SPEC_ATTR, None)
