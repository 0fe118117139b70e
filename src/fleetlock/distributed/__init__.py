"""Distributed coordination primitives for fleetlock.

Provides mutual exclusion across replicas of a service:
- Lock acquire/release over Redis with ownership checks
- Node identity used as the ownership token
- Exclusive-run wrapper and decorator for scheduled jobs

Example:
    from fleetlock.distributed import LockCoordinator, run_exclusively

    coordinator = LockCoordinator(store)
    outcome = await run_exclusively(coordinator, "cron:cleanup", 60_000, cleanup)
"""

from fleetlock.distributed.coordinator import RELEASE_SCRIPT, LockCoordinator, validate_ttl
from fleetlock.distributed.guard import (
    LockOutcome,
    LockSpec,
    distributed_lock,
    get_lock_spec,
    run_exclusively,
)
from fleetlock.distributed.identity import generate_node_id

__all__ = [
    "LockCoordinator",
    "LockOutcome",
    "LockSpec",
    "RELEASE_SCRIPT",
    "distributed_lock",
    "generate_node_id",
    "get_lock_spec",
    "run_exclusively",
    "validate_ttl",
]
