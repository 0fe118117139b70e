"""fleetlock: run a job on at most one replica at a time, coordinated through Redis."""

from fleetlock.distributed import (
    LockCoordinator,
    LockOutcome,
    LockSpec,
    distributed_lock,
    generate_node_id,
    get_lock_spec,
    run_exclusively,
)
from fleetlock.store import (
    InvalidLockRequest,
    LockKeys,
    LockStoreClient,
    StoreConfig,
    StoreState,
)

__version__ = "0.1.0"

__all__ = [
    "InvalidLockRequest",
    "LockCoordinator",
    "LockKeys",
    "LockOutcome",
    "LockSpec",
    "LockStoreClient",
    "StoreConfig",
    "StoreState",
    "distributed_lock",
    "generate_node_id",
    "get_lock_spec",
    "run_exclusively",
]
