"""Coordination store layer for fleetlock.

Provides the Redis side of distributed locking:
- Single explicitly-owned connection with bounded connect retries
- Readiness tracking and background reconnection
- Lock key namespacing
"""

from fleetlock.store.client import (
    LockStoreClient,
    StoreConfig,
    StoreState,
    retry_delay,
)
from fleetlock.store.keys import InvalidLockRequest, LockKeys

__all__ = [
    "InvalidLockRequest",
    "LockKeys",
    "LockStoreClient",
    "StoreConfig",
    "StoreState",
    "retry_delay",
]
