"""Observability module for fleetlock.

Provides structured logging and metrics:
- JSON structured logging with lock name and node id context
- Prometheus lock outcome counters and store readiness
"""

from fleetlock.observability.logging import (
    LogContext,
    configure_logging,
    lock_name_var,
    node_id_var,
)
from fleetlock.observability.metrics import (
    LockMetrics,
    get_metrics,
    metrics_registry,
    set_store_ready,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "lock_name_var",
    "node_id_var",
    # Metrics
    "LockMetrics",
    "get_metrics",
    "metrics_registry",
    "set_store_ready",
]
