"""Prometheus metrics for fleetlock.

Provides lock outcome counters and store readiness:
- Acquisitions by outcome (acquired, contended, fail_open)
- Releases by outcome (released, not_owner, skipped, error)
- Store readiness gauge

Usage:
    from fleetlock.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.record_acquire("cron:daily-sync", "acquired")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from prometheus_client import REGISTRY, Counter, Gauge, generate_latest

from fleetlock.config import settings

logger = logging.getLogger(__name__)

AcquireOutcome = Literal["acquired", "contended", "fail_open"]
ReleaseOutcome = Literal["released", "not_owner", "skipped", "error"]


@dataclass
class LockMetrics:
    """Registry for Prometheus lock metrics."""

    lock_acquisitions_total: Any = None
    lock_releases_total: Any = None
    store_ready: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.lock_acquisitions_total = Counter(
            "fleetlock_lock_acquisitions_total",
            "Lock acquisition attempts by outcome",
            ["lock", "outcome"],
        )

        self.lock_releases_total = Counter(
            "fleetlock_lock_releases_total",
            "Lock release attempts by outcome",
            ["lock", "outcome"],
        )

        self.store_ready = Gauge(
            "fleetlock_store_ready",
            "Whether the coordination store connection is ready (1) or not (0)",
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def record_acquire(self, lock: str, outcome: AcquireOutcome) -> None:
        if self.lock_acquisitions_total is not None:
            self.lock_acquisitions_total.labels(lock=lock, outcome=outcome).inc()

    def record_release(self, lock: str, outcome: ReleaseOutcome) -> None:
        if self.lock_releases_total is not None:
            self.lock_releases_total.labels(lock=lock, outcome=outcome).inc()

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"

        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = LockMetrics()


def get_metrics() -> LockMetrics:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def set_store_ready(ready: bool) -> None:
    """Update the store readiness gauge."""
    metrics = get_metrics()
    if metrics.store_ready is not None:
        metrics.store_ready.set(1 if ready else 0)
