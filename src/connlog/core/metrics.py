"""
Prometheus metrics collection.

Stateless service with in-memory metrics. Each collector owns its registry
so several app instances (tests) never clash on metric names.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info

from .. import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for ConnLog.

    Keep metrics simple,
    use in-memory counters, let Prometheus handle storage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        # Service info
        self.service_info = Info(
            "connlog_service",
            "ConnLog service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": __version__,
            "service": "connlog",
        })

        # Admission metrics
        self.admissions_total = Counter(
            "connlog_admissions_total",
            "Admission decisions by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.rate_limiter_keys = Gauge(
            "connlog_rate_limiter_keys",
            "Client addresses currently tracked by the rate limiter",
            registry=self.registry,
        )

        # Journal metrics
        self.records_appended_total = Counter(
            "connlog_records_appended_total",
            "Connection records appended to the log",
            registry=self.registry,
        )

        self.append_failures_total = Counter(
            "connlog_append_failures_total",
            "Connection records that could not be appended",
            registry=self.registry,
        )

        self.append_duration = Histogram(
            "connlog_append_duration_seconds",
            "Time spent holding the journal lock",
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
            registry=self.registry,
        )

        # Notification metrics
        self.notifications_total = Counter(
            "connlog_notifications_total",
            "Notification attempts by target and outcome",
            ["target", "outcome"],
            registry=self.registry,
        )

        self.notifications_dropped_total = Counter(
            "connlog_notifications_dropped_total",
            "Notifications dropped because the queue was full",
            registry=self.registry,
        )

    def record_admission(self, allowed: bool, tracked_keys: int) -> None:
        """Record an admission decision."""
        self.admissions_total.labels(outcome="allowed" if allowed else "rejected").inc()
        self.rate_limiter_keys.set(tracked_keys)

    def record_append(self, duration_seconds: float) -> None:
        """Record a successful journal append."""
        self.records_appended_total.inc()
        self.append_duration.observe(duration_seconds)

    def record_append_failure(self) -> None:
        """Record a failed journal append."""
        self.append_failures_total.inc()

    def record_notification(self, target: str, success: bool) -> None:
        """Record one delivery attempt to one target."""
        self.notifications_total.labels(
            target=target,
            outcome="sent" if success else "failed",
        ).inc()

    def record_notification_dropped(self) -> None:
        """Record a notification lost to a full queue."""
        self.notifications_dropped_total.inc()
