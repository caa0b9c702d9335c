"""Prometheus metrics collection for pipeline services."""

import logging
from typing import Dict, Any, Optional

from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Centralized metrics collection for pipeline services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name.replace("-", "_")
        self.registry = registry or CollectorRegistry()
        self.metrics: Dict[str, Any] = {}

        self._init_common_metrics()

    def _init_common_metrics(self):
        """Initialize common metrics for all services."""
        self.info = Info(
            f"{self.service_name}_info",
            f"Information about {self.service_name}",
            registry=self.registry
        )

        # Stream processing metrics
        self.records_processed = Counter(
            f"{self.service_name}_stream_records_total",
            "Stream records handed to a batch handler",
            ["stream"],
            registry=self.registry
        )

        self.batch_duration = Histogram(
            f"{self.service_name}_stream_batch_duration_seconds",
            "Time spent handling one stream batch",
            ["stream"],
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry
        )

        self.events_skipped = Counter(
            f"{self.service_name}_events_skipped_total",
            "Events logged and skipped without failing their batch",
            ["stream", "reason"],
            registry=self.registry
        )

        # Sink metrics
        self.rows_written = Counter(
            f"{self.service_name}_sink_rows_written_total",
            "Rows written to a sink table",
            ["table"],
            registry=self.registry
        )

        self.sink_failures = Counter(
            f"{self.service_name}_sink_write_failures_total",
            "Failed sink batch writes",
            ["table"],
            registry=self.registry
        )

        self.buffered_rows = Gauge(
            f"{self.service_name}_buffered_rows",
            "Rows buffered in memory awaiting flush",
            ["table"],
            registry=self.registry
        )

        # Resolver metrics
        self.resolver_lookups = Counter(
            f"{self.service_name}_resolver_lookups_total",
            "Resolver lookups by kind and outcome",
            ["kind", "outcome"],
            registry=self.registry
        )

        # Error metrics
        self.errors_total = Counter(
            f"{self.service_name}_errors_total",
            f"Total number of errors in {self.service_name}",
            ["error_type", "component"],
            registry=self.registry
        )

        self.health_status = Gauge(
            f"{self.service_name}_health_status",
            f"Health status of {self.service_name} (1=healthy, 0=unhealthy)",
            registry=self.registry
        )

    def create_counter(self, name: str, description: str, labels: Optional[list] = None) -> Counter:
        """Create a custom counter metric."""
        full_name = f"{self.service_name}_{name}"
        counter = Counter(full_name, description, labels or [], registry=self.registry)
        self.metrics[name] = counter
        return counter

    def create_gauge(self, name: str, description: str, labels: Optional[list] = None) -> Gauge:
        """Create a custom gauge metric."""
        full_name = f"{self.service_name}_{name}"
        gauge = Gauge(full_name, description, labels or [], registry=self.registry)
        self.metrics[name] = gauge
        return gauge

    def record_batch(self, stream: str, size: int, duration: float):
        """Record one successfully handled stream batch."""
        self.records_processed.labels(stream=stream).inc(size)
        self.batch_duration.labels(stream=stream).observe(duration)

    def record_skipped(self, stream: str, reason: str):
        """Record an event skipped by a handler."""
        self.events_skipped.labels(stream=stream, reason=reason).inc()

    def record_rows_written(self, table: str, count: int):
        self.rows_written.labels(table=table).inc(count)

    def record_sink_failure(self, table: str):
        self.sink_failures.labels(table=table).inc()

    def set_buffered_rows(self, table: str, count: int):
        self.buffered_rows.labels(table=table).set(count)

    def record_resolver_lookup(self, kind: str, outcome: str):
        self.resolver_lookups.labels(kind=kind, outcome=outcome).inc()

    def record_error(self, error_type: str, component: str):
        """Record an error metric."""
        self.errors_total.labels(error_type=error_type, component=component).inc()

    def set_health_status(self, healthy: bool):
        """Set the health status metric."""
        self.health_status.set(1 if healthy else 0)

    def update_service_info(self, version: str, environment: str, **kwargs):
        """Update service information."""
        info_dict = {
            "version": version,
            "environment": environment,
            **kwargs
        }
        self.info.info(info_dict)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics."""
        return CONTENT_TYPE_LATEST
