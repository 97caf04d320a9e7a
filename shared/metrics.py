"""
Shared metrics configuration for the rule manager.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns a private registry unless one is supplied, so several
    service instances can live in one process (tests build many of them).
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._metrics["business_events_total"] = Counter(
            "business_events_total",
            "Total business events",
            ["event_type", "service"],
            registry=self.registry
        )

        if self.service_name == "rules":
            self._setup_rules_metrics()

    def _setup_rules_metrics(self):
        """Set up rule store specific metrics."""
        self._metrics["rules_committed_total"] = Counter(
            "rules_committed_total",
            "Total committed rule operations",
            ["op"],
            registry=self.registry
        )

        self._metrics["rules_fetched_total"] = Counter(
            "rules_fetched_total",
            "Total rules returned by slice reads",
            registry=self.registry
        )

        self._metrics["dummy_rules_generated_total"] = Counter(
            "dummy_rules_generated_total",
            "Total synthetic rules written by the bulk generator",
            registry=self.registry
        )

        self._metrics["commit_duration_seconds"] = Histogram(
            "commit_duration_seconds",
            "Batch commit duration in seconds",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def render(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_business_event(self, event_type: str, service: Optional[str] = None):
        """Record business event metrics."""
        service_name = service or self.service_name
        self._metrics["business_events_total"].labels(event_type=event_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            metric = self._metrics.get(operation_name)
            if metric is not None:
                (metric.labels(**labels) if labels else metric).observe(duration)

    def increment_counter(self, metric_name: str, amount: float = 1, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            (metric.labels(**labels) if labels else metric).inc(amount)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
