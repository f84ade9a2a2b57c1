"""
Shared metrics configuration for the Access RBAC service.
"""

from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, REGISTRY


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or REGISTRY
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

        if self.service_name == "permissions":
            self._setup_permissions_metrics()

    def _setup_permissions_metrics(self):
        """Set up permission-resolution metrics."""
        self._metrics["permission_checks_total"] = Counter(
            "permission_checks_total",
            "Total permission checks",
            ["decision", "source"],
            registry=self.registry
        )

        self._metrics["permission_check_duration_seconds"] = Histogram(
            "permission_check_duration_seconds",
            "Permission check duration in seconds",
            registry=self.registry
        )

        self._metrics["permission_cache_events_total"] = Counter(
            "permission_cache_events_total",
            "Permission cache hits and misses",
            ["cache_type", "event"],
            registry=self.registry
        )

        self._metrics["backing_store_failures_total"] = Counter(
            "backing_store_failures_total",
            "Backing store failures converted to fail-closed results",
            ["operation"],
            registry=self.registry
        )

        self._metrics["grant_mutations_total"] = Counter(
            "grant_mutations_total",
            "Grant store mutations",
            ["operation"],
            registry=self.registry
        )

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

    def record_permission_check(self, allowed: bool, source: str):
        """Record a permission decision and where it came from (cache or store)."""
        self.increment_counter(
            "permission_checks_total",
            decision="allow" if allowed else "deny",
            source=source
        )

    def record_cache_event(self, cache_type: str, hit: bool):
        """Record a permission cache hit or miss."""
        self.increment_counter(
            "permission_cache_events_total",
            cache_type=cache_type,
            event="hit" if hit else "miss"
        )

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

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get the metrics collector for a service.

    Collectors on the default registry are memoised per service, since
    prometheus_client refuses to register the same metric name twice.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
