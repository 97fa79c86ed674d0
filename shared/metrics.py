"""
Shared metrics configuration for the Cross-Language Validation service.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so that several service instances
    (one per test, for example) never collide on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Errors rendered by the exception handlers, by error code
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors returned to clients",
            ["code"],
            registry=self.registry
        )

        if self.service_name == "validation":
            self._setup_validation_metrics()

    def _setup_validation_metrics(self):
        """Set up validation-specific metrics."""
        self._metrics["rule_set_loads_total"] = Counter(
            "rule_set_loads_total",
            "Total rule document loads",
            ["status"],
            registry=self.registry
        )

        self._metrics["validation_runs_total"] = Counter(
            "validation_runs_total",
            "Total validation phase runs",
            ["phase"],
            registry=self.registry
        )

        self._metrics["validation_findings_total"] = Counter(
            "validation_findings_total",
            "Total error codes produced by validation phases",
            ["phase"],
            registry=self.registry
        )

        self._metrics["validation_duration_seconds"] = Histogram(
            "validation_duration_seconds",
            "Validation phase duration in seconds",
            ["phase"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def export(self) -> bytes:
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

    def record_error(self, code: str):
        """Record an error returned to a client."""
        self._metrics["errors_total"].labels(code=code).inc()

    def record_validation(self, phase: str, findings: int, duration: float):
        """Record one validation phase run."""
        with self._lock:
            self._metrics["validation_runs_total"].labels(phase=phase).inc()
            if findings:
                self._metrics["validation_findings_total"].labels(phase=phase).inc(findings)
            self._metrics["validation_duration_seconds"].labels(phase=phase).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
