"""Prometheus metrics backend for gateway observability.

Metrics live in a per-instance registry and are rendered by the HTTP facade
at ``GET /metrics``.

Usage:
    telemetry = PrometheusTelemetry()
    telemetry.incr("messages_sent_total")
    telemetry.histogram("send_duration_seconds", 0.42)
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from wagateway.telemetry.base import Labels

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"
METRIC_PREFIX = "wagateway_"


class PrometheusTelemetry:
    """Prometheus-backed telemetry.

    Standard gateway metrics are registered up front; unknown names are
    created on first use with the label names of that first call.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._metrics: dict[str, Counter | Gauge | Histogram] = {}
        self._register_standard_metrics()

    def _register_standard_metrics(self) -> None:
        """Register standard gateway metrics."""
        self._metrics["messages_sent_total"] = Counter(
            f"{METRIC_PREFIX}messages_sent_total",
            "Messages dispatched to the session",
            registry=self.registry,
        )
        self._metrics["messages_deduplicated_total"] = Counter(
            f"{METRIC_PREFIX}messages_deduplicated_total",
            "Messages suppressed by the duplicate window",
            registry=self.registry,
        )
        self._metrics["send_failures_total"] = Counter(
            f"{METRIC_PREFIX}send_failures_total",
            "Failed send requests",
            labelnames=["reason"],  # reason=not_connected/unavailable/rejected
            registry=self.registry,
        )
        self._metrics["reconnect_attempts_total"] = Counter(
            f"{METRIC_PREFIX}reconnect_attempts_total",
            "Session reconnect attempts",
            registry=self.registry,
        )
        self._metrics["session_ready"] = Gauge(
            f"{METRIC_PREFIX}session_ready",
            "1 when the session accepts sends",
            registry=self.registry,
        )
        self._metrics["dedup_cache_entries"] = Gauge(
            f"{METRIC_PREFIX}dedup_cache_entries",
            "Fingerprints tracked by the duplicate cache",
            registry=self.registry,
        )
        self._metrics["send_duration_seconds"] = Histogram(
            f"{METRIC_PREFIX}send_duration_seconds",
            "Time spent in the session send call",
            buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0],
            registry=self.registry,
        )

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        """Increase a named counter."""
        metric = self._metrics.get(name)
        if metric is None:
            metric = Counter(
                f"{METRIC_PREFIX}{name}",
                f"Counter: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric

        if labels:
            metric.labels(**dict(labels)).inc(value)
        else:
            metric.inc(value)

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        """Set a gauge value."""
        metric = self._metrics.get(name)
        if metric is None:
            metric = Gauge(
                f"{METRIC_PREFIX}{name}",
                f"Gauge: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric

        if labels:
            metric.labels(**dict(labels)).set(value)
        else:
            metric.set(value)

    def histogram(self, name: str, value: float, labels: Labels = ()) -> None:
        """Observe a histogram value."""
        metric = self._metrics.get(name)
        if metric is None:
            metric = Histogram(
                f"{METRIC_PREFIX}{name}",
                f"Histogram: {name}",
                labelnames=[k for k, _ in labels],
                registry=self.registry,
            )
            self._metrics[name] = metric

        if labels:
            metric.labels(**dict(labels)).observe(value)
        else:
            metric.observe(value)

    def render(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self.registry)
