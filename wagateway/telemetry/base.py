"""Base telemetry port protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

Labels = tuple[tuple[str, str], ...]


@runtime_checkable
class TelemetryPort(Protocol):
    """Protocol for telemetry backends (Prometheus, in-memory).

    - Counters: monotonically increasing values (sends, duplicates, failures)
    - Gauges: point-in-time values (session readiness, cache size)
    - Histograms: distribution of values (send latency)
    """

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        """Increase a named counter by ``value`` with optional labels.

        Args:
            name: Metric name (e.g., "messages_sent_total")
            value: Amount to increment (default 1)
            labels: Optional label tuples (e.g., (("reason", "not_connected"),))
        """

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        """Set a gauge value."""

    def histogram(self, name: str, value: float, labels: Labels = ()) -> None:
        """Observe a histogram value."""


class NullTelemetry:
    """Telemetry sink that records nothing."""

    def incr(self, name: str, value: int = 1, labels: Labels = ()) -> None:
        del name, value, labels

    def gauge(self, name: str, value: float, labels: Labels = ()) -> None:
        del name, value, labels

    def histogram(self, name: str, value: float, labels: Labels = ()) -> None:
        del name, value, labels
